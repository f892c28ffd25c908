"""
Streaming provider configuration.

Loads retry, cache, escalation and break-glass fallback settings for the
provider resilience layer.

Design rules:
- Import-safe (no side effects)
- JSON file + environment overrides, fixed at startup
- Invalid values are warnings, never fatal; defaults win
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator

from shared.logging.logger import get_logger

log = get_logger("shared.config.streaming")

_CONFIG_PATH = Path(__file__).parent / "streaming.json"

_NUMBER = {"type": "number", "exclusiveMinimum": 0}

STREAMING_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "retry": {
            "type": "object",
            "properties": {
                "max_retries": {"type": "integer", "minimum": 1},
                "retry_delay_seconds": {"type": "number", "minimum": 0},
                "connection_timeout_seconds": _NUMBER,
            },
        },
        "cache": {
            "type": "object",
            "properties": {"ttl_seconds": _NUMBER},
        },
        "escalation_threshold": {"type": "integer", "minimum": 1},
        "fallback": {
            "type": "object",
            "properties": {
                "ingest_url": {"type": "string", "minLength": 1},
                "stream_key": {"type": "string", "minLength": 1},
                "embed_url": {"type": "string", "minLength": 1},
            },
        },
        "synthetic_status": {
            "type": "object",
            "properties": {
                "min_viewers": {"type": "integer", "minimum": 0},
                "max_viewers": {"type": "integer", "minimum": 0},
            },
        },
        "remote": {
            "type": "object",
            "properties": {
                "functions_url": {"type": "string"},
                "health_operation": {"type": "string", "minLength": 1},
                "credentials_operation": {"type": "string", "minLength": 1},
                "status_operation": {"type": "string", "minLength": 1},
            },
        },
    },
}


@dataclass(frozen=True)
class RetrySettings:
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    connection_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class CacheSettings:
    ttl_seconds: float = 300.0


@dataclass(frozen=True)
class FallbackCredentials:
    """
    Pre-provisioned break-glass credentials.

    Kept valid out-of-band; the runtime never checks them against the
    provider.
    """

    ingest_url: str = "rtmp://live.clipt.cc/stream"
    stream_key: str = "live_1234567890abcdef"
    embed_url: str = "https://stream.clipt.cc/watch/1234567890abcdef"


@dataclass(frozen=True)
class SyntheticStatusSettings:
    min_viewers: int = 10
    max_viewers: int = 150


@dataclass(frozen=True)
class RemoteSettings:
    functions_url: str = ""
    api_key: Optional[str] = None
    health_operation: str = "stream-health"
    credentials_operation: str = "stream-credentials"
    status_operation: str = "stream-status"


@dataclass(frozen=True)
class StreamingSettings:
    retry: RetrySettings = field(default_factory=RetrySettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    escalation_threshold: int = 2
    fallback: FallbackCredentials = field(default_factory=FallbackCredentials)
    synthetic_status: SyntheticStatusSettings = field(
        default_factory=SyntheticStatusSettings
    )
    remote: RemoteSettings = field(default_factory=RemoteSettings)


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------

def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        log.debug(f"streaming.json not found at {path}; using defaults")
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            log.warning("streaming.json root is not an object; ignoring")
    except Exception as e:  # pragma: no cover - defensive
        log.warning(f"Failed to load streaming.json ({e}); using defaults")

    return {}


def _validate(payload: Dict[str, Any]) -> None:
    validator = Draft7Validator(STREAMING_SCHEMA)
    errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))
    for err in errors:
        loc = "/".join(str(p) for p in err.path)
        log.warning(f"streaming config validation warning at '{loc}': {err.message}")


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name)
    return value if isinstance(value, dict) else {}


def _coerce(value: Any, cast, default, *, name: str, minimum=None):
    if value is None:
        return default
    if isinstance(value, bool):
        log.warning(f"{name} must be numeric; using default {default}")
        return default
    try:
        result = cast(value)
    except (TypeError, ValueError):
        log.warning(f"{name} is invalid ({value!r}); using default {default}")
        return default
    if minimum is not None and result < minimum:
        log.warning(f"{name} below {minimum} ({result}); using default {default}")
        return default
    return result


def _string(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _load_retry(raw: Dict[str, Any]) -> RetrySettings:
    defaults = RetrySettings()
    return RetrySettings(
        max_retries=_coerce(
            raw.get("max_retries"), int, defaults.max_retries,
            name="retry.max_retries", minimum=1,
        ),
        retry_delay_seconds=_coerce(
            raw.get("retry_delay_seconds"), float, defaults.retry_delay_seconds,
            name="retry.retry_delay_seconds", minimum=0,
        ),
        connection_timeout_seconds=_coerce(
            raw.get("connection_timeout_seconds"), float,
            defaults.connection_timeout_seconds,
            name="retry.connection_timeout_seconds", minimum=0.001,
        ),
    )


def _load_fallback(raw: Dict[str, Any]) -> FallbackCredentials:
    defaults = FallbackCredentials()
    return FallbackCredentials(
        ingest_url=_string(raw.get("ingest_url"), defaults.ingest_url),
        stream_key=_string(raw.get("stream_key"), defaults.stream_key),
        embed_url=_string(raw.get("embed_url"), defaults.embed_url),
    )


def _load_synthetic(raw: Dict[str, Any]) -> SyntheticStatusSettings:
    defaults = SyntheticStatusSettings()
    low = _coerce(
        raw.get("min_viewers"), int, defaults.min_viewers,
        name="synthetic_status.min_viewers", minimum=0,
    )
    high = _coerce(
        raw.get("max_viewers"), int, defaults.max_viewers,
        name="synthetic_status.max_viewers", minimum=0,
    )
    if high < low:
        log.warning("synthetic_status.max_viewers < min_viewers; swapping")
        low, high = high, low
    return SyntheticStatusSettings(min_viewers=low, max_viewers=high)


def _load_remote(raw: Dict[str, Any]) -> RemoteSettings:
    defaults = RemoteSettings()
    return RemoteSettings(
        functions_url=_string(raw.get("functions_url"), defaults.functions_url),
        api_key=None,
        health_operation=_string(raw.get("health_operation"), defaults.health_operation),
        credentials_operation=_string(
            raw.get("credentials_operation"), defaults.credentials_operation
        ),
        status_operation=_string(raw.get("status_operation"), defaults.status_operation),
    )


def _apply_env(settings: StreamingSettings) -> StreamingSettings:
    remote = settings.remote
    functions_url = os.getenv("CLIPT_FUNCTIONS_URL")
    if functions_url:
        remote = replace(remote, functions_url=functions_url.strip())
    api_key = os.getenv("CLIPT_FUNCTIONS_KEY")
    if api_key:
        remote = replace(remote, api_key=api_key.strip())

    fallback = settings.fallback
    overrides = {
        "ingest_url": os.getenv("CLIPT_FALLBACK_INGEST_URL"),
        "stream_key": os.getenv("CLIPT_FALLBACK_STREAM_KEY"),
        "embed_url": os.getenv("CLIPT_FALLBACK_EMBED_URL"),
    }
    overrides = {k: v.strip() for k, v in overrides.items() if v and v.strip()}
    if overrides:
        fallback = replace(fallback, **overrides)

    return replace(settings, remote=remote, fallback=fallback)


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------

def load_streaming_settings(raw: Optional[Dict[str, Any]] = None) -> StreamingSettings:
    """
    Build StreamingSettings from a raw mapping (or streaming.json) plus env.

    Expected shape:
    {
        "retry": {"max_retries": 3, "retry_delay_seconds": 1, "connection_timeout_seconds": 10},
        "cache": {"ttl_seconds": 300},
        "escalation_threshold": 2,
        "fallback": {"ingest_url": "...", "stream_key": "...", "embed_url": "..."},
        "synthetic_status": {"min_viewers": 10, "max_viewers": 150},
        "remote": {"functions_url": "https://.../functions/v1"}
    }
    """
    raw = raw if raw is not None else _load_json(_CONFIG_PATH)
    if not isinstance(raw, dict):
        log.warning("streaming config is not an object; using defaults")
        raw = {}

    _validate(raw)

    defaults = CacheSettings()
    cache = CacheSettings(
        ttl_seconds=_coerce(
            _section(raw, "cache").get("ttl_seconds"), float, defaults.ttl_seconds,
            name="cache.ttl_seconds", minimum=0.001,
        )
    )

    settings = StreamingSettings(
        retry=_load_retry(_section(raw, "retry")),
        cache=cache,
        escalation_threshold=_coerce(
            raw.get("escalation_threshold"), int, 2,
            name="escalation_threshold", minimum=1,
        ),
        fallback=_load_fallback(_section(raw, "fallback")),
        synthetic_status=_load_synthetic(_section(raw, "synthetic_status")),
        remote=_load_remote(_section(raw, "remote")),
    )

    return _apply_env(settings)
