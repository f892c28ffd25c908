"""Provider health and credential models.

Health is tri-state on purpose:

- HEALTHY   : provider confirmed it is serving
- DEGRADED  : we could not confirm either way (timeouts, exhausted retries)
- UNHEALTHY : provider explicitly reported itself broken

DEGRADED and UNHEALTHY are not interchangeable. Only a provider-reported
status can produce UNHEALTHY.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_value(
        cls, value: Any, *, default: Optional["HealthStatus"] = None
    ) -> "HealthStatus":
        if isinstance(value, cls):
            return value

        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if normalized in {member.name.lower(), member.value}:
                    return member

        return default or cls.DEGRADED


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _required_str(payload: Mapping[str, Any], *keys: str) -> str:
    value = _first(payload, *keys)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"provider payload missing {keys[0]}")
    return value.strip()


@dataclass(frozen=True)
class CheckResult:
    """Outcome of a single provider health probe. Never cached."""

    status: HealthStatus
    latency_ms: float
    region: str
    point_of_presence: str
    protocol: str
    using_fallback: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "CheckResult":
        if not isinstance(payload, Mapping):
            raise TypeError("health payload must be an object")

        latency = _first(payload, "latencyMs", "latency_ms", "latency")
        try:
            latency_ms = float(latency) if latency is not None else 0.0
        except (TypeError, ValueError):
            latency_ms = 0.0

        return cls(
            status=HealthStatus.from_value(_first(payload, "status", "health")),
            latency_ms=latency_ms,
            region=str(_first(payload, "region") or "unknown"),
            point_of_presence=str(
                _first(payload, "pointOfPresence", "point_of_presence", "pop") or "unknown"
            ),
            protocol=str(_first(payload, "protocol") or "unknown"),
            using_fallback=False,
        )

    @classmethod
    def exhausted(cls, *, using_fallback: bool) -> "CheckResult":
        return cls(
            status=HealthStatus.DEGRADED,
            latency_ms=9999,
            region="unknown",
            point_of_presence="error",
            protocol="error",
            using_fallback=using_fallback,
        )

    def snapshot(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass(frozen=True)
class CredentialSet:
    """
    Ingest credentials handed to broadcast setup screens.

    Always fully populated. Under total failure the values come from the
    pre-provisioned fallback rather than being omitted.
    """

    ingest_url: str
    stream_key: str
    embed_url: str
    health_status: str
    using_fallback: bool = False

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], *, health_status: str
    ) -> "CredentialSet":
        if not isinstance(payload, Mapping):
            raise TypeError("credential payload must be an object")

        return cls(
            ingest_url=_required_str(payload, "ingestUrl", "ingest_url", "rtmp_url", "url"),
            stream_key=_required_str(payload, "streamKey", "stream_key", "rtmp_key"),
            embed_url=_required_str(payload, "embedUrl", "embed_url", "playback_url"),
            health_status=health_status,
            using_fallback=False,
        )

    def snapshot(self, *, mask_key: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        if mask_key:
            data["stream_key"] = mask_stream_key(self.stream_key)
        return data


@dataclass(frozen=True)
class StreamStatus:
    is_live: bool
    viewer_count: int
    synthesized: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StreamStatus":
        if not isinstance(payload, Mapping):
            raise TypeError("status payload must be an object")

        live = _first(payload, "isLive", "is_live", "live")
        viewers = _first(payload, "viewerCount", "viewer_count", "viewers")
        if isinstance(live, str):
            live = live.strip().lower() in {"true", "1", "yes", "live"}

        return cls(
            is_live=bool(live),
            viewer_count=max(0, int(viewers or 0)),
            synthesized=False,
        )

    def snapshot(self) -> Dict[str, Any]:
        return asdict(self)


def mask_stream_key(key: str) -> str:
    if len(key) <= 4:
        return "****"
    return f"{key[:4]}{'*' * (len(key) - 4)}"


__all__ = [
    "HealthStatus",
    "CheckResult",
    "CredentialSet",
    "StreamStatus",
    "mask_stream_key",
]
