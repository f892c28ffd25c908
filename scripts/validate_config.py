"""
Streaming configuration validation script.

Validates shared/config/streaming.json (or a given path) against the
schema used by the runtime loader.

Design rules:
- No runtime startup
- Validation only (no mutation)
- Forward-compatible: unknown fields are ignored
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict

from jsonschema import Draft7Validator

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from shared.config.streaming import STREAMING_SCHEMA  # noqa: E402

DEFAULT_PATH = ROOT / "shared" / "config" / "streaming.json"


def _load_json(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except Exception as e:
        raise ValueError(f"{path.name}: invalid JSON ({e})") from e

    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: root JSON value must be an object")
    return data


def _error(msg: str):
    print(f"[CONFIG ERROR] {msg}", file=sys.stderr)


def validate(path: Path) -> int:
    if not path.exists():
        print(f"[CONFIG] {path} not found; runtime will use defaults")
        return 0

    try:
        payload = _load_json(path)
    except ValueError as e:
        _error(str(e))
        return 1

    errors = sorted(
        Draft7Validator(STREAMING_SCHEMA).iter_errors(payload),
        key=lambda e: list(e.path),
    )
    for err in errors:
        loc = "/".join(str(p) for p in err.path) or "<root>"
        _error(f"{path.name} at '{loc}': {err.message}")

    synthetic = payload.get("synthetic_status") or {}
    low, high = synthetic.get("min_viewers"), synthetic.get("max_viewers")
    if isinstance(low, int) and isinstance(high, int) and high < low:
        _error(f"{path.name}: synthetic_status.max_viewers < min_viewers")
        return 1

    if errors:
        return 1

    print(f"[CONFIG OK] {path}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate streaming.json")
    parser.add_argument("path", nargs="?", default=str(DEFAULT_PATH))
    args = parser.parse_args()
    return validate(Path(args.path))


if __name__ == "__main__":
    sys.exit(main())
