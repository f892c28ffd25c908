"""
Command-line entry point for the streaming provider runtime.

Usage:
    python -m core.app info
    python -m core.app status <stream_id>
    python -m core.app health

Degraded results are printed like any other result; the exit code is 0
unless the runtime could not be configured.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from runtime.version import as_string
from services.provider.credentials import CredentialService, build_credential_service
from shared.config.streaming import load_streaming_settings
from shared.logging.logger import get_logger
from shared.storage.state_publisher import DashboardStatePublisher

log = get_logger("core.app", runtime="cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipt-stream",
        description="Resolve streaming provider credentials and status.",
    )
    parser.add_argument("--version", action="version", version=as_string())
    parser.add_argument(
        "--publish",
        action="store_true",
        help="write provider_health.json diagnostics under shared/state",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("info", help="print ingest credentials")
    status = sub.add_parser("status", help="print live status for a stream")
    status.add_argument("stream_id")
    sub.add_parser("health", help="probe provider health")

    return parser


async def run(args: argparse.Namespace, service: CredentialService) -> Dict[str, Any]:
    try:
        if args.command == "info":
            result = await service.get_stream_info()
            if result.using_fallback:
                log.warning("Using backup streaming service credentials")
            return result.snapshot()

        if args.command == "status":
            status = await service.check_stream_status(args.stream_id)
            return status.snapshot()

        check = await service.probe_health()
        return check.snapshot()
    finally:
        await service.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    # --------------------------------------------------
    # ENV
    # --------------------------------------------------
    load_dotenv()
    log.info("Environment variables loaded")

    settings = load_streaming_settings()
    publisher = DashboardStatePublisher() if args.publish else None

    try:
        service = build_credential_service(settings, publisher=publisher)
    except RuntimeError as e:
        log.error(f"Streaming runtime not configured: {e}")
        return 2

    payload = asyncio.run(run(args, service))
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
