"""
Provider health prober.

Responsibilities:
- Call the provider health function with bounded retries
- Linear backoff between attempts (delay * attempt number)
- Feed the shared escalation state on success / exhaustion
- Always return a CheckResult; never raise to the caller

Exhausted retries report DEGRADED ("could not find out"), never UNHEALTHY.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from services.provider.escalation import FallbackEscalationState
from services.provider.models import CheckResult
from services.provider.remote import RemoteCall, invoke_with_deadline
from shared.config.streaming import StreamingSettings
from shared.logging.logger import get_logger

log = get_logger("provider.health")


class HealthProber:
    def __init__(
        self,
        remote: RemoteCall,
        escalation: FallbackEscalationState,
        settings: StreamingSettings,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.remote = remote
        self.escalation = escalation
        self.settings = settings
        self._sleep = sleep

    # ------------------------------------------------------------

    async def probe(self) -> CheckResult:
        retry = self.settings.retry
        operation = self.settings.remote.health_operation

        for attempt in range(1, retry.max_retries + 1):
            try:
                payload = await invoke_with_deadline(
                    self.remote,
                    operation,
                    {},
                    retry.connection_timeout_seconds,
                )
                result = CheckResult.from_payload(payload)

            except asyncio.CancelledError:
                raise

            except asyncio.TimeoutError:
                log.warning(
                    f"Health probe attempt {attempt}/{retry.max_retries} timed out "
                    f"after {retry.connection_timeout_seconds:.1f}s"
                )

            except Exception as e:
                log.warning(
                    f"Health probe attempt {attempt}/{retry.max_retries} failed: {e}"
                )

            else:
                self.escalation.record_success()
                log.debug(
                    f"Provider health {result.status.value} "
                    f"({result.latency_ms:.0f}ms, {result.region}/{result.point_of_presence})"
                )
                return result

            await self._sleep(retry.retry_delay_seconds * attempt)

        fallback_active = self.escalation.record_failure()
        log.error(
            f"Health probe exhausted {retry.max_retries} attempt(s); "
            f"reporting degraded (fallback_active={fallback_active})"
        )
        return CheckResult.exhausted(using_fallback=fallback_active)
