"""
Stream credential service (provider resilience facade).

Responsibilities:
- Serve ingest credentials (ingest URL, stream key, embed URL)
- Serve live/viewer status for a stream
- Absorb every provider failure into marked, fully-populated results

Resolution order for get_stream_info():
1. Fresh cache entry -> returned with zero remote calls
2. Probe provider health (bounded retries)
3. UNHEALTHY or fallback mode -> static fallback credentials
4. Single credential fetch; on failure -> stale cache, else static fallback

Nothing raises out of the public methods. Callers only ever see degraded
content (using_fallback / health_status), never an error.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from runtime.version import VERSION
from services.provider.cache import CredentialCache
from services.provider.escalation import FallbackEscalationState
from services.provider.health import HealthProber
from services.provider.models import CheckResult, CredentialSet, HealthStatus, StreamStatus
from services.provider.remote import (
    BackendFunctionsClient,
    RemoteCall,
    invoke_with_deadline,
)
from services.provider.status import StreamStatusChecker
from shared.config.streaming import StreamingSettings, load_streaming_settings
from shared.logging.logger import get_logger
from shared.storage.state_publisher import DashboardStatePublisher

log = get_logger("provider.credentials")

HEALTH_SNAPSHOT_FILE = "provider_health.json"


class CredentialService:
    def __init__(
        self,
        remote: RemoteCall,
        settings: StreamingSettings,
        *,
        escalation: Optional[FallbackEscalationState] = None,
        cache: Optional[CredentialCache] = None,
        prober: Optional[HealthProber] = None,
        status_checker: Optional[StreamStatusChecker] = None,
        publisher: Optional[DashboardStatePublisher] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        self.remote = remote
        self.settings = settings

        self.escalation = escalation or FallbackEscalationState(
            threshold=settings.escalation_threshold
        )
        self.cache = cache or CredentialCache(
            ttl_seconds=settings.cache.ttl_seconds,
            clock=clock,
        )
        self.prober = prober or HealthProber(
            remote, self.escalation, settings, sleep=sleep
        )
        self.status_checker = status_checker or StreamStatusChecker(
            remote, self.escalation, settings, rng=rng
        )
        self.publisher = publisher

        self._inflight: Optional[asyncio.Task] = None
        self._last_check: Optional[CheckResult] = None

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------

    async def get_stream_info(self) -> CredentialSet:
        cached = self.cache.get()
        if cached is not None and self.cache.is_fresh():
            log.debug("Serving cached stream credentials")
            return cached

        # Concurrent callers share one in-flight resolution
        task = self._inflight
        if task is None or task.done():
            task = asyncio.ensure_future(self._resolve_guarded())
            self._inflight = task
            task.add_done_callback(self._clear_inflight)

        return await asyncio.shield(task)

    async def check_stream_status(self, stream_id: str) -> StreamStatus:
        try:
            return await self.status_checker.check_status(stream_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(f"[{stream_id}] Unexpected stream status failure: {e}")
            return self.status_checker.synthesize()

    async def probe_health(self) -> CheckResult:
        result = await self.prober.probe()
        self._last_check = result
        return result

    def snapshot(self) -> Dict[str, Any]:
        cached = self.cache.get()
        return {
            "version": VERSION,
            "escalation": self.escalation.snapshot(),
            "cache": self.cache.snapshot(),
            "last_check": self._last_check.snapshot() if self._last_check else None,
            "credentials": cached.snapshot(mask_key=True) if cached else None,
        }

    async def aclose(self) -> None:
        closer = getattr(self.remote, "aclose", None)
        if closer is not None:
            await closer()

    # ------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _resolve_guarded(self) -> CredentialSet:
        try:
            result = await self._resolve()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception(f"Unexpected credential resolution failure: {e}")
            result = self._recover_from_failure()

        self._publish()
        return result

    async def _resolve(self) -> CredentialSet:
        check = await self.probe_health()

        if check.status == HealthStatus.UNHEALTHY or self.escalation.fallback_active:
            reason = (
                "provider reported unhealthy"
                if check.status == HealthStatus.UNHEALTHY
                else "fallback mode active"
            )
            log.warning(f"Serving fallback stream credentials ({reason})")
            fallback = self._static_fallback("fallback")
            self.cache.put(fallback)
            return fallback

        try:
            payload = await invoke_with_deadline(
                self.remote,
                self.settings.remote.credentials_operation,
                {},
                self.settings.retry.connection_timeout_seconds,
            )
            credentials = CredentialSet.from_payload(
                payload, health_status=check.status.value
            )

        except asyncio.CancelledError:
            raise

        except Exception as e:
            if isinstance(e, asyncio.TimeoutError):
                log.warning("Credential fetch timed out")
            else:
                log.warning(f"Credential fetch failed: {e}")
            return self._recover_from_failure()

        self.escalation.record_success()
        self.cache.put(credentials)
        log.info(f"Stream credentials refreshed (health={credentials.health_status})")
        return credentials

    def _recover_from_failure(self) -> CredentialSet:
        self.escalation.record_failure()

        stale = self.cache.get()
        if stale is not None:
            age = self.cache.age_seconds() or 0.0
            log.warning(f"Serving cached stream credentials as emergency substitute (age={age:.0f}s)")
            return stale

        log.error("No cached stream credentials; serving static fallback")
        fallback = self._static_fallback("error")
        self.cache.put(fallback)
        return fallback

    def _static_fallback(self, health_status: str) -> CredentialSet:
        fallback = self.settings.fallback
        return CredentialSet(
            ingest_url=fallback.ingest_url,
            stream_key=fallback.stream_key,
            embed_url=fallback.embed_url,
            health_status=health_status,
            using_fallback=True,
        )

    def _publish(self) -> None:
        if self.publisher is None:
            return
        try:
            self.publisher.publish(HEALTH_SNAPSHOT_FILE, self.snapshot())
        except Exception as e:
            log.warning(f"Failed to publish provider health snapshot: {e}")


# ----------------------------------------------------------------------
# Construction
# ----------------------------------------------------------------------

def build_credential_service(
    settings: Optional[StreamingSettings] = None,
    *,
    publisher: Optional[DashboardStatePublisher] = None,
) -> CredentialService:
    """
    Build the process-wide credential service from configuration.
    Construct once at startup and pass the instance to consumers.
    """
    settings = settings or load_streaming_settings()
    remote = BackendFunctionsClient(
        settings.remote.functions_url,
        api_key=settings.remote.api_key,
    )
    log.info(f"Credential service ready ({settings.remote.functions_url})")
    return CredentialService(remote, settings, publisher=publisher)
