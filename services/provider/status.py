from __future__ import annotations

import asyncio
import random
from typing import Optional

from services.provider.escalation import FallbackEscalationState
from services.provider.models import StreamStatus
from services.provider.remote import RemoteCall, invoke_with_deadline
from shared.config.streaming import StreamingSettings
from shared.logging.logger import get_logger

log = get_logger("provider.status")


class StreamStatusChecker:
    """
    Live/viewer status lookups for viewer-count displays.

    During an outage an optimistic placeholder (live, plausible viewer
    count) is shown instead of an error badge. Reads the escalation state,
    never mutates it.
    """

    def __init__(
        self,
        remote: RemoteCall,
        escalation: FallbackEscalationState,
        settings: StreamingSettings,
        *,
        rng: Optional[random.Random] = None,
    ):
        self.remote = remote
        self.escalation = escalation
        self.settings = settings
        self._rng = rng or random.Random()

    # ------------------------------------------------------------

    def synthesize(self) -> StreamStatus:
        synthetic = self.settings.synthetic_status
        return StreamStatus(
            is_live=True,
            viewer_count=self._rng.randint(synthetic.min_viewers, synthetic.max_viewers),
            synthesized=True,
        )

    async def check_status(self, stream_id: str) -> StreamStatus:
        if not stream_id or not str(stream_id).strip():
            log.warning("Stream status requested without a stream id")
            return StreamStatus(is_live=False, viewer_count=0, synthesized=False)

        if self.escalation.fallback_active:
            log.debug(f"[{stream_id}] Fallback active; synthesizing stream status")
            return self.synthesize()

        try:
            payload = await invoke_with_deadline(
                self.remote,
                self.settings.remote.status_operation,
                {"streamId": str(stream_id).strip()},
                self.settings.retry.connection_timeout_seconds,
            )
            return StreamStatus.from_payload(payload)

        except asyncio.CancelledError:
            raise

        except asyncio.TimeoutError:
            log.warning(f"[{stream_id}] Stream status lookup timed out")

        except Exception as e:
            log.warning(f"[{stream_id}] Stream status lookup failed: {e}")

        return self.synthesize()
