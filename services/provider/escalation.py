from __future__ import annotations

from typing import Any, Dict

from shared.logging.logger import get_logger

log = get_logger("provider.escalation")


class FallbackEscalationState:
    """
    Consecutive-failure counter shared by the health prober and the
    credential service.

    States:
    - normal   : failures below threshold, real provider calls allowed
    - fallback : threshold reached, callers serve static credentials

    Only record_failure() / record_success() move between states. One
    instance per CredentialService; it is injected, never global.
    """

    def __init__(self, *, threshold: int = 2):
        if threshold < 1:
            raise ValueError("escalation threshold must be >= 1")
        self._threshold = threshold
        self._consecutive_failures = 0
        self._fallback_active = False

    # --------------------------------------------------

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def fallback_active(self) -> bool:
        return self._fallback_active

    # --------------------------------------------------

    def record_failure(self) -> bool:
        """
        Count one failed provider interaction.
        Returns whether fallback mode is active afterwards.
        """
        self._consecutive_failures += 1

        if (
            not self._fallback_active
            and self._consecutive_failures >= self._threshold
        ):
            self._fallback_active = True
            log.warning(
                f"Provider fallback engaged after "
                f"{self._consecutive_failures} consecutive failure(s)"
            )
        else:
            log.debug(
                f"Provider failure recorded "
                f"({self._consecutive_failures}/{self._threshold})"
            )

        return self._fallback_active

    def record_success(self) -> None:
        if self._fallback_active:
            log.info("Provider recovered; leaving fallback mode")

        self._consecutive_failures = 0
        self._fallback_active = False

    # --------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {
            "consecutive_failures": self._consecutive_failures,
            "fallback_active": self._fallback_active,
            "threshold": self._threshold,
        }
