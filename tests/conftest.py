import asyncio
from collections import defaultdict, deque
from typing import Any, Dict, List, Tuple

import pytest

from shared.config.streaming import StreamingSettings

HANG = object()

HEALTHY = {
    "status": "healthy",
    "latencyMs": 42,
    "region": "us-east",
    "pointOfPresence": "iad",
    "protocol": "rtmps",
}

CREDENTIALS = {
    "ingestUrl": "rtmps://live.provider.test:443/live/",
    "streamKey": "sk_live_abcdef123456",
    "embedUrl": "https://customer.provider.test/abc/iframe",
}


class FakeRemote:
    """
    Scripted remote call boundary.

    Each operation has a default outcome plus an optional queue of one-shot
    outcomes. An outcome is a dict (returned), an exception (raised) or
    HANG (never completes until cancelled).
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, Any], float]] = []
        self._defaults: Dict[str, Any] = {}
        self._queued: defaultdict[str, deque] = defaultdict(deque)

    def set(self, operation: str, outcome: Any) -> None:
        self._defaults[operation] = outcome

    def queue(self, operation: str, *outcomes: Any) -> None:
        self._queued[operation].extend(outcomes)

    def count(self, operation: str) -> int:
        return sum(1 for op, _, _ in self.calls if op == operation)

    async def invoke(self, operation: str, payload: Dict[str, Any], timeout: float):
        self.calls.append((operation, payload, timeout))

        if self._queued[operation]:
            outcome = self._queued[operation].popleft()
        else:
            outcome = self._defaults.get(operation, ConnectionError("no route"))

        if outcome is HANG:
            await asyncio.sleep(3600)
        if isinstance(outcome, BaseException):
            raise outcome
        return dict(outcome)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def settings() -> StreamingSettings:
    return StreamingSettings()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
