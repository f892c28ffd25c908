from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from services.provider.models import CredentialSet


@dataclass
class CredentialCacheEntry:
    value: CredentialSet
    cached_at: float


class CredentialCache:
    """
    Single-slot cache for the last resolved credential set.

    Entries are overwritten, never evicted. is_fresh() gates new
    resolutions; get() ignores age so a stale entry can still be served
    when a fresh fetch fails.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: Optional[CredentialCacheEntry] = None

    def get(self) -> Optional[CredentialSet]:
        return self._entry.value if self._entry else None

    def put(self, value: CredentialSet) -> None:
        self._entry = CredentialCacheEntry(value=value, cached_at=self._clock())

    def age_seconds(self) -> Optional[float]:
        if self._entry is None:
            return None
        return self._clock() - self._entry.cached_at

    def is_fresh(self) -> bool:
        age = self.age_seconds()
        return age is not None and age < self.ttl_seconds

    def snapshot(self) -> Dict[str, Any]:
        age = self.age_seconds()
        return {
            "populated": self._entry is not None,
            "age_seconds": round(age, 3) if age is not None else None,
            "fresh": self.is_fresh(),
            "ttl_seconds": self.ttl_seconds,
        }
