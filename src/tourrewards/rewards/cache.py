from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable
from uuid import UUID

"""
In-memory reward-points cache.

Maps (attraction_id, user_id) to the points the reward-points provider returned
for that pair. The provider is treated as deterministic per pair, so entries are
never evicted or invalidated and the cache grows for the life of the engine.

Concurrency contract:
- Lookups and writes are guarded by one lock; the provider call runs outside it.
- The first value stored for a key wins, and every caller gets that stored value.
- Two threads missing on the same key at the same time may both call the
  provider. That is wasted work, not a correctness problem; there is no
  single-flight coordination.
- If the provider raises, nothing is stored and the error propagates.
"""


@dataclass
class CacheStats:
    """Cumulative cache usage counters (best-effort under concurrency)."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    duplicate_computes: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "hits": int(self.hits),
            "misses": int(self.misses),
            "sets": int(self.sets),
            "duplicate_computes": int(self.duplicate_computes),
        }


CacheKey = tuple[UUID, UUID]


class RewardPointsCache:
    """Memoizes reward points per (attraction, user)."""

    def __init__(self) -> None:
        self._values: dict[CacheKey, int] = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._values

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(**self._stats.as_dict())

    def get(self, attraction_id: UUID, user_id: UUID) -> int | None:
        with self._lock:
            return self._values.get((attraction_id, user_id))

    def get_or_compute(self, attraction_id: UUID, user_id: UUID, compute: Callable[[], int]) -> int:
        """Return the cached points, or compute, store and return them."""
        key = (attraction_id, user_id)
        with self._lock:
            cached = self._values.get(key)
            if cached is not None:
                self._stats.hits += 1
                return cached
            self._stats.misses += 1

        value = int(compute())

        with self._lock:
            if key in self._values:
                self._stats.duplicate_computes += 1
                return self._values[key]
            self._values[key] = value
            self._stats.sets += 1
            return value
