"""Bounded, time-limited, process-wide cache of generated demand matrices."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from functools import lru_cache

from demand_matrix.core.config import get_settings
from demand_matrix.models.demand import AggregationStrategy, DemandMatrixMode, DemandMatrixResult

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "demand_matrix"
CACHE_KEY_VERSION = "v2.0"


@dataclass(slots=True)
class CacheEntry:
    key: str
    strategy: AggregationStrategy
    result: DemandMatrixResult
    stored_at: float


def get_cache_key(
    mode: DemandMatrixMode | str,
    start_date: date,
    strategy: AggregationStrategy | str,
    staff_ids: Iterable[str] = (),
) -> str:
    mode_value = mode.value if isinstance(mode, DemandMatrixMode) else str(mode)
    strategy_value = strategy.value if isinstance(strategy, AggregationStrategy) else str(strategy)
    key = f"{CACHE_KEY_PREFIX}_{mode_value}_{start_date.year:04d}-{start_date.month:02d}_{strategy_value}"
    staff = sorted({str(staff_id) for staff_id in staff_ids if staff_id})
    if staff:
        key = f"{key}_{','.join(staff)}"
    return f"{key}_{CACHE_KEY_VERSION}"


class MatrixCache:
    """Insertion-ordered cache; the oldest entry is evicted once full."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1.")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> DemandMatrixResult | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() - entry.stored_at > self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            logger.debug("Cache entry %s expired", key)
            return None
        self.hits += 1
        return entry.result

    def set(self, key: str, result: DemandMatrixResult, strategy: AggregationStrategy) -> None:
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cache entry %s", evicted)
        self._entries[key] = CacheEntry(key=key, strategy=strategy, result=result, stored_at=self._clock())

    def clear(self, strategy: AggregationStrategy | None = None) -> int:
        if strategy is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            keys = [key for key, entry in self._entries.items() if entry.strategy is strategy]
            for key in keys:
                del self._entries[key]
            removed = len(keys)
        logger.info("Cleared %d demand matrix cache entries (strategy=%s)", removed, strategy.value if strategy else "all")
        return removed

    def stats(self) -> dict[str, object]:
        now = self._clock()
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "entries": [
                {
                    "key": entry.key,
                    "strategy": entry.strategy.value,
                    "age_seconds": round(now - entry.stored_at, 3),
                }
                for entry in self._entries.values()
            ],
        }


@lru_cache
def get_matrix_cache() -> MatrixCache:
    settings = get_settings()
    return MatrixCache(
        ttl_seconds=settings.matrix_cache_ttl_seconds,
        max_entries=settings.matrix_cache_max_entries,
    )
