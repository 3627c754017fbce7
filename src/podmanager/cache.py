"""
Per-parent node cache for the tree data provider.

Children computed for a tree node are kept until the next refresh. There is no
TTL and no partial invalidation: a refresh clears every cached list and every
dedup ledger in one critical section.

Architecture:
- NodeCache: cache key ("<context>-<id>") -> child node list
- Dedup ledgers owned by the cache, scoped per refresh cycle or per category
- In-flight fetches per key, so concurrent misses share one computation
- A generation counter bumped by every clear; results computed under an
  older generation are rejected by set()
- Thread-safe operations using RLock

Writers:
- populate via set() / ledger_for(): only the provider's fetch path
- clear(): only the refresh controller when its debounce timer fires
"""

import asyncio
import threading
from typing import Dict, Any, Optional, List, Tuple
import logging

from .grouping import DedupLedger
from .model import PodmanItem

logger = logging.getLogger(__name__)

SCOPE_REFRESH = "refresh"
SCOPE_CATEGORY = "category"
DEDUP_SCOPES = (SCOPE_REFRESH, SCOPE_CATEGORY)


class NodeCache:
    """Thread-safe child-list cache with the dedup ledger(s) it invalidates with."""

    def __init__(self, dedup_scope: str = SCOPE_REFRESH):
        if dedup_scope not in DEDUP_SCOPES:
            logger.warning(f"Unknown dedup scope {dedup_scope!r}, using {SCOPE_REFRESH!r}")
            dedup_scope = SCOPE_REFRESH
        self.dedup_scope = dedup_scope
        self._cache: Dict[str, List[PodmanItem]] = {}
        self._ledgers: Dict[str, DedupLedger] = {}
        self._inflight: Dict[str, Tuple[int, asyncio.Future]] = {}
        self._generation = 0
        self._lock = threading.RLock()
        self._stats = {
            'hits': 0,
            'misses': 0,
            'sets': 0,
            'stale_sets': 0,
            'clears': 0
        }

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, key: str) -> Optional[List[PodmanItem]]:
        with self._lock:
            if key not in self._cache:
                self._stats['misses'] += 1
                return None
            self._stats['hits'] += 1
            return self._cache[key]

    def set(self, key: str, children: List[PodmanItem], generation: Optional[int] = None) -> bool:
        """Store ``children``; refused (False) if a clear happened since ``generation``."""
        with self._lock:
            if generation is not None and generation != self._generation:
                self._stats['stale_sets'] += 1
                return False
            self._cache[key] = children
            self._stats['sets'] += 1
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    def ledger_for(self, key: str) -> DedupLedger:
        """Ledger to use while populating ``key``."""
        scope_key = key if self.dedup_scope == SCOPE_CATEGORY else SCOPE_REFRESH
        with self._lock:
            ledger = self._ledgers.get(scope_key)
            if ledger is None:
                ledger = self._ledgers[scope_key] = DedupLedger()
            return ledger

    # --- IN-FLIGHT FETCHES ---

    def inflight(self, key: str) -> Optional[asyncio.Future]:
        """The running fetch for ``key`` in the current generation, if any."""
        with self._lock:
            entry = self._inflight.get(key)
            if entry is None or entry[0] != self._generation:
                return None
            return entry[1]

    def track(self, key: str, generation: int, future: asyncio.Future) -> None:
        with self._lock:
            self._inflight[key] = (generation, future)

    def untrack(self, key: str, future: asyncio.Future) -> None:
        with self._lock:
            entry = self._inflight.get(key)
            if entry is not None and entry[1] is future:
                del self._inflight[key]

    def clear(self) -> None:
        """Drop every cached child list and every ledger; start a new generation."""
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            for ledger in self._ledgers.values():
                ledger.clear()
            self._ledgers.clear()
            self._inflight.clear()
            self._generation += 1
            self._stats['clears'] += 1
        logger.debug(f"Node cache cleared ({count} entries)")

    def get_stats(self) -> Dict[str, Any]:
        """Counters plus current size and hit rate (percent)."""
        with self._lock:
            lookups = self._stats['hits'] + self._stats['misses']
            return {
                **self._stats,
                'cache_size': len(self._cache),
                'ledgers': len(self._ledgers),
                'inflight': len(self._inflight),
                'generation': self._generation,
                'hit_rate_percent': round(100 * self._stats['hits'] / lookups, 2) if lookups else 0,
                'total_requests': lookups,
            }
