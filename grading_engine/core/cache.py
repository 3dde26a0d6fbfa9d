"""
Aggregate statistic cache

Process-local, thread-safe LRU cache of ``AggregateStat`` values keyed by
``AggregateScope``. Entries are never trusted as a source of truth: grade
events mark them stale and the next read recomputes from persisted grades.

In production with several worker processes each process keeps its own
cache; staleness is tolerated because every read of a stale entry
recomputes.
"""
import hashlib
import logging
import threading
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from ..models.aggregate import AggregateScope, AggregateStat, ScopeKind
from .constants import DEFAULT_AGGREGATE_CACHE_MAX_SIZE
from . import metrics

logger = logging.getLogger(__name__)


def sanitize_for_logs(text: Optional[str]) -> str:
    """
    Replace free text (justifications, feedback) with a short hash for logging.

    Returns:
        "[content_hash:<12 hex chars>, length:<n>]", or "[empty]"
    """
    if not text:
        return "[empty]"
    content_hash = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"[content_hash:{content_hash}, length:{len(text)}]"


class LRUCache:
    """
    LRU (Least Recently Used) cache.

    Keeps at most ``max_size`` entries and evicts the least recently used
    one when full.
    """

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self.cache: OrderedDict = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key not in self.cache:
                self._misses += 1
                return None
            self.cache.move_to_end(key)
            self._hits += 1
            return self.cache[key]

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if key in self.cache:
                self.cache.move_to_end(key)
            elif len(self.cache) >= self.max_size:
                oldest_key = next(iter(self.cache))
                del self.cache[oldest_key]
                logger.debug(f"LRU cache evicted oldest entry: {oldest_key}")
            self.cache[key] = value

    def update_where(self, predicate: Callable[[str, Any], bool], transform: Callable[[Any], Any]) -> int:
        """Apply ``transform`` to every entry matching ``predicate``; returns the count"""
        with self._lock:
            keys = [key for key, value in self.cache.items() if predicate(key, value)]
            for key in keys:
                self.cache[key] = transform(self.cache[key])
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self.cache.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self.cache)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0
            return {
                "hits": self._hits,
                "misses": self._misses,
                "total_requests": total,
                "hit_rate_percent": round(hit_rate, 2),
                "current_size": len(self.cache),
                "max_size": self.max_size,
            }


class AggregateStatCache:
    """
    Cache of aggregate statistics with stale marking.

    Each entry is ``(scope, stat, stale)``. ``mark_stale`` flips the flag of
    every cached filter variant of a scope. A recompute that started before
    a stale mark is stored as already stale (epoch check), so a slow reader
    cannot hide a newer grade event.

    Usage:
        epoch = cache.epoch
        stat = compute(scope)
        cache.put(scope, stat, epoch)
    """

    def __init__(self, max_size: int = DEFAULT_AGGREGATE_CACHE_MAX_SIZE):
        self._cache = LRUCache(max_size=max_size)
        self._epoch = 0
        self._epoch_lock = threading.Lock()

    @property
    def epoch(self) -> int:
        with self._epoch_lock:
            return self._epoch

    def get(self, scope: AggregateScope) -> Optional[AggregateStat]:
        """Fresh cached stat, or None when missing or stale"""
        entry: Optional[Tuple[AggregateScope, AggregateStat, bool]] = self._cache.get(scope.cache_key)
        if entry is None or entry[2]:
            metrics.aggregate_cache_misses_total.inc()
            return None
        metrics.aggregate_cache_hits_total.inc()
        return entry[1]

    def put(self, scope: AggregateScope, stat: AggregateStat, epoch: Optional[int] = None) -> None:
        with self._epoch_lock:
            stale = epoch is not None and epoch != self._epoch
        self._cache.set(scope.cache_key, (scope, stat, stale))

    def is_stale(self, scope: AggregateScope) -> bool:
        entry = self._cache.get(scope.cache_key)
        return entry is None or entry[2]

    def mark_stale(self, targets: Iterable[Tuple[ScopeKind, Optional[str]]]) -> int:
        """
        Mark every cached variant (any school / grade-level filter) of the
        given (kind, scope_id) pairs as stale. ``scope_id`` is ignored for
        SCHOOL scope.

        Returns:
            Number of entries marked
        """
        wanted = {(kind, None if kind == ScopeKind.SCHOOL else scope_id) for kind, scope_id in targets}

        def _matches(key, entry) -> bool:
            scope = entry[0]
            scope_id = None if scope.kind == ScopeKind.SCHOOL else scope.scope_id
            return (scope.kind, scope_id) in wanted

        with self._epoch_lock:
            self._epoch += 1
        marked = self._cache.update_where(_matches, lambda entry: (entry[0], entry[1], True))
        logger.debug("Marked aggregate stats stale", extra={"targets": len(wanted), "entries": marked})
        return marked

    def clear(self) -> None:
        with self._epoch_lock:
            self._epoch += 1
        self._cache.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {**self._cache.get_stats(), "epoch": self.epoch}
