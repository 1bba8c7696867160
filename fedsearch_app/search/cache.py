"""
Response cache for search results.

Design:
  - In-memory dict cache (results are live ResultItem objects)
  - Keyed by normalized query; each entry remembers its category and a
    category mismatch counts as a miss
  - TTL-based expiration (10 minutes), swept periodically from set()
  - Thread-safe with a lock, last writer wins
  - LRU eviction when the cache exceeds max_entries

Usage:
    cache = ResponseCache(ttl=600, max_entries=500)

    cache.set(parsed_query, results, category="all")
    cached = cache.get(parsed_query, category="all")

    stats = cache.stats()
"""

import time
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .items import ResultItem
from .query_parser import ParsedQuery, serialize_query

DEFAULT_TTL = 10 * 60
DEFAULT_SWEEP_INTERVAL = 5 * 60
DEFAULT_MAX_ENTRIES = 500


@dataclass
class CacheEntry:
    key: str
    results: List[ResultItem] = field(default_factory=list)
    created_at: float = 0.0
    active_category: str = 'all'


class ResponseCache:
    """Thread-safe TTL cache of merged search results."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_entries: Optional[int] = DEFAULT_MAX_ENTRIES,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize cache.

        Args:
            ttl: Time-to-live in seconds (default: 10 minutes)
            max_entries: Maximum entries before LRU eviction (None = unbounded)
            sweep_interval: Seconds between expired-entry sweeps
            clock: Time source (injectable for tests)
        """
        self.ttl = ttl
        self.max_entries = max_entries
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._cache: 'OrderedDict[str, CacheEntry]' = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._last_sweep = clock()

    @staticmethod
    def make_key(parsed_query: ParsedQuery) -> str:
        """Normalized query text (phrase plus sorted filters, lowercased)."""
        return serialize_query(parsed_query).lower().strip()

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at >= self.ttl

    def get(self, parsed_query: ParsedQuery, category: str = 'all') -> Optional[List[ResultItem]]:
        """
        Get cached results if live and recorded for the same category.

        Returns:
            Cached result list or None on miss
        """
        key = self.make_key(parsed_query)
        now = self._clock()

        with self._lock:
            entry = self._cache.get(key)
            if entry is None or entry.active_category != category:
                self._misses += 1
                return None

            if self._is_expired(entry, now):
                del self._cache[key]
                self._misses += 1
                return None

            self._cache.move_to_end(key)
            self._hits += 1
            return list(entry.results)

    def set(self, parsed_query: ParsedQuery, results: List[ResultItem], category: str = 'all') -> None:
        """Store results for a query/category, replacing any previous entry."""
        key = self.make_key(parsed_query)
        now = self._clock()

        with self._lock:
            self._cache[key] = CacheEntry(
                key=key,
                results=list(results),
                created_at=now,
                active_category=category,
            )
            self._cache.move_to_end(key)
            if self.max_entries:
                while len(self._cache) > self.max_entries:
                    self._cache.popitem(last=False)

        if now - self._last_sweep >= self.sweep_interval:
            self.evict_expired()

    def evict_expired(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries evicted
        """
        now = self._clock()
        with self._lock:
            expired_keys = [
                key for key, entry in self._cache.items()
                if self._is_expired(entry, now)
            ]
            for key in expired_keys:
                del self._cache[key]
            self._last_sweep = now
        return len(expired_keys)

    def clear(self) -> None:
        """Clear all cache entries and reset statistics."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with size, max_entries, ttl, hits, misses and hit_rate (%)
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

            return {
                'size': len(self._cache),
                'max_entries': self.max_entries,
                'ttl': self.ttl,
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': round(hit_rate, 2),
            }
