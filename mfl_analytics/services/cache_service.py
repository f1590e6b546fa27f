"""
In-Memory Caching Service for MFL League Analytics.

Keyed store for computed stats with season-aware TTL tiers and stale reads.

Features:
- Canonical keys: the same filters in any order map to one key
- TTL decided at read time: short while a season is in progress, long once
  it is complete
- Entries are kept past their TTL so they can serve as stale fallbacks;
  `cleanup` evicts entries too old to be useful even for that
- Prefix and per-season invalidation
- Hit, miss and eviction counters for the status endpoints

One instance is created per application and injected into the services
that need it; tests build their own instances with a fake clock.
"""

import logging
import threading
import time
from collections import Counter
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from mfl_analytics.services.season_calendar import is_season_complete

logger = logging.getLogger(__name__)


class CacheTTL:
    """Default lifetimes, in seconds."""

    # Scores for an in-progress season change weekly
    CURRENT_SEASON = 24 * 3600  # 24 hours

    # Completed seasons only change on stat corrections
    COMPLETED_SEASON = 7 * 86400  # 7 days

    # Oldest entry kept around as a stale fallback
    MAX_ENTRY_AGE = 30 * 86400  # 30 days


def _canonical(values: Optional[Iterable[Any]]) -> str:
    if not values:
        return 'all'
    cleaned = {v.strip() if isinstance(v, str) else v for v in values}
    cleaned.discard('')
    if not cleaned:
        return 'all'
    return ','.join(str(v) for v in sorted(cleaned))


def season_prefix(metric: str, league_id: str, year: int) -> str:
    """Key prefix shared by every entry for one season."""
    return f"{metric}:{league_id}:{year}:"


def build_key(
    metric: str,
    league_id: str,
    year: int,
    weeks: Optional[Iterable[int]] = None,
    managers: Optional[Iterable[str]] = None,
    franchise_ids: Optional[Iterable[str]] = None
) -> str:
    """
    Build a canonical cache key.

    Filters are deduplicated and sorted; absent or empty filters become
    'all'. Weeks sort numerically.

    Example:
        build_key('aggregates', '46221', 2025, weeks=[3, 1, 2])
        # 'aggregates:46221:2025:franchises=all|managers=all|weeks=1,2,3'
    """
    week_values = [int(w) for w in weeks] if weeks else None
    return (
        f"{season_prefix(metric, league_id, year)}"
        f"franchises={_canonical(franchise_ids)}"
        f"|managers={_canonical(managers)}"
        f"|weeks={_canonical(week_values)}"
    )


def ttl_for_season(
    year: int,
    today: Optional[date] = None,
    current_season_ttl: int = CacheTTL.CURRENT_SEASON,
    completed_season_ttl: int = CacheTTL.COMPLETED_SEASON
) -> int:
    """
    Pick the TTL tier for a season.

    Returns:
        TTL in seconds: the long tier once the season is complete,
        the short tier otherwise
    """
    if is_season_complete(year, today):
        return completed_season_ttl
    return current_season_ttl


class CacheEntry:
    """
    A cached payload and its write time (epoch milliseconds).

    Entries are never mutated; a refresh replaces the entry.
    """

    __slots__ = ['key', 'data', 'timestamp']

    def __init__(self, key: str, data: Any, timestamp: int):
        self.key = key
        self.data = data
        self.timestamp = timestamp

    def age_seconds(self, now_ms: int) -> float:
        return max(0, now_ms - self.timestamp) / 1000.0

    def is_fresh(self, now_ms: int, ttl: int) -> bool:
        return now_ms - self.timestamp < ttl * 1000

    def to_dict(self) -> Dict[str, Any]:
        data = self.data.to_dict() if hasattr(self.data, 'to_dict') else self.data
        return {
            'key': self.key,
            'data': data,
            'timestamp': self.timestamp,
        }

    def __repr__(self) -> str:
        return f"CacheEntry(key={self.key!r}, timestamp={self.timestamp})"


class CacheService:
    """
    Keyed in-memory store with season-aware TTL tiers.

    `get` returns entries of any age; freshness is judged by the caller via
    `is_fresh` / `get_fresh`, which lets an expired entry still serve as a
    stale fallback. All access is serialized on one re-entrant lock.

    Usage:
        cache = CacheService()
        key = build_key('aggregates', '46221', 2024)
        cache.set(key, snapshot)
        entry = cache.get_fresh(key, cache.ttl_for_season(2024))
    """

    def __init__(
        self,
        current_season_ttl: int = CacheTTL.CURRENT_SEASON,
        completed_season_ttl: int = CacheTTL.COMPLETED_SEASON,
        max_entry_age: int = CacheTTL.MAX_ENTRY_AGE,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            current_season_ttl: TTL in seconds while a season is in progress
            completed_season_ttl: TTL in seconds once a season is complete
            max_entry_age: Age in seconds after which cleanup evicts an entry
            clock: Returns the current epoch time in seconds
        """
        self.current_season_ttl = current_season_ttl
        self.completed_season_ttl = completed_season_ttl
        self.max_entry_age = max_entry_age
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._guard = threading.RLock()
        self._counters: Counter = Counter()

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def today(self) -> date:
        return datetime.fromtimestamp(self._clock()).date()

    def ttl_for_season(self, year: int) -> int:
        return ttl_for_season(year, self.today(), self.current_season_ttl, self.completed_season_ttl)

    def is_fresh(self, entry: CacheEntry, ttl: int) -> bool:
        return entry.is_fresh(self.now_ms(), ttl)

    def age_seconds(self, entry: CacheEntry) -> float:
        return entry.age_seconds(self.now_ms())

    # -------------------------------------------------------------------------
    # Reads and writes
    # -------------------------------------------------------------------------

    def get(self, key: str) -> Optional[CacheEntry]:
        """Entry stored under `key` whatever its age, or None."""
        with self._guard:
            entry = self._entries.get(key)
            self._counters['misses' if entry is None else 'hits'] += 1
        if entry is None:
            logger.debug(f"cache miss {key}")
        else:
            logger.debug(f"cache hit {key} age={self.age_seconds(entry):.1f}s")
        return entry

    def get_fresh(self, key: str, ttl: int) -> Optional[CacheEntry]:
        """Entry stored under `key` if younger than `ttl` seconds."""
        entry = self.get(key)
        if entry is not None and self.is_fresh(entry, ttl):
            return entry
        return None

    def set(self, key: str, data: Any, timestamp: Optional[int] = None) -> CacheEntry:
        """
        Store `data` under `key`, replacing any previous entry.

        Args:
            timestamp: Write time in epoch ms; pass the source entry's time
                for data derived from another entry so it ages with it
        """
        entry = CacheEntry(key, data, self.now_ms() if timestamp is None else timestamp)
        with self._guard:
            self._entries[key] = entry
            self._counters['sets'] += 1
        return entry

    def youngest_entry(self, prefix: str) -> Optional[CacheEntry]:
        """Most recently written entry whose key starts with `prefix`."""
        with self._guard:
            candidates = [e for k, e in self._entries.items() if k.startswith(prefix)]
        return max(candidates, key=lambda e: e.timestamp, default=None)

    def get_keys(self, prefix: Optional[str] = None) -> List[str]:
        with self._guard:
            return [k for k in self._entries if not prefix or k.startswith(prefix)]

    # -------------------------------------------------------------------------
    # Removal
    # -------------------------------------------------------------------------

    def _drop_where(self, predicate: Callable[[str, CacheEntry], bool], counter: str) -> int:
        with self._guard:
            doomed = [k for k, e in self._entries.items() if predicate(k, e)]
            for k in doomed:
                del self._entries[k]
            self._counters[counter] += len(doomed)
        return len(doomed)

    def invalidate(self, key: str) -> bool:
        """Remove one entry; False if there was none."""
        return self._drop_where(lambda k, _: k == key, 'deletes') > 0

    def invalidate_pattern(self, prefix: str) -> int:
        """Remove every entry whose key starts with `prefix`."""
        return self._drop_where(lambda k, _: k.startswith(prefix), 'deletes')

    def invalidate_season(self, league_id: str, year: int, metric: str = 'aggregates') -> int:
        """Remove every cached variant (any filters) of one season."""
        removed = self.invalidate_pattern(season_prefix(metric, league_id, year))
        logger.info(f"Dropped {removed} cached entries for league {league_id} season {year}")
        return removed

    def clear(self) -> int:
        removed = self._drop_where(lambda k, e: True, 'deletes')
        logger.info(f"Cache emptied ({removed} entries)")
        return removed

    def cleanup(self, max_age: Optional[int] = None) -> int:
        """
        Evict entries too old to serve even as stale fallbacks.

        Args:
            max_age: Age limit in seconds (defaults to max_entry_age)

        Returns:
            Number of entries evicted
        """
        limit = self.max_entry_age if max_age is None else max_age
        now_ms = self.now_ms()
        evicted = self._drop_where(lambda k, e: e.age_seconds(now_ms) > limit, 'evictions')
        if evicted:
            logger.debug(f"Evicted {evicted} entries older than {limit}s")
        return evicted

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Entry count, counters and hit rate (percent of reads that found an entry)."""
        with self._guard:
            counters = dict(self._counters)
            entries = len(self._entries)
        reads = counters.get('hits', 0) + counters.get('misses', 0)
        stats = {name: counters.get(name, 0) for name in ('hits', 'misses', 'sets', 'deletes', 'evictions')}
        stats['entries'] = entries
        stats['hit_rate'] = round(100.0 * stats['hits'] / reads, 2) if reads else 0.0
        return stats

    def get_entry_info(self, key: str, ttl: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Age and write time of one entry, plus freshness when `ttl` is given."""
        with self._guard:
            entry = self._entries.get(key)
        if entry is None:
            return None

        info = {
            'key': key,
            'age': round(self.age_seconds(entry), 1),
            'created_at': datetime.fromtimestamp(entry.timestamp / 1000).isoformat(),
        }
        if ttl is not None:
            info['ttl'] = ttl
            info['is_fresh'] = self.is_fresh(entry, ttl)
        return info

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._guard:
            return key in self._entries
