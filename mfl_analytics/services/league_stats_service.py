"""
League Stats Service for MFL League Analytics.

This service handles:
- Aggregates for one season under week / manager / franchise filters
- Serving cached results: fresh hits, week subsets re-aggregated from a
  fresh full-season entry, and stale entries when upstream fails
- Category rankings over aggregated teams
- Week-by-week progression series from the cached weekly records
- Partial seasons (upstream rate limited mid-fetch): served with a warning
  and never cached, so the next request retries upstream
- Concurrent multi-season requests with per-season partial failure

Every computation fetches and caches the full season first; filtered
requests are derived from it, so a later filtered request for the same
season never goes back upstream while the season entry is fresh.

Usage:
    service = LeagueStatsService(client, cache, league_id='46221')
    result = service.get_aggregates(2024, weeks=[1, 2, 3])
    rankings = service.get_rankings(result.teams, 'power')
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from mfl_analytics.analyzers.aggregator import (
    aggregate,
    build_debug_report,
    calculate_position_rankings,
    lineup_warnings,
    weekly_series,
)
from mfl_analytics.analyzers.ranking_engine import rank
from mfl_analytics.models import (
    DEFAULT_LINEUP_REQUIREMENTS,
    FranchiseInfo,
    PositionRanking,
    RankingEntry,
    SlotRequirement,
    StatsSnapshot,
    TeamAggregate,
    TeamWeekRecord,
)
from mfl_analytics.services.cache_service import CacheService, build_key, season_prefix
from mfl_analytics.services.mfl_client import MFLClient, MFLNoDataError, MFLPartialResultsError
from mfl_analytics.services.season_calendar import clamp_weeks, current_nfl_season

logger = logging.getLogger(__name__)


METRIC = 'aggregates'

# Cache status values reported in response metadata
CACHE_HIT = 'HIT'
CACHE_MISS = 'MISS'
CACHE_FILTERED = 'FILTERED'
CACHE_REFRESH = 'REFRESH'
CACHE_STALE = 'STALE'


# =============================================================================
# Exceptions / Results
# =============================================================================

class StatsUnavailableError(Exception):
    """
    Raised when stats cannot be computed and nothing is cached to fall back on.
    """

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        near_miss_age_seconds: Optional[float] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.near_miss_age_seconds = near_miss_age_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': self.message,
            'details': self.details,
            'near_miss_age_seconds': self.near_miss_age_seconds,
        }


@dataclass
class AggregatesResult:
    """
    Teams, positional rankings and cache metadata for one request.

    `weekly_records` are the season's raw records the teams came from; they
    back the debug and progression views and are not serialized.
    """
    teams: List[TeamAggregate]
    position_rankings: Dict[str, List[PositionRanking]]
    metadata: Dict[str, Any]
    franchises: Dict[str, FranchiseInfo] = field(default_factory=dict)
    weekly_records: List[TeamWeekRecord] = field(default_factory=list, repr=False)

    @property
    def is_stale(self) -> bool:
        return bool(self.metadata.get('stale'))

    @property
    def is_partial(self) -> bool:
        return bool(self.metadata.get('partial'))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'teams': [team.to_dict() for team in self.teams],
            'position_rankings': {
                slot: [entry.to_dict() for entry in entries]
                for slot, entries in self.position_rankings.items()
            },
            'franchises': {fid: info.to_dict() for fid, info in self.franchises.items()},
            'metadata': self.metadata,
        }


@dataclass
class MultiYearResult:
    """Per-season results of a multi-season request."""
    results: Dict[int, AggregatesResult]
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'years': {str(year): result.to_dict() for year, result in self.results.items()},
            'warnings': list(self.warnings),
        }


# =============================================================================
# League Stats Service
# =============================================================================

class LeagueStatsService:
    """
    Query surface over the upstream client, aggregator and cache.

    Usage:
        service = LeagueStatsService(MFLClient(), CacheService(), '46221')
        result = service.get_aggregates(2024)
    """

    def __init__(
        self,
        client: MFLClient,
        cache: CacheService,
        league_id: str,
        requirements: SlotRequirement = DEFAULT_LINEUP_REQUIREMENTS
    ):
        """
        Initialize the stats service.

        Args:
            client: Upstream data source
            cache: Cache instance shared by the application
            league_id: MFL league id
            requirements: Lineup slot table
        """
        self.client = client
        self.cache = cache
        self.league_id = str(league_id)
        self.requirements = requirements

    # =========================================================================
    # Aggregates
    # =========================================================================

    def get_aggregates(
        self,
        year: int,
        weeks: Optional[Iterable[int]] = None,
        managers: Optional[Iterable[str]] = None,
        franchise_ids: Optional[Iterable[str]] = None,
        force_refresh: bool = False
    ) -> AggregatesResult:
        """
        Get per-team aggregates for a season.

        Read order:
        1. Fresh entry for the exact filters (HIT)
        2. Fresh full-season entry, re-aggregated for the filters (FILTERED)
        3. Upstream fetch of the full season (MISS, or REFRESH when forced)
        4. On upstream failure, the exact entry or the full-season entry of
           any age (STALE)

        A FILTERED entry keeps the full-season entry's write time, so it
        expires with its source. A season cut short by rate limiting is
        returned with `partial` set and a warning, and is not cached; a
        cached season with more weeks is served STALE instead.

        Args:
            year: Season year
            weeks: Weeks to include (None or empty means all)
            managers: Manager names to keep
            franchise_ids: Franchise ids to keep (wins over managers)
            force_refresh: Skip cache reads and fetch upstream

        Returns:
            AggregatesResult

        Raises:
            StatsUnavailableError: If upstream fails and nothing is cached
        """
        warnings: List[str] = []
        clamped = clamp_weeks(year, weeks)
        if clamped is not None and len(clamped) == 0:
            warnings.append(f"No requested weeks are valid for {year}")
            return AggregatesResult(
                teams=[],
                position_rankings={},
                metadata=self._metadata(year, None, CACHE_MISS, None, warnings=warnings),
            )

        managers = sorted(set(managers)) if managers else None
        franchise_ids = sorted(set(franchise_ids)) if franchise_ids else None

        key = build_key(METRIC, self.league_id, year, clamped, managers, franchise_ids)
        full_key = build_key(METRIC, self.league_id, year)
        is_full_request = key == full_key
        ttl = self.cache.ttl_for_season(year)

        if not force_refresh:
            entry = self.cache.get_fresh(key, ttl)
            if entry is not None:
                return self._result(entry.data, year, key, CACHE_HIT, self.cache.age_seconds(entry))

            if not is_full_request:
                full_entry = self.cache.get_fresh(full_key, ttl)
                if full_entry is not None:
                    snapshot = self._derive(full_entry.data, clamped, managers, franchise_ids)
                    self.cache.set(key, snapshot, timestamp=full_entry.timestamp)
                    logger.debug(f"Served {key} from full-season entry")
                    return self._result(
                        snapshot, year, key, CACHE_FILTERED, self.cache.age_seconds(full_entry)
                    )

        try:
            full_snapshot, missing_weeks = self._compute_full_season(year)
        except Exception as e:
            logger.error(f"Failed to compute aggregates for {year}: {e}", exc_info=True)
            return self._stale_fallback(year, key, full_key, clamped, managers, franchise_ids, e)

        status = CACHE_REFRESH if force_refresh else CACHE_MISS
        if missing_weeks:
            return self._partial_result(
                year, key, full_key, clamped, managers, franchise_ids, full_snapshot, missing_weeks, status
            )

        self.cache.set(full_key, full_snapshot)
        snapshot = full_snapshot
        if not is_full_request:
            snapshot = self._derive(full_snapshot, clamped, managers, franchise_ids)
            self.cache.set(key, snapshot)

        return self._result(snapshot, year, key, status, 0.0)

    def _compute_full_season(self, year: int) -> Tuple[StatsSnapshot, List[int]]:
        """Fetch and aggregate a season; also returns the weeks upstream never delivered."""
        missing_weeks: List[int] = []
        try:
            records = self.client.fetch_all_weekly_results(year, self.league_id, today=self.cache.today())
        except MFLPartialResultsError as e:
            logger.warning(f"Season {year} fetched partially: {e}")
            records, missing_weeks = e.records, e.missing_weeks

        try:
            franchises = self.client.fetch_franchises(self.league_id, year)
        except MFLNoDataError as e:
            logger.warning(f"No franchise names for {year}, using ids: {e}")
            franchises = {}

        return self._build_snapshot(year, records, franchises), missing_weeks

    def _build_snapshot(
        self,
        year: int,
        records: List[TeamWeekRecord],
        franchises: Dict[str, FranchiseInfo],
        weeks: Optional[List[int]] = None,
        managers: Optional[List[str]] = None,
        franchise_ids: Optional[List[str]] = None
    ) -> StatsSnapshot:
        teams = aggregate(
            records,
            week_filter=weeks,
            manager_filter=managers,
            franchise_filter=franchise_ids,
            franchises=franchises,
            requirements=self.requirements,
        )
        return StatsSnapshot(
            year=year,
            league_id=self.league_id,
            teams=teams,
            position_rankings=calculate_position_rankings(teams, self.requirements),
            weekly_records=records,
            franchises=franchises,
            weeks=weeks,
            managers=managers,
            franchise_ids=franchise_ids,
        )

    def _derive(
        self,
        full_snapshot: StatsSnapshot,
        weeks: Optional[List[int]],
        managers: Optional[List[str]],
        franchise_ids: Optional[List[str]]
    ) -> StatsSnapshot:
        """Re-aggregate a full-season snapshot's raw records for a filter set."""
        return self._build_snapshot(
            full_snapshot.year,
            full_snapshot.weekly_records,
            full_snapshot.franchises,
            weeks,
            managers,
            franchise_ids,
        )

    def _stale_fallback(
        self,
        year: int,
        key: str,
        full_key: str,
        weeks: Optional[List[int]],
        managers: Optional[List[str]],
        franchise_ids: Optional[List[str]],
        error: Exception
    ) -> AggregatesResult:
        entry = self.cache.get(key)
        if entry is not None:
            snapshot = entry.data
        else:
            entry = self.cache.get(full_key) if key != full_key else None
            if entry is None:
                near_miss = self.cache.youngest_entry(season_prefix(METRIC, self.league_id, year))
                age = round(self.cache.age_seconds(near_miss), 1) if near_miss else None
                raise StatsUnavailableError(
                    f"Stats for {year} are unavailable",
                    details=str(error),
                    near_miss_age_seconds=age,
                )
            snapshot = self._derive(entry.data, weeks, managers, franchise_ids)

        age = self.cache.age_seconds(entry)
        logger.warning(f"Serving stale {key} (age={age:.0f}s) after upstream failure: {error}")
        return self._result(snapshot, year, key, CACHE_STALE, age, error=str(error))

    def _partial_result(
        self,
        year: int,
        key: str,
        full_key: str,
        weeks: Optional[List[int]],
        managers: Optional[List[str]],
        franchise_ids: Optional[List[str]],
        partial: StatsSnapshot,
        missing_weeks: List[int],
        status: str
    ) -> AggregatesResult:
        fetched_weeks = {r.week for r in partial.weekly_records}
        warning = (
            f"Upstream rate limited: weeks {missing_weeks[0]}-{missing_weeks[-1]} of {year} "
            f"were not fetched; results cover {len(fetched_weeks)} weeks"
        )

        previous = self.cache.get(full_key)
        if previous is not None and len({r.week for r in previous.data.weekly_records}) > len(fetched_weeks):
            snapshot = previous.data if key == full_key else self._derive(previous.data, weeks, managers, franchise_ids)
            age = self.cache.age_seconds(previous)
            logger.warning(f"Serving stale {key} (age={age:.0f}s) over a partial fetch of {year}")
            return self._result(snapshot, year, key, CACHE_STALE, age, error=warning, warnings=[warning])

        snapshot = partial if key == full_key else self._derive(partial, weeks, managers, franchise_ids)
        logger.warning(f"Serving uncached partial season {year}: {warning}")
        return self._result(snapshot, year, key, status, 0.0, warnings=[warning], missing_weeks=missing_weeks)

    # =========================================================================
    # Rankings
    # =========================================================================

    def get_rankings(self, teams: List[TeamAggregate], category: Any) -> List[RankingEntry]:
        """
        Rank aggregated teams in one category.

        Raises:
            ValueError: If the category is unknown
        """
        return rank(teams, category)

    def get_debug_report(self, year: int, week: int, franchise_id: str) -> Optional[Dict[str, Any]]:
        """
        Lineup breakdown for one franchise-week, from the season's cached records.

        Returns:
            Report dictionary, or None if the franchise has no record that week

        Raises:
            StatsUnavailableError: If the season cannot be loaded
        """
        for record in self.get_aggregates(year).weekly_records:
            if record.week == week and record.franchise_id == franchise_id:
                return build_debug_report(record, self.requirements)
        return None

    # =========================================================================
    # Weekly Progression
    # =========================================================================

    def get_weekly_progression(
        self,
        year: int,
        weeks: Optional[Iterable[int]] = None,
        managers: Optional[Iterable[str]] = None,
        franchise_ids: Optional[Iterable[str]] = None,
        force_refresh: bool = False
    ) -> Dict[str, Any]:
        """
        Week-by-week points per team under the same filters as get_aggregates.

        Built from the season's weekly records, so it is served from cache
        whenever the matching aggregates are.

        Returns:
            {'teams': [...], 'metadata': {...}} with the aggregates metadata
        """
        result = self.get_aggregates(year, weeks, managers, franchise_ids, force_refresh)
        if not result.teams:
            return {'teams': [], 'metadata': result.metadata}

        series = weekly_series(
            result.weekly_records,
            week_filter=result.metadata.get('filters', {}).get('weeks'),
            franchise_filter=[team.franchise_id for team in result.teams],
            franchises=result.franchises,
            requirements=self.requirements,
        )
        return {'teams': series, 'metadata': result.metadata}

    # =========================================================================
    # Multi-Season
    # =========================================================================

    async def get_multi_year_aggregates(
        self,
        years: Iterable[int],
        weeks: Optional[Iterable[int]] = None,
        managers: Optional[Iterable[str]] = None,
        franchise_ids: Optional[Iterable[str]] = None,
        force_refresh: bool = False
    ) -> MultiYearResult:
        """
        Get aggregates for several seasons concurrently.

        Each season runs in its own worker thread. Seasons that fail are
        reported in `warnings`; the rest are returned.
        """
        years = sorted(set(years))
        weeks = list(weeks) if weeks else None
        managers = list(managers) if managers else None
        franchise_ids = list(franchise_ids) if franchise_ids else None

        outcomes = await asyncio.gather(
            *(
                asyncio.to_thread(
                    self.get_aggregates, year, weeks, managers, franchise_ids, force_refresh
                )
                for year in years
            ),
            return_exceptions=True,
        )

        results: Dict[int, AggregatesResult] = {}
        warnings: List[str] = []
        for year, outcome in zip(years, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Aggregates for {year} failed: {outcome}")
                warnings.append(f"{year}: {outcome}")
            else:
                results[year] = outcome

        return MultiYearResult(results=results, warnings=warnings)

    # =========================================================================
    # Cache Management
    # =========================================================================

    def cache_status(self, year: int) -> Dict[str, Any]:
        """Freshness of the full-season entry for a year (FRESH, STALE or MISS)."""
        key = build_key(METRIC, self.league_id, year)
        ttl = self.cache.ttl_for_season(year)
        info = self.cache.get_entry_info(key, ttl)

        if info is None:
            status = 'MISS'
        else:
            status = 'FRESH' if info['is_fresh'] else 'STALE'

        return {
            'year': year,
            'key': key,
            'status': status,
            'age_seconds': info['age'] if info else None,
            'created_at': info['created_at'] if info else None,
            'ttl_seconds': ttl,
            'entries': len(self.cache.get_keys(season_prefix(METRIC, self.league_id, year))),
        }

    def invalidate(self, year: int) -> int:
        """Drop every cached entry for a season."""
        return self.cache.invalidate_season(self.league_id, year, METRIC)

    def refresh_current_season(self) -> AggregatesResult:
        """Force a fresh fetch of the season in progress."""
        year = current_nfl_season(self.cache.today())
        logger.info(f"Refreshing current season {year}")
        return self.get_aggregates(year, force_refresh=True)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _result(
        self,
        snapshot: StatsSnapshot,
        year: int,
        key: str,
        status: str,
        age_seconds: Optional[float],
        error: Optional[str] = None,
        warnings: Optional[List[str]] = None,
        missing_weeks: Optional[List[int]] = None
    ) -> AggregatesResult:
        return AggregatesResult(
            teams=snapshot.teams,
            position_rankings=snapshot.position_rankings,
            franchises=snapshot.franchises,
            weekly_records=snapshot.weekly_records,
            metadata=self._metadata(
                year, key, status, age_seconds, snapshot, error, warnings, missing_weeks
            ),
        )

    def _metadata(
        self,
        year: int,
        key: Optional[str],
        status: str,
        age_seconds: Optional[float],
        snapshot: Optional[StatsSnapshot] = None,
        error: Optional[str] = None,
        warnings: Optional[List[str]] = None,
        missing_weeks: Optional[List[int]] = None
    ) -> Dict[str, Any]:
        metadata = {
            'year': year,
            'league_id': self.league_id,
            'cache_key': key,
            'cache_status': status,
            'cache_age_seconds': round(age_seconds, 1) if age_seconds is not None else None,
            'stale': status == CACHE_STALE,
            'ttl_seconds': self.cache.ttl_for_season(year),
            'partial': bool(missing_weeks),
            'missing_weeks': list(missing_weeks or []),
            'warnings': list(warnings or []),
        }
        if snapshot is not None:
            metadata['filters'] = {
                'weeks': snapshot.weeks,
                'managers': snapshot.managers,
                'franchise_ids': snapshot.franchise_ids,
            }
            metadata['weeks_available'] = sorted({r.week for r in snapshot.weekly_records})
            metadata['team_count'] = len(snapshot.teams)
            metadata['warnings'].extend(lineup_warnings(snapshot.teams))
        if error is not None:
            metadata['error'] = error
        return metadata
