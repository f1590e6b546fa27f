"""
Tests for the league stats service: cache read order, stale fallback and
multi-season requests.

Run with: python -m pytest mfl_analytics/tests/test_league_stats_service.py -v
"""

import asyncio

import pytest

from mfl_analytics.services.cache_service import CacheTTL, build_key
from mfl_analytics.services.league_stats_service import (
    CACHE_FILTERED,
    CACHE_HIT,
    CACHE_MISS,
    CACHE_REFRESH,
    CACHE_STALE,
    LeagueStatsService,
    StatsUnavailableError,
)
from mfl_analytics.models import Position, RosterStatus
from mfl_analytics.services.mfl_client import MFLPartialResultsError, MFLRateLimitError, MFLUnavailableError
from mfl_analytics.tests.conftest import LEAGUE_ID, full_lineup, make_player, make_record, season_records


@pytest.fixture
def service(fake_client, cache):
    return LeagueStatsService(fake_client, cache, LEAGUE_ID)


def expire(clock):
    """Move past the completed-season TTL."""
    clock.advance(CacheTTL.COMPLETED_SEASON + 60)


class TestCacheReads:
    """Test the fresh-entry read path."""

    def test_miss_then_hit(self, service, fake_client):
        first = service.get_aggregates(2024)
        second = service.get_aggregates(2024)

        assert first.metadata['cache_status'] == CACHE_MISS
        assert second.metadata['cache_status'] == CACHE_HIT
        assert fake_client.calls == [2024]
        assert [t.franchise_id for t in second.teams] == ['0001', '0002']

    def test_week_order_hits_same_entry(self, service, fake_client):
        service.get_aggregates(2024, weeks=[1, 2, 3])
        result = service.get_aggregates(2024, weeks=[3, 1, 2])

        assert result.metadata['cache_status'] == CACHE_HIT
        assert fake_client.calls == [2024]

    def test_filtered_from_full_season(self, service, fake_client):
        service.get_aggregates(2024)

        result = service.get_aggregates(2024, weeks=[1, 2])

        assert result.metadata['cache_status'] == CACHE_FILTERED
        assert fake_client.calls == [2024]
        assert result.teams[0].weeks == [1, 2]
        assert result.teams[0].starters_points == pytest.approx(360.0)

    def test_filtered_request_populates_full_season(self, service, cache, fake_client):
        service.get_aggregates(2024, managers=['Alice'])

        assert build_key('aggregates', LEAGUE_ID, 2024) in cache
        result = service.get_aggregates(2024, weeks=[5])

        assert result.metadata['cache_status'] == CACHE_FILTERED
        assert fake_client.calls == [2024]

    def test_force_refresh(self, service, fake_client):
        service.get_aggregates(2024)

        result = service.get_aggregates(2024, force_refresh=True)

        assert result.metadata['cache_status'] == CACHE_REFRESH
        assert fake_client.calls == [2024, 2024]

    def test_expired_entry_is_refetched(self, service, fake_client, clock):
        service.get_aggregates(2024)
        expire(clock)

        result = service.get_aggregates(2024)

        assert result.metadata['cache_status'] == CACHE_MISS
        assert fake_client.calls == [2024, 2024]

    def test_metadata(self, service):
        result = service.get_aggregates(2024, weeks=[1])

        metadata = result.metadata
        assert metadata['ttl_seconds'] == CacheTTL.COMPLETED_SEASON
        assert metadata['filters']['weeks'] == [1]
        assert metadata['weeks_available'] == [1, 2, 3, 4, 5]
        assert metadata['team_count'] == 2
        assert metadata['stale'] is False
        assert metadata['partial'] is False
        assert metadata['missing_weeks'] == []
        assert metadata['warnings'] == []

    def test_filtered_entry_ages_with_full_season(self, service, fake_client, clock):
        service.get_aggregates(2024)
        clock.advance(6 * 86400)

        filtered = service.get_aggregates(2024, weeks=[1, 2])

        assert filtered.metadata['cache_status'] == CACHE_FILTERED
        assert filtered.metadata['cache_age_seconds'] == pytest.approx(6 * 86400)

        clock.advance(5 * 86400)
        result = service.get_aggregates(2024, weeks=[1, 2])

        assert result.metadata['cache_status'] == CACHE_MISS
        assert fake_client.calls == [2024, 2024]

    def test_unslotted_starter_warning(self, service, fake_client):
        mystery = make_player('x', Position.UNKNOWN, 30.0, RosterStatus.STARTER)
        fake_client.records_by_year[2023] = [
            make_record('0001', 1, full_lineup('0001', 10.0) + [mystery], 2023),
        ]

        result = service.get_aggregates(2023)

        [warning] = result.metadata['warnings']
        assert 'Gridiron Gang (2023)' in warning
        assert 'fit no lineup slot' in warning
        assert result.teams[0].unslotted_starters == 1


class TestStaleFallback:
    """Test behavior when upstream fails."""

    def test_exact_entry_served_stale(self, service, fake_client, clock):
        service.get_aggregates(2024, weeks=[1])
        expire(clock)
        fake_client.error = MFLUnavailableError('MFL returned HTTP 503')

        result = service.get_aggregates(2024, weeks=[1])

        assert result.metadata['cache_status'] == CACHE_STALE
        assert result.is_stale
        assert 'HTTP 503' in result.metadata['error']
        assert result.metadata['cache_age_seconds'] == pytest.approx(CacheTTL.COMPLETED_SEASON + 60)

    def test_full_season_entry_refiltered(self, service, fake_client, clock):
        service.get_aggregates(2024)
        expire(clock)
        fake_client.error = MFLRateLimitError('429')

        result = service.get_aggregates(2024, weeks=[4, 5])

        assert result.metadata['cache_status'] == CACHE_STALE
        assert result.teams[0].weeks == [4, 5]

    def test_nothing_cached(self, service, fake_client):
        fake_client.error = MFLUnavailableError('down')

        with pytest.raises(StatsUnavailableError) as exc_info:
            service.get_aggregates(2024)

        assert exc_info.value.near_miss_age_seconds is None
        assert exc_info.value.details == 'down'

    def test_near_miss_age_reported(self, service, fake_client, cache, clock):
        service.get_aggregates(2024, weeks=[1])
        cache.invalidate(build_key('aggregates', LEAGUE_ID, 2024))
        clock.advance(100)
        fake_client.error = MFLUnavailableError('down')

        with pytest.raises(StatsUnavailableError) as exc_info:
            service.get_aggregates(2024, weeks=[2])

        assert exc_info.value.near_miss_age_seconds == pytest.approx(100.0)
        assert exc_info.value.to_dict()['near_miss_age_seconds'] == pytest.approx(100.0)

    def test_no_data_with_empty_cache(self, cache):
        from mfl_analytics.tests.conftest import FakeMFLClient

        service = LeagueStatsService(FakeMFLClient(records_by_year={}), cache, LEAGUE_ID)

        with pytest.raises(StatsUnavailableError):
            service.get_aggregates(2019)


class TestPartialSeason:
    """Test seasons cut short by upstream rate limiting."""

    @pytest.fixture
    def rate_limited(self, fake_client):
        fake_client.errors[2024] = MFLPartialResultsError(
            'Rate limited at week 3', season_records(weeks=[1, 2]), list(range(3, 23))
        )
        return fake_client

    def test_partial_season_is_flagged_and_not_cached(self, service, cache, rate_limited):
        result = service.get_aggregates(2024)

        metadata = result.metadata
        assert metadata['cache_status'] == CACHE_MISS
        assert metadata['partial'] is True
        assert result.is_partial
        assert metadata['missing_weeks'] == list(range(3, 23))
        assert metadata['weeks_available'] == [1, 2]
        assert 'weeks 3-22 of 2024 were not fetched' in metadata['warnings'][0]
        assert result.teams[0].weeks == [1, 2]
        assert build_key('aggregates', LEAGUE_ID, 2024) not in cache
        assert len(cache) == 0

    def test_next_request_retries_upstream(self, service, rate_limited):
        service.get_aggregates(2024, weeks=[1])
        del rate_limited.errors[2024]

        result = service.get_aggregates(2024, weeks=[1])

        assert result.metadata['cache_status'] == CACHE_MISS
        assert result.metadata['partial'] is False
        assert rate_limited.calls == [2024, 2024]

    def test_cached_full_season_preferred(self, service, fake_client, clock):
        service.get_aggregates(2024)
        expire(clock)
        fake_client.errors[2024] = MFLPartialResultsError('429', season_records(weeks=[1, 2]), [3, 4, 5])

        result = service.get_aggregates(2024, weeks=[4, 5])

        assert result.metadata['cache_status'] == CACHE_STALE
        assert result.is_stale
        assert result.metadata['weeks_available'] == [1, 2, 3, 4, 5]
        assert result.teams[0].weeks == [4, 5]
        assert result.metadata['warnings']


class TestWeekValidation:
    def test_out_of_range_weeks(self, service, fake_client):
        result = service.get_aggregates(2024, weeks=[0, 30])

        assert result.teams == []
        assert result.metadata['warnings']
        assert fake_client.calls == []

    def test_partially_valid_weeks(self, service):
        result = service.get_aggregates(2024, weeks=[2, 30])

        assert result.teams[0].weeks == [2]


class TestMultiYear:
    """Test concurrent multi-season requests."""

    def test_partial_success(self, service, fake_client):
        fake_client.records_by_year[2023] = season_records(2023)
        fake_client.errors[2022] = MFLUnavailableError('down')

        result = asyncio.run(service.get_multi_year_aggregates([2024, 2022, 2023]))

        assert sorted(result.results) == [2023, 2024]
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith('2022:')
        assert result.results[2023].teams[0].year == 2023

    def test_filters_apply_to_every_year(self, service, fake_client):
        fake_client.records_by_year[2023] = season_records(2023)

        result = asyncio.run(service.get_multi_year_aggregates([2023, 2024], weeks=[1]))

        assert all(r.teams[0].weeks == [1] for r in result.results.values())
        assert set(result.to_dict()['years']) == {'2023', '2024'}


class TestRankingsAndDebug:
    def test_rankings(self, service):
        teams = service.get_aggregates(2024).teams

        entries = service.get_rankings(teams, 'power')

        assert entries[0].franchise_id == '0001'
        assert entries[0].rank == 1

    def test_unknown_category(self, service):
        with pytest.raises(ValueError):
            service.get_rankings([], 'vibes')

    def test_debug_report(self, service):
        report = service.get_debug_report(2024, 1, '0001')

        assert report['totals']['bench_points'] == pytest.approx(20.0)
        assert service.get_debug_report(2024, 9, '0001') is None

    def test_weekly_progression(self, service, fake_client):
        progression = service.get_weekly_progression(2024, weeks=[1, 2], managers=['Alice'])

        [team] = progression['teams']
        assert team['franchise_id'] == '0001'
        assert team['team_name'] == 'Gridiron Gang'
        assert [w['week'] for w in team['weekly_scores']] == [1, 2]
        assert team['weekly_scores'][-1]['cumulative_total_points'] == pytest.approx(360.0)
        assert progression['metadata']['cache_status'] == CACHE_MISS

        again = service.get_weekly_progression(2024)

        assert again['metadata']['cache_status'] == CACHE_HIT
        assert [t['franchise_id'] for t in again['teams']] == ['0001', '0002']
        assert fake_client.calls == [2024]

    def test_weekly_progression_without_valid_weeks(self, service):
        progression = service.get_weekly_progression(2024, weeks=[30])

        assert progression['teams'] == []
        assert progression['metadata']['warnings']


class TestCacheManagement:
    def test_cache_status(self, service, clock):
        assert service.cache_status(2024)['status'] == 'MISS'
        assert service.cache_status(2024)['created_at'] is None

        service.get_aggregates(2024)
        fresh = service.cache_status(2024)
        assert fresh['status'] == 'FRESH'
        assert fresh['created_at'] == '2026-10-18T12:00:00'

        expire(clock)
        status = service.cache_status(2024)
        assert status['status'] == 'STALE'
        assert status['entries'] == 1

    def test_invalidate(self, service):
        service.get_aggregates(2024)
        service.get_aggregates(2024, weeks=[1])

        assert service.invalidate(2024) == 2
        assert service.cache_status(2024)['status'] == 'MISS'

    def test_refresh_current_season(self, service, fake_client):
        fake_client.records_by_year[2026] = season_records(2026)

        result = service.refresh_current_season()

        assert fake_client.calls == [2026]
        assert result.metadata['cache_status'] == CACHE_REFRESH
        assert result.metadata['ttl_seconds'] == CacheTTL.CURRENT_SEASON
