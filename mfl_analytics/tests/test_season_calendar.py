"""
Tests for NFL season date arithmetic.
"""

from datetime import date

import pytest

from mfl_analytics.services.season_calendar import (
    DEFAULT_TOTAL_WEEKS,
    SEASON_COMPLETED,
    SEASON_CURRENT,
    SEASON_FUTURE,
    clamp_weeks,
    current_nfl_season,
    current_week,
    is_playoff_week,
    is_season_complete,
    is_valid_year,
    season_start_date,
    season_status,
    weeks_to_fetch,
)


class TestSeasonBoundaries:
    @pytest.mark.parametrize('year,expected', [
        (2024, date(2024, 9, 5)),
        (2025, date(2025, 9, 4)),
        (2026, date(2026, 9, 3)),
    ])
    def test_start_is_first_thursday_of_september(self, year, expected):
        assert season_start_date(year) == expected

    def test_season_complete_after_mid_february(self):
        assert not is_season_complete(2024, date(2025, 2, 15))
        assert is_season_complete(2024, date(2025, 2, 16))

    @pytest.mark.parametrize('today,expected', [
        (date(2026, 10, 18), 2026),
        (date(2026, 1, 10), 2025),
        (date(2026, 8, 31), 2025),
        (date(2026, 9, 1), 2026),
    ])
    def test_current_nfl_season(self, today, expected):
        assert current_nfl_season(today) == expected

    def test_season_status(self):
        today = date(2026, 10, 18)

        assert season_status(2024, today) == SEASON_COMPLETED
        assert season_status(2026, today) == SEASON_CURRENT
        assert season_status(2027, today) == SEASON_FUTURE

    def test_valid_years(self):
        today = date(2026, 10, 18)

        assert is_valid_year(2000, today)
        assert is_valid_year(2031, today)
        assert not is_valid_year(1999, today)
        assert not is_valid_year(2032, today)


class TestWeeks:
    def test_current_week_mid_season(self):
        # 45 days after 2026-09-03
        assert current_week(2026, date(2026, 10, 18)) == 7

    def test_current_week_before_kickoff(self):
        assert current_week(2026, date(2026, 8, 1)) == 1

    def test_current_week_clamped_to_season_length(self):
        assert current_week(2024, date(2026, 10, 18)) == DEFAULT_TOTAL_WEEKS

    def test_weeks_to_fetch_current_season(self):
        assert weeks_to_fetch(2026, date(2026, 10, 18)) == [1, 2, 3, 4, 5, 6]

    def test_weeks_to_fetch_opening_week(self):
        assert weeks_to_fetch(2026, date(2026, 9, 4)) == [1]

    def test_weeks_to_fetch_completed_season(self):
        assert weeks_to_fetch(2024, date(2026, 10, 18)) == list(range(1, DEFAULT_TOTAL_WEEKS + 1))

    def test_weeks_to_fetch_offseason_includes_final_week(self):
        # Season over, but 2025 is still the "current" season until September
        assert is_season_complete(2025, date(2026, 6, 1))
        assert weeks_to_fetch(2025, date(2026, 6, 1)) == list(range(1, DEFAULT_TOTAL_WEEKS + 1))

    def test_weeks_to_fetch_after_last_week_before_season_end(self):
        assert weeks_to_fetch(2025, date(2026, 2, 10)) == list(range(1, DEFAULT_TOTAL_WEEKS + 1))

    def test_weeks_to_fetch_during_last_week(self):
        assert weeks_to_fetch(2025, date(2026, 2, 1)) == list(range(1, DEFAULT_TOTAL_WEEKS))

    def test_weeks_to_fetch_future_season(self):
        assert weeks_to_fetch(2027, date(2026, 10, 18)) == []

    def test_playoff_weeks(self):
        assert not is_playoff_week(14)
        assert is_playoff_week(15)

    def test_clamp_weeks(self):
        assert clamp_weeks(2024, None) is None
        assert clamp_weeks(2024, []) is None
        assert clamp_weeks(2024, [3, 1, 0, 99, 3]) == [1, 3]
        assert clamp_weeks(2024, [0, 40]) == []
