"""
Tests for the ranking engine.

Run with: python -m pytest mfl_analytics/tests/test_ranking_engine.py -v
"""

import pytest

from mfl_analytics.analyzers.ranking_engine import (
    BOTTOM_TIER,
    MIDDLE_TIER,
    TOP_TIER,
    RankingCategory,
    format_value,
    power_score,
    rank,
    rank_all,
    tier_for_rank,
)
from mfl_analytics.models import TeamAggregate


def make_team(franchise_id: str, **values) -> TeamAggregate:
    team = TeamAggregate(
        franchise_id=franchise_id,
        manager=f'Manager {franchise_id}',
        team_name=f'Team {franchise_id}',
        year=2024,
    )
    for name, value in values.items():
        setattr(team, name, value)
    return team


class TestRank:
    """Test ordering and rank assignment."""

    def test_ties_keep_input_order_without_gaps(self):
        teams = [
            make_team('a', total_points=50.0),
            make_team('b', total_points=50.0),
            make_team('c', total_points=40.0),
        ]

        entries = rank(teams, RankingCategory.TOTAL)

        assert [e.franchise_id for e in entries] == ['a', 'b', 'c']
        assert [e.rank for e in entries] == [1, 2, 3]

    def test_sorted_descending(self):
        teams = [
            make_team('low', defense_points=10.0),
            make_team('high', defense_points=30.0),
            make_team('mid', defense_points=20.0),
        ]

        entries = rank(teams, 'defense')

        assert [e.franchise_id for e in entries] == ['high', 'mid', 'low']

    def test_accepts_string_category(self):
        entries = rank([make_team('a', wins=1, losses=1)], 'WINS')

        assert entries[0].value == pytest.approx(50.0)

    def test_unknown_category(self):
        with pytest.raises(ValueError, match='Unknown ranking category'):
            rank([make_team('a')], 'speed')

    def test_empty_input(self):
        assert rank([], RankingCategory.POWER) == []


class TestCategoryValues:
    """Test category value extraction."""

    def test_power_score(self):
        team = make_team(
            'a', wins=2, losses=0, starters_points=90.0, potential_points=100.0,
            total_points=200.0, points_for=200.0, points_against=100.0,
        )

        assert power_score(team, max_total=200.0) == pytest.approx(93.75)

    def test_power_uses_league_best_total(self):
        leader = make_team('a', total_points=200.0, points_for=200.0)
        trailer = make_team('b', total_points=100.0, points_for=100.0)

        entries = rank([trailer, leader], RankingCategory.POWER)

        assert entries[0].franchise_id == 'a'
        # total ratio 0.5 * 25 + normalized differential 1.0 * 15
        assert entries[1].value == pytest.approx(12.5 + 15.0)

    def test_efficiency_is_zero_without_starters(self):
        team = make_team('a', starters_points=0.0, potential_points=100.0)

        [entry] = rank([team], RankingCategory.EFFICIENCY)

        assert entry.value == 0.0

    def test_efficiency_percentage(self):
        team = make_team('a', starters_points=75.0, potential_points=100.0)

        [entry] = rank([team], RankingCategory.EFFICIENCY)

        assert entry.value == pytest.approx(75.0)

    def test_offense_prefers_starters_points(self):
        with_starters = make_team('a', starters_points=120.0, offense_points=80.0)
        without = make_team('b', starters_points=0.0, offense_points=80.0)

        entries = {e.franchise_id: e.value for e in rank([with_starters, without], 'offense')}

        assert entries['a'] == pytest.approx(120.0)
        assert entries['b'] == pytest.approx(80.0)

    def test_differential(self):
        team = make_team('a', points_for=150.0, points_against=175.5)

        [entry] = rank([team], RankingCategory.DIFFERENTIAL)

        assert entry.value == pytest.approx(-25.5)


class TestTiers:
    def test_seven_teams(self):
        tiers = [tier_for_rank(r, 7) for r in range(1, 8)]

        assert tiers == [TOP_TIER] * 3 + [MIDDLE_TIER] * 2 + [BOTTOM_TIER] * 2

    def test_twelve_teams(self):
        assert tier_for_rank(4, 12) == TOP_TIER
        assert tier_for_rank(5, 12) == MIDDLE_TIER
        assert tier_for_rank(9, 12) == BOTTOM_TIER


class TestFormatting:
    def test_format_value(self):
        assert format_value(87.654, 'power') == '87.7'
        assert format_value(62.5, 'wins') == '62.5%'
        assert format_value(91.25, RankingCategory.EFFICIENCY) == '91.2%'
        assert format_value(25.5, 'differential') == '+25.50'
        assert format_value(-3.0, 'differential') == '-3.00'
        assert format_value(1234.5, 'total') == '1234.50'

    def test_rank_all(self):
        teams = [make_team('a', total_points=10.0), make_team('b', total_points=5.0)]

        categories = rank_all(teams)

        assert [c['category'] for c in categories] == [c.value for c in RankingCategory]
        total = next(c for c in categories if c['category'] == 'total')
        assert total['name'] == 'Total Points'
        assert total['rankings'][0]['tier'] == TOP_TIER
        assert total['rankings'][0]['display_value'] == '10.00'
