"""
Ranking Engine.

Builds ordered leaderboards from TeamAggregates for a fixed set of
categories. Ranks are 1..N with no shared ranks: equal values keep their
input order.

Power score weights:
- Win percentage: 35%
- Lineup efficiency: 25%
- Total points relative to the league leader: 25%
- Normalised point differential: 15%
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Sequence

from mfl_analytics.models import RankingEntry, TeamAggregate

logger = logging.getLogger(__name__)


# =============================================================================
# Categories
# =============================================================================

class RankingCategory(str, Enum):
    POWER = 'power'
    WINS = 'wins'
    TOTAL = 'total'
    EFFICIENCY = 'efficiency'
    OFFENSE = 'offense'
    DEFENSE = 'defense'
    DIFFERENTIAL = 'differential'


CATEGORY_INFO: Dict[RankingCategory, Dict[str, str]] = {
    RankingCategory.POWER: {
        'name': 'Power Rankings',
        'description': 'Composite ranking based on wins, efficiency, total points, and point differential',
    },
    RankingCategory.WINS: {
        'name': 'Win Percentage',
        'description': 'Ranked by win percentage and overall record',
    },
    RankingCategory.TOTAL: {
        'name': 'Total Points',
        'description': 'Ranked by total points scored this season',
    },
    RankingCategory.EFFICIENCY: {
        'name': 'Efficiency',
        'description': 'Points scored vs potential points (lineup optimization)',
    },
    RankingCategory.OFFENSE: {
        'name': 'Offensive Power',
        'description': 'Ranked by offensive points scored',
    },
    RankingCategory.DEFENSE: {
        'name': 'Defensive Power',
        'description': 'Ranked by defensive points scored',
    },
    RankingCategory.DIFFERENTIAL: {
        'name': 'Point Differential',
        'description': 'Points for minus points against',
    },
}

POWER_WEIGHTS = {
    'win_pct': 0.35,
    'efficiency': 0.25,
    'total': 0.25,
    'differential': 0.15,
}

TOP_TIER = 'Top Tier'
MIDDLE_TIER = 'Middle Tier'
BOTTOM_TIER = 'Bottom Tier'


def parse_category(value: Any) -> RankingCategory:
    """
    Resolve a category id.

    Raises:
        ValueError: If the id is not a known category
    """
    if isinstance(value, RankingCategory):
        return value
    try:
        return RankingCategory(str(value).strip().lower())
    except ValueError:
        valid = ', '.join(c.value for c in RankingCategory)
        raise ValueError(f"Unknown ranking category '{value}'. Valid: {valid}")


# =============================================================================
# Value Extractors
# =============================================================================

def _efficiency_ratio(team: TeamAggregate) -> float:
    if team.potential_points <= 0 or team.starters_points <= 0:
        return 0.0
    return team.starters_points / team.potential_points


def power_score(team: TeamAggregate, max_total: float) -> float:
    """Composite 0-100 power score; `max_total` is the league-best total points."""
    total_ratio = team.total_points / max_total if max_total > 0 else 0.0
    differential_ratio = team.point_differential / (team.points_for or 1)
    normalized_differential = (differential_ratio + 1) / 2

    return (
        team.win_percentage * POWER_WEIGHTS['win_pct']
        + _efficiency_ratio(team) * POWER_WEIGHTS['efficiency']
        + total_ratio * POWER_WEIGHTS['total']
        + normalized_differential * POWER_WEIGHTS['differential']
    ) * 100


def _value_extractor(
    category: RankingCategory,
    teams: Sequence[TeamAggregate]
) -> Callable[[TeamAggregate], float]:
    if category == RankingCategory.POWER:
        max_total = max((t.total_points for t in teams), default=0.0)
        return lambda t: power_score(t, max_total)
    if category == RankingCategory.WINS:
        return lambda t: t.win_percentage * 100
    if category == RankingCategory.TOTAL:
        return lambda t: t.total_points
    if category == RankingCategory.EFFICIENCY:
        return lambda t: _efficiency_ratio(t) * 100
    if category == RankingCategory.OFFENSE:
        return lambda t: t.starters_points or t.offense_points
    if category == RankingCategory.DEFENSE:
        return lambda t: t.defense_points
    return lambda t: t.point_differential


# =============================================================================
# Ranking
# =============================================================================

def rank(teams: Sequence[TeamAggregate], category: Any) -> List[RankingEntry]:
    """
    Rank teams in one category.

    Args:
        teams: Aggregates to rank
        category: RankingCategory or its string id

    Returns:
        Entries sorted by descending value with ranks 1..N

    Raises:
        ValueError: If the category is unknown
    """
    category = parse_category(category)
    extract = _value_extractor(category, teams)

    entries = [
        RankingEntry(
            franchise_id=team.franchise_id,
            team_name=team.team_name,
            manager=team.manager,
            value=extract(team),
        )
        for team in teams
    ]
    # sorted() is stable, so tied values keep input order
    entries = sorted(entries, key=lambda e: e.value, reverse=True)
    for idx, entry in enumerate(entries):
        entry.rank = idx + 1

    return entries


def rank_all(teams: Sequence[TeamAggregate]) -> List[Dict[str, Any]]:
    """Every category's leaderboard with its display name and description."""
    return [
        Leaderboard(category, rank(teams, category)).to_dict()
        for category in RankingCategory
    ]


def tier_for_rank(rank_value: int, total: int) -> str:
    """
    Split a leaderboard into thirds.

    Ranks up to ceil(N/3) are top tier, up to ceil(2N/3) middle tier.
    """
    if rank_value <= math.ceil(total / 3):
        return TOP_TIER
    if rank_value <= math.ceil(total * 2 / 3):
        return MIDDLE_TIER
    return BOTTOM_TIER


def format_value(value: float, category: Any) -> str:
    category = parse_category(category)
    if category == RankingCategory.POWER:
        return f"{value:.1f}"
    if category in (RankingCategory.WINS, RankingCategory.EFFICIENCY):
        return f"{value:.1f}%"
    if category == RankingCategory.DIFFERENTIAL:
        return f"{'+' if value > 0 else ''}{value:.2f}"
    return f"{value:.2f}"


@dataclass
class Leaderboard:
    """A ranked category ready for serialisation."""
    category: RankingCategory
    entries: List[RankingEntry]

    def to_dict(self) -> Dict[str, Any]:
        total = len(self.entries)
        return {
            'category': self.category.value,
            'name': CATEGORY_INFO[self.category]['name'],
            'description': CATEGORY_INFO[self.category]['description'],
            'rankings': [
                dict(
                    entry.to_dict(),
                    tier=tier_for_rank(entry.rank, total),
                    display_value=format_value(entry.value, self.category),
                )
                for entry in self.entries
            ],
        }
