# Analyzers Package
"""
League stats analyzers.

Pure functions over normalized records:
- compute_optimal_lineup: best legal lineup for one franchise-week
- aggregate: per-team season totals under week/manager/franchise filters
- weekly_series: per-team week-by-week points with a running total
- rank: category leaderboards over aggregated teams

Usage:
    from mfl_analytics.analyzers import aggregate, rank

    teams = aggregate(records, week_filter=[1, 2, 3], franchises=franchises)
    leaderboard = rank(teams, 'power')
"""

from .lineup_optimizer import (
    LineupResult,
    assign_starters_to_slots,
    calculate_efficiency,
    compute_optimal_lineup,
    fill_slots,
    is_laminar,
    validate_lineup,
)
from .aggregator import (
    aggregate,
    build_debug_report,
    calculate_position_rankings,
    dedupe_records,
    lineup_warnings,
    weekly_series,
)
from .ranking_engine import (
    RankingCategory,
    format_value,
    rank,
    rank_all,
    tier_for_rank,
)

__all__ = [
    # Lineup optimizer
    'LineupResult',
    'assign_starters_to_slots',
    'calculate_efficiency',
    'compute_optimal_lineup',
    'fill_slots',
    'is_laminar',
    'validate_lineup',
    # Aggregator
    'aggregate',
    'build_debug_report',
    'calculate_position_rankings',
    'dedupe_records',
    'lineup_warnings',
    'weekly_series',
    # Ranking engine
    'RankingCategory',
    'format_value',
    'rank',
    'rank_all',
    'tier_for_rank',
]
