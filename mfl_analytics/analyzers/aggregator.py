"""
Stats Aggregator.

Folds TeamWeekRecords into per-team season totals under week, manager and
franchise filters.

Per included week a team accumulates:
- Starter points: players with status starter
- Bench points: players with status bench (IR and taxi never count)
- Potential points: optimal lineup score over the eligible roster
- Position totals: eligible-player points by position
- Offense / defense points: starter points at QB/RB/WR/TE and DL/LB/CB/S.
  Kickers and unknown positions are in neither, so offense + defense can
  fall short of starter points.
- Slot totals: actual starters placed into lineup slots
- Matchup record: W/L/T, points for and against
- Unslotted starters: starters whose position fits no lineup slot. They
  count toward starter points but never toward potential, so efficiency
  can exceed 100%; `lineup_warnings` reports them.

Totals across weeks are plain sums, so aggregating disjoint week sets and
adding the results matches aggregating their union.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from mfl_analytics.analyzers.lineup_optimizer import (
    assign_starters_to_slots,
    calculate_efficiency,
    compute_optimal_lineup,
    validate_lineup,
)
from mfl_analytics.models import (
    DEFAULT_LINEUP_REQUIREMENTS,
    DEFENSE_POSITIONS,
    OFFENSE_POSITIONS,
    FranchiseInfo,
    MatchupResult,
    Position,
    PositionRanking,
    RosterStatus,
    SlotRequirement,
    TeamAggregate,
    TeamWeekRecord,
)
from mfl_analytics.services.season_calendar import is_playoff_week

logger = logging.getLogger(__name__)


# =============================================================================
# Aggregation
# =============================================================================

def dedupe_records(records: Iterable[TeamWeekRecord]) -> List[TeamWeekRecord]:
    """
    Enforce one record per (franchise, week, year).

    A later duplicate replaces the earlier one in place.
    """
    unique: Dict[Tuple[str, int, int], TeamWeekRecord] = OrderedDict()
    for record in records:
        if record.key in unique:
            logger.warning(
                f"Duplicate record for franchise {record.franchise_id} "
                f"week {record.week} {record.year}, keeping the later one"
            )
        unique[record.key] = record
    return list(unique.values())


def aggregate(
    records: Iterable[TeamWeekRecord],
    week_filter: Optional[Iterable[int]] = None,
    manager_filter: Optional[Iterable[str]] = None,
    franchise_filter: Optional[Iterable[str]] = None,
    franchises: Optional[Dict[str, FranchiseInfo]] = None,
    requirements: SlotRequirement = DEFAULT_LINEUP_REQUIREMENTS
) -> List[TeamAggregate]:
    """
    Aggregate weekly records into per-team totals.

    Args:
        records: TeamWeekRecords, any order, possibly several years
        week_filter: Weeks to include; None or empty means every week
        manager_filter: Managers to keep; ignored when franchise_filter is set
        franchise_filter: Franchise ids to keep
        franchises: Franchise id -> FranchiseInfo for display names
        requirements: Lineup slot table

    Returns:
        One TeamAggregate per (franchise, year), in first-seen order.
        An empty list when nothing matches.
    """
    franchises = franchises or {}
    weeks = set(week_filter) if week_filter else None

    groups: Dict[Tuple[str, int], TeamAggregate] = OrderedDict()
    for record in dedupe_records(records):
        if weeks is not None and record.week not in weeks:
            continue

        group_key = (record.franchise_id, record.year)
        team = groups.get(group_key)
        if team is None:
            info = franchises.get(record.franchise_id)
            team = TeamAggregate(
                franchise_id=record.franchise_id,
                manager=info.manager if info else 'Unknown',
                team_name=info.team_name if info else f'Team {record.franchise_id}',
                year=record.year,
            )
            groups[group_key] = team

        _accumulate_week(team, record, requirements)

    teams = list(groups.values())

    franchise_ids = set(franchise_filter) if franchise_filter else None
    managers = set(manager_filter) if manager_filter else None
    if franchise_ids is not None:
        teams = [t for t in teams if t.franchise_id in franchise_ids]
    elif managers is not None:
        teams = [t for t in teams if t.manager in managers]

    logger.debug(f"Aggregated {len(teams)} teams from {len(groups)} groups")
    return teams


def lineup_warnings(teams: Iterable[TeamAggregate]) -> List[str]:
    """Human-readable warnings for teams whose efficiency cannot be trusted."""
    return [
        f"{team.team_name} ({team.year}): {team.unslotted_starters} starter(s) fit no lineup slot; "
        f"starter points exceed what any lineup could score"
        for team in teams
        if team.unslotted_starters
    ]


def _accumulate_week(
    team: TeamAggregate,
    record: TeamWeekRecord,
    requirements: SlotRequirement
) -> None:
    """Add one franchise-week into a running aggregate."""
    starters = record.players_with_status(RosterStatus.STARTER)
    bench = record.players_with_status(RosterStatus.BENCH)

    starters_points = sum(p.score for p in starters)
    team.starters_points += starters_points
    team.bench_points += sum(p.score for p in bench)

    optimal = compute_optimal_lineup(record.players, requirements)
    team.potential_points += optimal.score
    team.unfilled_slots += optimal.missing_slot_count
    team.unslotted_starters += sum(
        1 for p in starters if not any(slot.accepts(p.position) for slot in requirements)
    )

    for player in record.eligible_players:
        key = player.position.value
        team.position_totals[key] = team.position_totals.get(key, 0.0) + player.score

    for player in starters:
        if player.position in OFFENSE_POSITIONS:
            team.offense_points += player.score
        elif player.position in DEFENSE_POSITIONS:
            team.defense_points += player.score

    for slot_name, points in assign_starters_to_slots(starters, requirements).slot_points().items():
        team.slot_totals[slot_name] = team.slot_totals.get(slot_name, 0.0) + points

    if record.result == MatchupResult.WIN:
        team.wins += 1
    elif record.result == MatchupResult.LOSS:
        team.losses += 1
    elif record.result == MatchupResult.TIE:
        team.ties += 1

    points_for = record.score if record.score is not None else starters_points
    team.points_for += points_for
    team.points_against += record.opponent_score or 0.0
    team.total_points = team.points_for
    team.weeks.append(record.week)


# =============================================================================
# Positional Rankings
# =============================================================================

def calculate_position_rankings(
    teams: Sequence[TeamAggregate],
    requirements: SlotRequirement = DEFAULT_LINEUP_REQUIREMENTS
) -> Dict[str, List[PositionRanking]]:
    """
    Rank teams at every lineup slot by their starters' slot totals.

    Ties keep input order; ranks run 1..N without gaps.
    """
    rankings: Dict[str, List[PositionRanking]] = {}

    for slot_name in requirements.slot_names:
        ordered = sorted(
            teams,
            key=lambda t: t.slot_totals.get(slot_name, 0.0),
            reverse=True,
        )
        rankings[slot_name] = [
            PositionRanking(
                franchise_id=team.franchise_id,
                team_name=team.team_name,
                points=team.slot_totals.get(slot_name, 0.0),
                rank=idx + 1,
            )
            for idx, team in enumerate(ordered)
        ]

    return rankings


# =============================================================================
# Weekly Progression
# =============================================================================

def weekly_series(
    records: Iterable[TeamWeekRecord],
    week_filter: Optional[Iterable[int]] = None,
    franchise_filter: Optional[Iterable[str]] = None,
    franchises: Optional[Dict[str, FranchiseInfo]] = None,
    requirements: SlotRequirement = DEFAULT_LINEUP_REQUIREMENTS
) -> List[Dict[str, Any]]:
    """
    Week-by-week points for each team, with a running season total.

    Each week is aggregated on its own with the same rules as `aggregate`,
    so a team's weekly totals sum to its season aggregate over those weeks.

    Returns:
        One entry per (franchise, year) in first-seen order:
        {franchise_id, manager, team_name, year, weekly_scores: [...]},
        weekly_scores sorted by week
    """
    franchises = franchises or {}
    weeks = set(week_filter) if week_filter else None
    franchise_ids = set(franchise_filter) if franchise_filter else None

    series: Dict[Tuple[str, int], Dict[str, Any]] = OrderedDict()
    for record in sorted(dedupe_records(records), key=lambda r: (r.year, r.week)):
        if weeks is not None and record.week not in weeks:
            continue
        if franchise_ids is not None and record.franchise_id not in franchise_ids:
            continue

        info = franchises.get(record.franchise_id)
        week_total = TeamAggregate(
            franchise_id=record.franchise_id,
            manager=info.manager if info else 'Unknown',
            team_name=info.team_name if info else f'Team {record.franchise_id}',
            year=record.year,
        )
        _accumulate_week(week_total, record, requirements)

        team = series.setdefault((record.franchise_id, record.year), {
            'franchise_id': week_total.franchise_id,
            'manager': week_total.manager,
            'team_name': week_total.team_name,
            'year': week_total.year,
            'weekly_scores': [],
        })
        scores = team['weekly_scores']
        running = scores[-1]['cumulative_total_points'] if scores else 0.0

        scores.append({
            'week': record.week,
            'is_playoff': is_playoff_week(record.week),
            'result': record.result.value if record.result else None,
            'total_points': round(week_total.total_points, 2),
            'starters_points': round(week_total.starters_points, 2),
            'bench_points': round(week_total.bench_points, 2),
            'potential_points': round(week_total.potential_points, 2),
            'offense_points': round(week_total.offense_points, 2),
            'defense_points': round(week_total.defense_points, 2),
            'efficiency': round(week_total.efficiency, 1),
            'position_totals': {k: round(v, 2) for k, v in week_total.position_totals.items()},
            'cumulative_total_points': round(running + week_total.total_points, 2),
        })

    return list(series.values())


# =============================================================================
# Debug Breakdown
# =============================================================================

def build_debug_report(
    record: TeamWeekRecord,
    requirements: SlotRequirement = DEFAULT_LINEUP_REQUIREMENTS
) -> Dict[str, Any]:
    """
    Break a single franchise-week down for inspection.

    Returns:
        Dictionary with players grouped by status, the optimal lineup,
        point totals and a list of detected issues
    """
    starters = record.players_with_status(RosterStatus.STARTER)
    optimal = compute_optimal_lineup(record.players, requirements)

    starters_points = sum(p.score for p in starters)
    bench_points = sum(p.score for p in record.players_with_status(RosterStatus.BENCH))

    issues = []
    if optimal.score < starters_points:
        issues.append(
            f"Potential points ({optimal.score:.2f}) below starter points ({starters_points:.2f})"
        )

    is_valid, lineup_errors = validate_lineup(starters, requirements)
    if not is_valid:
        issues.extend(f"Starting lineup: {error}" for error in lineup_errors)

    unknown = [p.id for p in record.players if p.position == Position.UNKNOWN]
    if unknown:
        issues.append(f"Players with unknown position: {', '.join(unknown)}")

    return {
        'franchise_id': record.franchise_id,
        'week': record.week,
        'year': record.year,
        'starters': [p.to_dict() for p in starters],
        'bench': [p.to_dict() for p in record.players_with_status(RosterStatus.BENCH)],
        'injured_reserve': [p.to_dict() for p in record.players_with_status(RosterStatus.INJURED_RESERVE)],
        'taxi_squad': [p.to_dict() for p in record.players_with_status(RosterStatus.TAXI_SQUAD)],
        'optimal_lineup': {
            slot: [p.to_dict() for p in players]
            for slot, players in optimal.assignments.items()
        },
        'unfilled_slots': optimal.unfilled,
        'totals': {
            'starters_points': round(starters_points, 2),
            'bench_points': round(bench_points, 2),
            'potential_points': round(optimal.score, 2),
            'efficiency': round(calculate_efficiency(starters_points, optimal.score), 1),
        },
        'issues': issues,
    }
