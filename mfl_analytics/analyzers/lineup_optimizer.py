"""
Lineup Optimizer.

Computes the maximum-scoring legal lineup for one franchise-week, which is the
basis of the "potential points" and "efficiency" metrics.

Algorithm (default league slot table):
1. Drop injured-reserve and taxi-squad players; they can never start
2. Sort the remaining players by score, highest first (stable on input order)
3. Fill fixed single-position slots (QB, RB, WR, TE, K, DL, LB, CB, S) with
   the best players at exactly that position
4. Fill flex slots (O-Flex, D-Flex) with the best still-unassigned players
   whose position the flex slot accepts

Step 3 before step 4 is optimal as long as every flex slot's eligibility set
is disjoint from every other flex slot's (one flex class per side). Slot tables
that break this are solved exactly as a maximum-weight bipartite matching.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from mfl_analytics.models import (
    DEFAULT_LINEUP_REQUIREMENTS,
    PlayerRecord,
    SlotRequirement,
)

logger = logging.getLogger(__name__)

# Weight for a player/slot pair the slot does not accept
INELIGIBLE_WEIGHT = -1e9


@dataclass
class LineupResult:
    """Outcome of filling a slot table from a roster."""
    lineup: List[PlayerRecord]
    score: float
    assignments: Dict[str, List[PlayerRecord]] = field(default_factory=dict)
    unfilled: Dict[str, int] = field(default_factory=dict)

    @property
    def missing_slot_count(self) -> int:
        return sum(self.unfilled.values())

    def slot_points(self) -> Dict[str, float]:
        return {
            slot: sum(p.score for p in players)
            for slot, players in self.assignments.items()
        }


def is_laminar(requirements: SlotRequirement) -> bool:
    """
    Check whether greedy fixed-then-flex filling is optimal for a slot table.

    True when no position is eligible for more than one flex slot.
    """
    seen = set()
    for slot in requirements.flex_slots():
        if seen & slot.eligible:
            return False
        seen |= slot.eligible
    return True


def compute_optimal_lineup(
    players: Sequence[PlayerRecord],
    requirements: SlotRequirement = DEFAULT_LINEUP_REQUIREMENTS
) -> LineupResult:
    """
    Compute the maximum-scoring lineup from a roster.

    Args:
        players: Every player rostered by the franchise that week
        requirements: Slot table to fill

    Returns:
        LineupResult whose score is the potential points for the week.
        Slots the roster cannot fill are reported in `unfilled`.
    """
    eligible = [p for p in players if p.is_eligible]
    if is_laminar(requirements):
        return fill_slots(eligible, requirements)

    logger.debug("Slot table has overlapping flex classes, solving by matching")
    return _fill_by_matching(eligible, requirements)


def fill_slots(
    players: Sequence[PlayerRecord],
    requirements: SlotRequirement = DEFAULT_LINEUP_REQUIREMENTS
) -> LineupResult:
    """
    Greedily assign players to slots: fixed slots first, then flex slots.

    Does not look at roster status; callers pass the players they want
    considered (the eligible roster, or only the actual starters).
    """
    ordered = sorted(players, key=lambda p: p.score, reverse=True)
    taken = [False] * len(ordered)
    filled: Dict[str, List[PlayerRecord]] = {}

    for slot in requirements.fixed_slots() + requirements.flex_slots():
        chosen = []
        for idx, player in enumerate(ordered):
            if len(chosen) == slot.count:
                break
            if taken[idx] or not slot.accepts(player.position):
                continue
            taken[idx] = True
            chosen.append(player)
        filled[slot.name] = chosen

    return _build_result(filled, requirements)


def assign_starters_to_slots(
    starters: Sequence[PlayerRecord],
    requirements: SlotRequirement = DEFAULT_LINEUP_REQUIREMENTS
) -> LineupResult:
    """
    Place the franchise's actual starters into lineup slots.

    Used for per-slot starter totals (e.g. how many points a team got out of
    its O-Flex). Starters that fit no open slot are left out of the result.
    """
    if is_laminar(requirements):
        return fill_slots(starters, requirements)
    return _fill_by_matching(list(starters), requirements)


def _fill_by_matching(
    players: Sequence[PlayerRecord],
    requirements: SlotRequirement
) -> LineupResult:
    """Exact assignment via scipy's Hungarian solver."""
    instances: List[str] = []
    for slot in requirements:
        instances.extend([slot.name] * slot.count)

    if not players or not instances:
        return _build_result({slot.name: [] for slot in requirements}, requirements)

    weights = np.full((len(players), len(instances)), INELIGIBLE_WEIGHT)
    for row, player in enumerate(players):
        for col, slot_name in enumerate(instances):
            if requirements[slot_name].accepts(player.position):
                weights[row, col] = player.score

    rows, cols = linear_sum_assignment(weights, maximize=True)

    pairs: List[Tuple[int, int]] = sorted(
        (row, col) for row, col in zip(rows, cols)
        if weights[row, col] != INELIGIBLE_WEIGHT
    )
    filled: Dict[str, List[PlayerRecord]] = {slot.name: [] for slot in requirements}
    for row, col in pairs:
        filled[instances[col]].append(players[row])
    for slot_players in filled.values():
        slot_players.sort(key=lambda p: p.score, reverse=True)

    return _build_result(filled, requirements)


def _build_result(
    filled: Dict[str, List[PlayerRecord]],
    requirements: SlotRequirement
) -> LineupResult:
    lineup: List[PlayerRecord] = []
    assignments: Dict[str, List[PlayerRecord]] = {}
    unfilled: Dict[str, int] = {}

    # Report in slot-table order regardless of fill order
    for slot in requirements:
        chosen = filled.get(slot.name, [])
        assignments[slot.name] = chosen
        lineup.extend(chosen)
        if len(chosen) < slot.count:
            unfilled[slot.name] = slot.count - len(chosen)

    return LineupResult(
        lineup=lineup,
        score=sum(p.score for p in lineup),
        assignments=assignments,
        unfilled=unfilled,
    )


def calculate_efficiency(actual_points: float, potential_points: float) -> float:
    """
    Actual starter points as a percentage of potential points.

    Returns 0 when potential points is 0.
    """
    if potential_points <= 0:
        return 0.0
    return actual_points / potential_points * 100


def validate_lineup(
    lineup: Sequence[PlayerRecord],
    requirements: SlotRequirement = DEFAULT_LINEUP_REQUIREMENTS
) -> Tuple[bool, List[str]]:
    """
    Check that a lineup can legally fill every slot in the table.

    Returns:
        Tuple of (is_valid, error messages)
    """
    result = fill_slots(lineup, requirements)
    errors = []
    for slot_name, missing in result.unfilled.items():
        expected = requirements[slot_name].count
        errors.append(f"{slot_name}: Expected {expected}, got {expected - missing}")

    extra = len(lineup) - len(result.lineup)
    if extra > 0:
        positions = Counter(p.position.value for p in lineup if p not in result.lineup)
        errors.append(f"{extra} player(s) fit no open slot: {dict(positions)}")

    return len(errors) == 0, errors
