"""
Domain models for MFL League Analytics.

This module defines the canonical records every other layer works with:
- Position / RosterStatus: closed enumerations for upstream string codes
- PlayerRecord: one player's score for one franchise-week
- SlotRequirement: ordered roster slot table (fixed and flex slots)
- TeamWeekRecord: a franchise's full roster and matchup result for one week
- TeamAggregate: per-team totals across a set of weeks
- RankingEntry / PositionRanking: leaderboard rows
- StatsSnapshot: the payload cached for an aggregates request

Records coming from the upstream API are converted into these types by the
normalizer; nothing past that boundary sees raw upstream dictionaries.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple


# =============================================================================
# Enumerations
# =============================================================================

class Position(str, Enum):
    """Canonical scoring positions."""
    QB = 'QB'
    RB = 'RB'
    WR = 'WR'
    TE = 'TE'
    K = 'K'
    DL = 'DL'
    LB = 'LB'
    CB = 'CB'
    S = 'S'
    UNKNOWN = 'UNKNOWN'


# MFL position code variants
POSITION_ALIASES: Dict[str, Position] = {
    'PK': Position.K,
    'DE': Position.DL,
    'DT': Position.DL,
    'NT': Position.DL,
    'OLB': Position.LB,
    'ILB': Position.LB,
    'MLB': Position.LB,
    'FS': Position.S,
    'SS': Position.S,
}

OFFENSE_POSITIONS: FrozenSet[Position] = frozenset({
    Position.QB, Position.RB, Position.WR, Position.TE,
})

DEFENSE_POSITIONS: FrozenSet[Position] = frozenset({
    Position.DL, Position.LB, Position.CB, Position.S,
})


def parse_position(code: Optional[str]) -> Position:
    """
    Map an upstream position code to a Position.

    Unrecognised or missing codes map to Position.UNKNOWN.
    """
    if not code:
        return Position.UNKNOWN
    code = str(code).strip().upper()
    if code in POSITION_ALIASES:
        return POSITION_ALIASES[code]
    try:
        return Position(code)
    except ValueError:
        return Position.UNKNOWN


class RosterStatus(str, Enum):
    """Mutually exclusive roster status classes for a franchise-week."""
    STARTER = 'starter'
    BENCH = 'bench'
    INJURED_RESERVE = 'ir'
    TAXI_SQUAD = 'taxi'

    @property
    def is_eligible(self) -> bool:
        """Only starters and bench players count toward bench/potential points."""
        return self in (RosterStatus.STARTER, RosterStatus.BENCH)


# =============================================================================
# Player / Roster Records
# =============================================================================

@dataclass(frozen=True)
class PlayerRecord:
    """A single player's score for one franchise-week."""
    id: str
    name: str
    position: Position
    franchise_id: str
    score: float
    status: RosterStatus

    @property
    def is_eligible(self) -> bool:
        return self.status.is_eligible

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'position': self.position.value,
            'franchise_id': self.franchise_id,
            'score': self.score,
            'status': self.status.value,
        }


@dataclass(frozen=True)
class Slot:
    """One roster slot family: how many players it takes and who may fill it."""
    name: str
    count: int
    eligible: FrozenSet[Position]

    @property
    def is_flex(self) -> bool:
        return len(self.eligible) > 1

    def accepts(self, position: Position) -> bool:
        return position in self.eligible


class SlotRequirement:
    """
    Ordered roster slot table.

    Usage:
        requirements = SlotRequirement([
            Slot('QB', 1, frozenset({Position.QB})),
            Slot('O-Flex', 1, frozenset({Position.RB, Position.WR})),
        ])
        requirements.total_slots  # 2
    """

    def __init__(self, slots: List[Slot]):
        names = [slot.name for slot in slots]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate slot names in requirements: {names}")
        self._slots: Tuple[Slot, ...] = tuple(slots)

    def __iter__(self) -> Iterator[Slot]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __getitem__(self, name: str) -> Slot:
        for slot in self._slots:
            if slot.name == name:
                return slot
        raise KeyError(name)

    @property
    def slot_names(self) -> List[str]:
        return [slot.name for slot in self._slots]

    @property
    def total_slots(self) -> int:
        return sum(slot.count for slot in self._slots)

    def fixed_slots(self) -> List[Slot]:
        return [slot for slot in self._slots if not slot.is_flex]

    def flex_slots(self) -> List[Slot]:
        return [slot for slot in self._slots if slot.is_flex]

    def to_dict(self) -> Dict[str, int]:
        return {slot.name: slot.count for slot in self._slots}


OFFENSE_FLEX = 'O-Flex'
DEFENSE_FLEX = 'D-Flex'

# League lineup: 1 QB, 2 RB, 2 WR, 1 TE, 1 O-Flex, 1 K, 2 DL, 3 LB, 2 CB, 2 S, 1 D-Flex
DEFAULT_LINEUP_REQUIREMENTS = SlotRequirement([
    Slot('QB', 1, frozenset({Position.QB})),
    Slot('RB', 2, frozenset({Position.RB})),
    Slot('WR', 2, frozenset({Position.WR})),
    Slot('TE', 1, frozenset({Position.TE})),
    Slot(OFFENSE_FLEX, 1, frozenset({Position.RB, Position.WR, Position.TE})),
    Slot('K', 1, frozenset({Position.K})),
    Slot('DL', 2, frozenset({Position.DL})),
    Slot('LB', 3, frozenset({Position.LB})),
    Slot('CB', 2, frozenset({Position.CB})),
    Slot('S', 2, frozenset({Position.S})),
    Slot(DEFENSE_FLEX, 1, frozenset(DEFENSE_POSITIONS)),
])


class MatchupResult(str, Enum):
    """Head-to-head outcome for a franchise-week."""
    WIN = 'W'
    LOSS = 'L'
    TIE = 'T'


@dataclass(frozen=True)
class TeamWeekRecord:
    """
    A franchise's roster and matchup result for one week.

    At most one record exists per (franchise_id, week, year).
    """
    franchise_id: str
    week: int
    year: int
    players: Tuple[PlayerRecord, ...] = ()
    score: Optional[float] = None
    result: Optional[MatchupResult] = None
    opponent_score: Optional[float] = None

    @property
    def key(self) -> Tuple[str, int, int]:
        return (self.franchise_id, self.week, self.year)

    def players_with_status(self, status: RosterStatus) -> List[PlayerRecord]:
        return [p for p in self.players if p.status == status]

    @property
    def eligible_players(self) -> List[PlayerRecord]:
        return [p for p in self.players if p.is_eligible]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'franchise_id': self.franchise_id,
            'week': self.week,
            'year': self.year,
            'score': self.score,
            'result': self.result.value if self.result else None,
            'opponent_score': self.opponent_score,
            'players': [p.to_dict() for p in self.players],
        }


@dataclass(frozen=True)
class FranchiseInfo:
    """Display information for a franchise in one season."""
    franchise_id: str
    team_name: str
    manager: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'franchise_id': self.franchise_id,
            'team_name': self.team_name,
            'manager': self.manager,
        }


# =============================================================================
# Aggregates
# =============================================================================

@dataclass
class TeamAggregate:
    """Per-team totals across the included weeks of one season."""
    franchise_id: str
    manager: str
    team_name: str
    year: int

    starters_points: float = 0.0
    bench_points: float = 0.0
    potential_points: float = 0.0
    offense_points: float = 0.0
    defense_points: float = 0.0
    total_points: float = 0.0

    # Eligible-player points keyed by position code
    position_totals: Dict[str, float] = field(default_factory=dict)
    # Actual starters' points keyed by lineup slot (QB ... D-Flex)
    slot_totals: Dict[str, float] = field(default_factory=dict)

    wins: int = 0
    losses: int = 0
    ties: int = 0
    points_for: float = 0.0
    points_against: float = 0.0
    weeks: List[int] = field(default_factory=list)
    unfilled_slots: int = 0
    # Starters whose position fits no lineup slot; they inflate efficiency
    unslotted_starters: int = 0

    @property
    def games_played(self) -> int:
        return self.wins + self.losses + self.ties

    @property
    def win_percentage(self) -> float:
        games = self.games_played
        if games == 0:
            return 0.0
        return self.wins / games

    @property
    def point_differential(self) -> float:
        return self.points_for - self.points_against

    @property
    def efficiency(self) -> float:
        """Starter points as a percentage of potential points (0 when potential is 0)."""
        if self.potential_points <= 0:
            return 0.0
        return self.starters_points / self.potential_points * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'franchise_id': self.franchise_id,
            'manager': self.manager,
            'team_name': self.team_name,
            'year': self.year,
            'starters_points': round(self.starters_points, 2),
            'bench_points': round(self.bench_points, 2),
            'potential_points': round(self.potential_points, 2),
            'offense_points': round(self.offense_points, 2),
            'defense_points': round(self.defense_points, 2),
            'total_points': round(self.total_points, 2),
            'efficiency': round(self.efficiency, 1),
            'position_totals': {k: round(v, 2) for k, v in self.position_totals.items()},
            'slot_totals': {k: round(v, 2) for k, v in self.slot_totals.items()},
            'wins': self.wins,
            'losses': self.losses,
            'ties': self.ties,
            'win_percentage': round(self.win_percentage, 3),
            'points_for': round(self.points_for, 2),
            'points_against': round(self.points_against, 2),
            'point_differential': round(self.point_differential, 2),
            'weeks': list(self.weeks),
            'unfilled_slots': self.unfilled_slots,
            'unslotted_starters': self.unslotted_starters,
        }


@dataclass
class RankingEntry:
    """One row of a category leaderboard."""
    franchise_id: str
    team_name: str
    manager: str
    value: float
    rank: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'franchise_id': self.franchise_id,
            'team_name': self.team_name,
            'manager': self.manager,
            'value': round(self.value, 2),
            'rank': self.rank,
        }


@dataclass
class PositionRanking:
    """One team's standing at a single lineup slot."""
    franchise_id: str
    team_name: str
    points: float
    rank: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'franchise_id': self.franchise_id,
            'team_name': self.team_name,
            'points': round(self.points, 2),
            'rank': self.rank,
        }


@dataclass
class StatsSnapshot:
    """
    Cached result of one aggregates computation.

    Carries the per-week raw records the teams were computed from so a
    full-season snapshot can later be re-aggregated for a week subset
    without going back upstream.
    """
    year: int
    league_id: str
    teams: List[TeamAggregate]
    position_rankings: Dict[str, List[PositionRanking]]
    weekly_records: List[TeamWeekRecord]
    franchises: Dict[str, FranchiseInfo] = field(default_factory=dict)
    weeks: Optional[List[int]] = None
    managers: Optional[List[str]] = None
    franchise_ids: Optional[List[str]] = None

    @property
    def is_full_season(self) -> bool:
        return not self.weeks and not self.managers and not self.franchise_ids

    def to_dict(self, include_records: bool = False) -> Dict[str, Any]:
        data = {
            'year': self.year,
            'league_id': self.league_id,
            'teams': [team.to_dict() for team in self.teams],
            'position_rankings': {
                slot: [entry.to_dict() for entry in entries]
                for slot, entries in self.position_rankings.items()
            },
            'franchises': {fid: info.to_dict() for fid, info in self.franchises.items()},
            'filters': {
                'weeks': self.weeks,
                'managers': self.managers,
                'franchise_ids': self.franchise_ids,
            },
        }
        if include_records:
            data['weekly_records'] = [record.to_dict() for record in self.weekly_records]
        return data
