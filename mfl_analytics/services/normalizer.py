"""
Upstream Record Normalizer.

Converts raw MFL export API payloads into canonical domain records.

MFL JSON quirks handled here:
- Numeric fields arrive as strings ("25.25"), sometimes empty
- A collection with one element is sent as a bare object instead of a list
- Regular-season weeks nest franchises under `matchup`; playoff and
  consolation weeks may list them directly under `franchise`
- Position codes vary (PK, DE, DT, OLB, FS, ...)
- Roster status strings vary (starter, nonstarter, INJURED_RESERVE, TAXI_SQUAD)
  and may come from the weekly entry or the players export

Unknown status strings become BENCH and unknown positions become UNKNOWN, so
nothing untyped travels past this module.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from mfl_analytics.models import (
    FranchiseInfo,
    MatchupResult,
    PlayerRecord,
    Position,
    RosterStatus,
    TeamWeekRecord,
    parse_position,
)

logger = logging.getLogger(__name__)


IR_STATUSES = {'INJURED_RESERVE', 'IR'}
TAXI_STATUSES = {'TAXI_SQUAD', 'TAXI'}
STARTER_STATUSES = {'STARTER'}
BENCH_STATUSES = {'NONSTARTER', 'BENCH', 'ROSTER', 'ACTIVE', ''}


# =============================================================================
# Scalar Helpers
# =============================================================================

def as_list(value: Any) -> List[Any]:
    """Wrap MFL's single-object collections in a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def to_float(value: Any, default: float = 0.0) -> float:
    """
    Parse an MFL numeric field.

    Args:
        value: String, number or None
        default: Returned when the value is missing or unparseable

    Returns:
        Parsed float
    """
    if value is None or value == '':
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable numeric value {value!r}, using {default}")
        return default


def to_score(value: Any) -> float:
    """Parse a player score, clamping negative values to zero."""
    score = to_float(value)
    if score < 0:
        logger.debug(f"Negative score {score} clamped to 0")
        return 0.0
    return score


def roster_hold(raw_status: Optional[str]) -> Optional[RosterStatus]:
    """IR or taxi class for a players-export status, None for anything else."""
    status = (raw_status or '').strip().upper()
    if status in IR_STATUSES:
        return RosterStatus.INJURED_RESERVE
    if status in TAXI_STATUSES:
        return RosterStatus.TAXI_SQUAD
    return None


def normalize_status(raw_status: Optional[str], listed_as_starter: bool = False) -> RosterStatus:
    """
    Resolve a roster status.

    IR and taxi flags win over the starter list; anything unrecognised is
    treated as bench.
    """
    hold = roster_hold(raw_status)
    if hold is not None:
        return hold

    status = (raw_status or '').strip().upper()
    if listed_as_starter or status in STARTER_STATUSES:
        return RosterStatus.STARTER
    if status not in BENCH_STATUSES:
        logger.debug(f"Unknown roster status {raw_status!r}, treating as bench")
    return RosterStatus.BENCH


def parse_result(raw_result: Optional[str]) -> Optional[MatchupResult]:
    if not raw_result:
        return None
    try:
        return MatchupResult(str(raw_result).strip().upper())
    except ValueError:
        return None


def parse_starter_ids(raw_starters: Optional[str]) -> Set[str]:
    """Split MFL's comma-separated starters field ("13590,13132,")."""
    if not raw_starters:
        return set()
    return {pid.strip() for pid in str(raw_starters).split(',') if pid.strip()}


# =============================================================================
# Player Mappings / Franchises
# =============================================================================

def normalize_player_mappings(payload: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Build a player id -> {name, position, status} lookup from a TYPE=players
    payload.

    `status` is the roster status MFL reports for the player (empty when
    absent); IR and taxi statuses there override weekly starter flags.

    Returns:
        Mapping of player id to name, Position and raw status
    """
    mappings: Dict[str, Dict[str, Any]] = {}
    players = (payload or {}).get('players') or {}

    for raw in as_list(players.get('player')):
        player_id = str(raw.get('id', '')).strip()
        if not player_id:
            continue
        name = raw.get('name') or f"{raw.get('first_name', '')} {raw.get('last_name', '')}".strip()
        mappings[player_id] = {
            'name': name or f'Player {player_id}',
            'position': parse_position(raw.get('position')),
            'status': str(raw.get('status') or '').strip(),
        }

    return mappings


def normalize_franchises(
    payload: Dict[str, Any],
    owner_mappings: Optional[Dict[str, str]] = None
) -> Dict[str, FranchiseInfo]:
    """
    Extract franchise names and managers from a TYPE=league payload.

    Args:
        payload: League export response
        owner_mappings: Optional franchise id -> manager overrides, for
            leagues that do not publish owner names

    Returns:
        Mapping of franchise id to FranchiseInfo
    """
    owner_mappings = owner_mappings or {}
    league = (payload or {}).get('league') or {}
    franchises = (league.get('franchises') or {}).get('franchise')

    result: Dict[str, FranchiseInfo] = {}
    for raw in as_list(franchises):
        franchise_id = str(raw.get('id', '')).strip()
        if not franchise_id:
            continue
        manager = owner_mappings.get(franchise_id) or raw.get('owner_name') or 'Unknown'
        result[franchise_id] = FranchiseInfo(
            franchise_id=franchise_id,
            team_name=raw.get('name') or f'Team {franchise_id}',
            manager=str(manager).strip(),
        )

    return result


# =============================================================================
# Weekly Results
# =============================================================================

def _iter_franchise_entries(weekly_results: Dict[str, Any]) -> Iterable[Tuple[Dict, Optional[Dict]]]:
    """Yield (franchise, opponent) pairs from either weekly results layout."""
    for matchup in as_list(weekly_results.get('matchup')):
        franchises = as_list(matchup.get('franchise')) if isinstance(matchup, dict) else []
        for franchise in franchises:
            opponents = [f for f in franchises if f is not franchise]
            yield franchise, (opponents[0] if len(opponents) == 1 else None)

    for franchise in as_list(weekly_results.get('franchise')):
        yield franchise, None


def normalize_player(
    raw: Dict[str, Any],
    franchise_id: str,
    starter_ids: Set[str],
    player_mappings: Optional[Dict[str, Dict[str, Any]]] = None
) -> Optional[PlayerRecord]:
    """
    Convert one weekly-results player entry into a PlayerRecord.

    Args:
        raw: Player entry ({id, score, status, shouldStart})
        franchise_id: Owning franchise
        starter_ids: Ids from the franchise's `starters` field
        player_mappings: Player id -> {name, position, status}; an IR or
            taxi status here wins over the weekly entry

    Returns:
        PlayerRecord, or None when the entry has no id
    """
    player_id = str(raw.get('id', '')).strip()
    if not player_id:
        return None

    mapping = (player_mappings or {}).get(player_id, {})
    position = mapping.get('position') or parse_position(raw.get('position'))

    return PlayerRecord(
        id=player_id,
        name=mapping.get('name') or raw.get('name') or f'Player {player_id}',
        position=position if isinstance(position, Position) else parse_position(position),
        franchise_id=franchise_id,
        score=to_score(raw.get('score')),
        status=(
            roster_hold(mapping.get('status'))
            or normalize_status(raw.get('status'), player_id in starter_ids)
        ),
    )


def normalize_weekly_results(
    payload: Dict[str, Any],
    year: int,
    week: Optional[int] = None,
    player_mappings: Optional[Dict[str, Dict[str, Any]]] = None
) -> List[TeamWeekRecord]:
    """
    Convert a TYPE=weeklyResults payload into TeamWeekRecords.

    Args:
        payload: Weekly results export response
        year: Season year
        week: Week number; read from the payload when omitted
        player_mappings: Player id -> {name, position, status}

    Returns:
        One record per franchise, in upstream order. A franchise listed more
        than once keeps its last entry.
    """
    weekly_results = (payload or {}).get('weeklyResults') or {}
    if week is None:
        week = int(to_float(weekly_results.get('week'), default=0))

    records: Dict[str, TeamWeekRecord] = {}
    for franchise, opponent in _iter_franchise_entries(weekly_results):
        franchise_id = str(franchise.get('id', '')).strip()
        raw_players = as_list(franchise.get('player'))
        if not franchise_id or not raw_players:
            logger.warning(f"Week {week}: franchise entry missing id or players, skipped")
            continue

        starter_ids = parse_starter_ids(franchise.get('starters'))
        players = []
        for raw in raw_players:
            player = normalize_player(raw, franchise_id, starter_ids, player_mappings)
            if player is not None:
                players.append(player)

        if franchise_id in records:
            logger.warning(f"Week {week}: franchise {franchise_id} listed twice, keeping last entry")

        records[franchise_id] = TeamWeekRecord(
            franchise_id=franchise_id,
            week=week,
            year=year,
            players=tuple(players),
            score=to_float(franchise.get('score')) if franchise.get('score') not in (None, '') else None,
            result=parse_result(franchise.get('result')),
            opponent_score=(
                to_float(opponent.get('score'))
                if opponent and opponent.get('score') not in (None, '') else None
            ),
        )

    logger.debug(f"Week {week}: normalized {len(records)} franchise records")
    return list(records.values())
