"""
Shared fixtures and builders for the test suite.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

import pytest

from mfl_analytics.app import create_app
from mfl_analytics.config import TestingConfig
from mfl_analytics.models import (
    FranchiseInfo,
    MatchupResult,
    PlayerRecord,
    Position,
    RosterStatus,
    TeamWeekRecord,
)
from mfl_analytics.services.cache_service import CacheService
from mfl_analytics.services.mfl_client import MFLNoDataError

LEAGUE_ID = '46221'

# 2026-10-18: the 2026 season is in progress, 2024 and earlier are complete
NOW = datetime(2026, 10, 18, 12, 0, 0).timestamp()


# =============================================================================
# Builders
# =============================================================================

def make_player(
    player_id: str,
    position: Position,
    score: float,
    status: RosterStatus = RosterStatus.BENCH,
    franchise_id: str = '0001'
) -> PlayerRecord:
    return PlayerRecord(
        id=player_id,
        name=f'Player {player_id}',
        position=position,
        franchise_id=franchise_id,
        score=score,
        status=status,
    )


def make_record(
    franchise_id: str,
    week: int,
    players: Iterable[PlayerRecord],
    year: int = 2024,
    score: Optional[float] = None,
    result: Optional[MatchupResult] = None,
    opponent_score: Optional[float] = None
) -> TeamWeekRecord:
    return TeamWeekRecord(
        franchise_id=franchise_id,
        week=week,
        year=year,
        players=tuple(players),
        score=score,
        result=result,
        opponent_score=opponent_score,
    )


# One starter per default lineup slot instance: 18 players
LINEUP_POSITIONS = [
    Position.QB, Position.RB, Position.RB, Position.WR, Position.WR, Position.TE,
    Position.WR, Position.K, Position.DL, Position.DL, Position.LB, Position.LB,
    Position.LB, Position.CB, Position.CB, Position.S, Position.S, Position.LB,
]


def full_lineup(franchise_id: str, points: float, prefix: str = 's') -> List[PlayerRecord]:
    """A legal 18-man starting lineup where every starter scores `points`."""
    return [
        make_player(f'{franchise_id}-{prefix}{idx}', position, points, RosterStatus.STARTER, franchise_id)
        for idx, position in enumerate(LINEUP_POSITIONS)
    ]


def season_records(year: int = 2024, weeks: Iterable[int] = range(1, 6)) -> List[TeamWeekRecord]:
    """
    Two franchises over several weeks.

    Franchise 0001 starts 18 players at 10 points each week (180) and has a
    20-point WR on the bench; franchise 0002 starts 18 at 8 (144).
    0001 wins every week.
    """
    records = []
    for week in weeks:
        bench = make_player(f'0001-b{week}', Position.WR, 20.0, RosterStatus.BENCH, '0001')
        records.append(make_record(
            '0001', week, full_lineup('0001', 10.0) + [bench], year,
            score=180.0, result=MatchupResult.WIN, opponent_score=144.0,
        ))
        records.append(make_record(
            '0002', week, full_lineup('0002', 8.0), year,
            score=144.0, result=MatchupResult.LOSS, opponent_score=180.0,
        ))
    return records


FRANCHISES = {
    '0001': FranchiseInfo('0001', 'Gridiron Gang', 'Alice'),
    '0002': FranchiseInfo('0002', 'Blitz Brigade', 'Bob'),
}


# =============================================================================
# Fakes
# =============================================================================

class FakeClock:
    """Controllable epoch-seconds clock."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMFLClient:
    """In-memory upstream with switchable failures."""

    def __init__(self, records_by_year: Optional[Dict[int, List[TeamWeekRecord]]] = None):
        self.records_by_year = records_by_year if records_by_year is not None else {2024: season_records()}
        self.franchises = dict(FRANCHISES)
        self.errors: Dict[int, Exception] = {}
        self.error: Optional[Exception] = None
        self.calls: List[int] = []

    def fetch_all_weekly_results(self, year, league_id, weeks=None, today=None):
        self.calls.append(year)
        if self.error is not None:
            raise self.error
        if year in self.errors:
            raise self.errors[year]
        records = self.records_by_year.get(year)
        if not records:
            raise MFLNoDataError(f"No weekly results for league {league_id} {year}")
        return list(records)

    def fetch_franchises(self, league_id, year):
        return dict(self.franchises)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return CacheService(clock=clock)


@pytest.fixture
def fake_client():
    return FakeMFLClient()


@pytest.fixture
def app(fake_client, cache):
    """Create application for testing."""
    app = create_app(TestingConfig, client=fake_client, cache=cache)
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()
