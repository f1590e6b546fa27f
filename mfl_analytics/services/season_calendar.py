"""
NFL Season Calendar.

Pure date arithmetic over (year, today):
- Season start: first Thursday of September
- Season end: February 15 of the following year
- Current week: whole weeks since season start, clamped to the season

Every function takes `today` so callers and tests control the clock;
it defaults to the local date.
"""

import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SEASON_START_MONTH = 9
SEASON_END_MONTH = 2
SEASON_END_DAY = 15
THURSDAY = 3  # date.weekday()

# Regular season, playoffs and consolation bracket as exported by MFL
DEFAULT_TOTAL_WEEKS = 22
REGULAR_SEASON_END_WEEK = 14

# Seasons whose week count differs from the default
TOTAL_WEEKS_BY_YEAR: Dict[int, int] = {}

EARLIEST_SEASON = 2000

SEASON_COMPLETED = 'completed'
SEASON_CURRENT = 'current'
SEASON_FUTURE = 'future'


def _today(today: Optional[date]) -> date:
    return today or date.today()


# =============================================================================
# Season Boundaries
# =============================================================================

def season_start_date(year: int) -> date:
    """First Thursday of September."""
    september_first = date(year, SEASON_START_MONTH, 1)
    offset = (THURSDAY - september_first.weekday()) % 7
    return september_first + timedelta(days=offset)


def season_end_date(year: int) -> date:
    """Mid-February of the following calendar year."""
    return date(year + 1, SEASON_END_MONTH, SEASON_END_DAY)


def is_season_complete(year: int, today: Optional[date] = None) -> bool:
    return _today(today) > season_end_date(year)


def current_nfl_season(today: Optional[date] = None) -> int:
    """
    The season year in progress.

    Before September the previous year's season is still current.
    """
    today = _today(today)
    if today.month < SEASON_START_MONTH:
        return today.year - 1
    return today.year


def season_status(year: int, today: Optional[date] = None) -> str:
    current = current_nfl_season(today)
    if year < current:
        return SEASON_COMPLETED
    if year == current:
        return SEASON_CURRENT
    return SEASON_FUTURE


def total_weeks(year: int) -> int:
    return TOTAL_WEEKS_BY_YEAR.get(year, DEFAULT_TOTAL_WEEKS)


def is_playoff_week(week: int) -> bool:
    return week > REGULAR_SEASON_END_WEEK


def is_valid_year(year: int, today: Optional[date] = None) -> bool:
    """Seasons from 2000 up to five years ahead."""
    return EARLIEST_SEASON <= year <= _today(today).year + 5


# =============================================================================
# Weeks
# =============================================================================

def current_week(year: int, today: Optional[date] = None) -> int:
    """
    Week number in progress for a season, between 1 and the season's total.
    """
    today = _today(today)
    start = season_start_date(year)
    if today < start:
        return 1

    week = (today - start).days // 7 + 1
    return max(1, min(total_weeks(year), week))


def weeks_to_fetch(year: int, today: Optional[date] = None) -> List[int]:
    """
    Weeks with final results available upstream.

    Completed seasons, including the stretch between season end and the
    next September: every week. The current season: every week fully
    elapsed since the start (at least week 1). Future seasons: none.
    """
    today = _today(today)
    status = season_status(year, today)
    limit = total_weeks(year)
    if status == SEASON_COMPLETED or is_season_complete(year, today):
        return list(range(1, limit + 1))
    if status == SEASON_CURRENT:
        elapsed = (today - season_start_date(year)).days // 7
        return list(range(1, max(1, min(limit, elapsed)) + 1))
    return []


def clamp_weeks(year: int, weeks: Optional[Iterable[int]]) -> Optional[List[int]]:
    """
    Drop requested weeks outside 1..total_weeks(year).

    Returns None when no weeks were requested, so "all weeks" stays
    distinguishable from "no valid weeks".
    """
    if not weeks:
        return None

    limit = total_weeks(year)
    valid = sorted({w for w in weeks if 1 <= w <= limit})
    dropped = sorted({w for w in weeks if not 1 <= w <= limit})
    if dropped:
        logger.debug(f"Dropping out-of-range weeks for {year}: {dropped}")
    return valid
