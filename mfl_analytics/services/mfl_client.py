"""
MyFantasyLeague Export API Client Service.

Thin wrapper over the MFL export API (`/{year}/export?TYPE=...&JSON=1`)
using requests.

Features:
- Weekly results for one week or a whole season, normalized to
  TeamWeekRecords
- Franchise names and owners, player id -> name/position mappings
- Minimum interval between requests
- A single fixed-delay retry when MFL answers HTTP 429
- Error taxonomy that lets callers tell "upstream down" from "no data"

Usage:
    client = MFLClient(user_agent='MFL-Dashboard/1.0')
    records = client.fetch_all_weekly_results(2024, '46221')
"""

import logging
import time
from datetime import date
from functools import wraps
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests
from requests.exceptions import RequestException, Timeout

from mfl_analytics.models import FranchiseInfo, TeamWeekRecord
from mfl_analytics.services.normalizer import (
    normalize_franchises,
    normalize_player_mappings,
    normalize_weekly_results,
)
from mfl_analytics.services.season_calendar import weeks_to_fetch

# Set up logging
logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = 'https://api.myfantasyleague.com'
DEFAULT_USER_AGENT = 'MFL-Dashboard/1.0'
DEFAULT_TIMEOUT = 30

# Seconds between consecutive requests
MIN_REQUEST_INTERVAL = 1.0

# Seconds to wait before the single retry after HTTP 429
RATE_LIMIT_RETRY_DELAY = 5.0


# =============================================================================
# Custom Exceptions
# =============================================================================

class MFLClientError(Exception):
    """Base exception for MFL client errors."""
    pass


class MFLUnavailableError(MFLClientError):
    """Raised when MFL cannot be reached or answers with an error status."""
    pass


class MFLRateLimitError(MFLClientError):
    """Raised when MFL rate limits our requests (HTTP 429)."""
    pass


class MFLNoDataError(MFLClientError):
    """Raised when MFL answers successfully but has nothing for the request."""
    pass


class MFLPartialResultsError(MFLClientError):
    """
    Raised when a season fetch is cut short after some weeks succeeded.

    Carries the records already fetched and the weeks still missing so the
    caller can decide what to do with an incomplete season.
    """

    def __init__(self, message: str, records: List[TeamWeekRecord], missing_weeks: List[int]):
        super().__init__(message)
        self.records = records
        self.missing_weeks = missing_weeks


# =============================================================================
# Rate Limiting
# =============================================================================

class RateLimiter:
    """Spaces consecutive MFL requests at least `min_interval` seconds apart."""

    def __init__(self, min_interval: float = MIN_REQUEST_INTERVAL, sleep: Callable[[float], None] = time.sleep):
        self.min_interval = min_interval
        self._last: Optional[float] = None
        self._sleep = sleep

    def wait(self) -> None:
        """Block until the next request may be sent."""
        if self._last is not None:
            remaining = self.min_interval - (time.monotonic() - self._last)
            if remaining > 0:
                logger.debug(f"Throttling MFL request for {remaining:.2f}s")
                self._sleep(remaining)
        self._last = time.monotonic()


def retry_on_rate_limit(max_retries: int = 1):
    """
    Decorator to retry a client method after HTTP 429 with a fixed delay.

    The delay is read from the client's `retry_delay` attribute. Other
    errors are not retried.

    Args:
        max_retries: Extra attempts after a 429
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(self, *args, **kwargs)
                except MFLRateLimitError as e:
                    if attempt >= max_retries:
                        logger.error(f"Still rate limited after {max_retries + 1} attempts: {func.__name__}")
                        raise
                    logger.warning(
                        f"Rate limited on {func.__name__} ({e}). "
                        f"Retrying in {self.retry_delay:.1f}s..."
                    )
                    self._sleep(self.retry_delay)
        return wrapper
    return decorator


# =============================================================================
# MFL Client Service
# =============================================================================

class MFLClient:
    """
    MFL export API client.

    Usage:
        client = MFLClient()
        franchises = client.fetch_franchises('46221', 2024)
        week_one = client.fetch_weekly_results(2024, '46221', 1)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        api_key: Optional[str] = None,
        request_interval: float = MIN_REQUEST_INTERVAL,
        retry_delay: float = RATE_LIMIT_RETRY_DELAY,
        owner_mappings: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the MFL client.

        Args:
            base_url: Export API root
            timeout: Per-request timeout in seconds
            user_agent: User-Agent header sent with every request
            api_key: Optional bearer token for private leagues
            request_interval: Minimum seconds between requests
            retry_delay: Seconds to wait before retrying a 429
            owner_mappings: Franchise id -> manager overrides
            session: requests Session to reuse
            sleep: Sleep function (replaceable in tests)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.owner_mappings = owner_mappings or {}
        self._sleep = sleep
        self._rate_limiter = RateLimiter(request_interval, sleep)

        self._session = session or requests.Session()
        self._session.headers.update({
            'User-Agent': user_agent,
            'Accept': 'application/json',
        })
        if api_key:
            self._session.headers['Authorization'] = f'Bearer {api_key}'

    # =========================================================================
    # Transport
    # =========================================================================

    @retry_on_rate_limit(max_retries=1)
    def _export(self, year: int, export_type: str, **params: Any) -> Dict[str, Any]:
        """
        Call one export endpoint.

        Raises:
            MFLRateLimitError: HTTP 429
            MFLUnavailableError: Transport failure, non-2xx status or bad JSON
            MFLNoDataError: MFL returned an error document
        """
        url = f"{self.base_url}/{year}/export"
        query = {'TYPE': export_type, 'JSON': 1}
        query.update({k: v for k, v in params.items() if v is not None})

        self._rate_limiter.wait()
        logger.debug(f"Fetching {export_type} for {year}: {query}")

        try:
            response = self._session.get(url, params=query, timeout=self.timeout)
        except Timeout:
            raise MFLUnavailableError(f"Request timeout: {export_type} {year}")
        except RequestException as e:
            raise MFLUnavailableError(f"Request failed: {e}")

        if response.status_code == 429:
            raise MFLRateLimitError(f"Rate limited fetching {export_type} for {year}")

        if not 200 <= response.status_code < 300:
            raise MFLUnavailableError(
                f"MFL returned HTTP {response.status_code} for {export_type} {year}"
            )

        try:
            payload = response.json()
        except ValueError:
            raise MFLUnavailableError(f"Invalid JSON in {export_type} response for {year}")

        if not isinstance(payload, dict):
            raise MFLUnavailableError(f"Unexpected {export_type} response shape for {year}")

        if 'error' in payload:
            error = payload['error']
            message = error.get('$t', error) if isinstance(error, dict) else error
            raise MFLNoDataError(f"MFL error for {export_type} {year}: {message}")

        return payload

    # =========================================================================
    # League Data
    # =========================================================================

    def fetch_player_mappings(self, year: int, league_id: str) -> Dict[str, Dict[str, Any]]:
        """
        Get player id -> {name, position} for a season.

        Raises:
            MFLNoDataError: If the player list is empty
        """
        payload = self._export(year, 'players', L=league_id)
        mappings = normalize_player_mappings(payload)
        if not mappings:
            raise MFLNoDataError(f"No players returned for {year}")
        logger.info(f"Loaded {len(mappings)} player mappings for {year}")
        return mappings

    def fetch_franchises(self, league_id: str, year: int) -> Dict[str, FranchiseInfo]:
        """
        Get franchise names and managers.

        Raises:
            MFLNoDataError: If the league lists no franchises
        """
        payload = self._export(year, 'league', L=league_id)
        franchises = normalize_franchises(payload, self.owner_mappings)
        if not franchises:
            raise MFLNoDataError(f"No franchises returned for league {league_id} {year}")
        return franchises

    def fetch_team_names(self, league_id: str, year: int) -> Dict[str, str]:
        """Get franchise id -> team name."""
        return {
            franchise_id: info.team_name
            for franchise_id, info in self.fetch_franchises(league_id, year).items()
        }

    # =========================================================================
    # Weekly Results
    # =========================================================================

    def fetch_weekly_results(
        self,
        year: int,
        league_id: str,
        week: int,
        player_mappings: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> List[TeamWeekRecord]:
        """
        Get every franchise's roster and result for one week.

        Args:
            year: Season year
            league_id: MFL league id
            week: Week number
            player_mappings: Reused across weeks; fetched when omitted

        Raises:
            MFLNoDataError: If the week has no results
        """
        if player_mappings is None:
            player_mappings = self.fetch_player_mappings(year, league_id)

        payload = self._export(year, 'weeklyResults', L=league_id, W=week)
        records = normalize_weekly_results(payload, year, week, player_mappings)
        if not records:
            raise MFLNoDataError(f"No weekly results for league {league_id} {year} week {week}")
        return records

    def fetch_all_weekly_results(
        self,
        year: int,
        league_id: str,
        weeks: Optional[Iterable[int]] = None,
        today: Optional[date] = None
    ) -> List[TeamWeekRecord]:
        """
        Get weekly results for a whole season.

        Weeks are fetched one at a time; weeks with no results are skipped.
        A rate limit that survives the retry stops the loop.

        Args:
            year: Season year
            league_id: MFL league id
            weeks: Weeks to fetch (defaults to every completed week)
            today: Reference date for the completed-week calculation

        Raises:
            MFLRateLimitError: If rate limited before any week was fetched
            MFLPartialResultsError: If rate limited after some weeks were
                fetched; carries those records and the weeks not reached
            MFLNoDataError: If no week had results
        """
        weeks = list(weeks) if weeks is not None else weeks_to_fetch(year, today)
        if not weeks:
            raise MFLNoDataError(f"No completed weeks for {year}")

        player_mappings = self.fetch_player_mappings(year, league_id)
        logger.info(f"Fetching weeks {weeks[0]}-{weeks[-1]} for league {league_id} {year}")

        records: List[TeamWeekRecord] = []
        fetched = 0
        for idx, week in enumerate(weeks):
            try:
                week_records = self.fetch_weekly_results(year, league_id, week, player_mappings)
            except MFLNoDataError:
                logger.debug(f"No results for {year} week {week}, skipping")
                continue
            except MFLRateLimitError:
                if fetched == 0:
                    raise
                missing = weeks[idx:]
                logger.warning(f"Rate limited at {year} week {week} after {fetched} weeks; missing {missing}")
                raise MFLPartialResultsError(
                    f"Rate limited at week {week}; weeks {missing[0]}-{missing[-1]} of {year} not fetched",
                    records,
                    missing,
                )
            records.extend(week_records)
            fetched += 1

        if not records:
            raise MFLNoDataError(f"No weekly results for league {league_id} {year}")

        logger.info(f"Fetched {fetched} of {len(weeks)} weeks for {year}")
        return records
