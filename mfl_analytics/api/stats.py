"""
League Stats API Endpoints.

Serves team aggregates, positional rankings, weekly progression series,
category leaderboards and cache controls for the configured MFL league.

Query parameters shared by the aggregates, progression and rankings routes:
- weeks: comma-separated week numbers (default: all weeks)
- managers: comma-separated manager names
- franchiseIds: comma-separated franchise ids (wins over managers)
- refresh: 'true' to bypass the cache
"""

import asyncio
import logging
from typing import List, Optional

from flask import Blueprint, current_app, jsonify, request

from mfl_analytics.analyzers.ranking_engine import Leaderboard, parse_category, rank_all
from mfl_analytics.services.league_stats_service import LeagueStatsService, StatsUnavailableError
from mfl_analytics.services.season_calendar import is_valid_year

logger = logging.getLogger(__name__)

stats_bp = Blueprint('stats', __name__)


# =============================================================================
# Request Helpers
# =============================================================================

class InvalidQueryError(ValueError):
    """Raised when a query parameter cannot be parsed."""
    pass


def _stats_service() -> LeagueStatsService:
    return current_app.extensions['league_stats']


def _parse_str_list(name: str) -> Optional[List[str]]:
    raw = request.args.get(name, '')
    values = [v.strip() for v in raw.split(',') if v.strip()]
    return values or None


def _parse_int_list(name: str) -> Optional[List[int]]:
    values = _parse_str_list(name)
    if values is None:
        return None
    try:
        return [int(v) for v in values]
    except ValueError:
        raise InvalidQueryError(f"'{name}' must be a comma-separated list of integers")


def _parse_refresh() -> bool:
    return request.args.get('refresh', 'false').lower() == 'true'


def _check_year(year: int) -> None:
    if not is_valid_year(year):
        raise InvalidQueryError(f"Unsupported season year: {year}")


@stats_bp.errorhandler(InvalidQueryError)
def handle_invalid_query(error):
    return jsonify({'error': 'Bad Request', 'message': str(error)}), 400


@stats_bp.errorhandler(StatsUnavailableError)
def handle_stats_unavailable(error):
    logger.error(f"Stats unavailable: {error.message} ({error.details})")
    return jsonify(error.to_dict()), 503


# =============================================================================
# Aggregates
# =============================================================================

@stats_bp.route('/stats/<int:year>/aggregates', methods=['GET'])
def get_aggregates(year: int):
    """
    Get per-team aggregates and positional rankings for a season.

    Response:
        - teams: TeamAggregate rows
        - position_rankings: slot -> ranked teams
        - franchises: franchise id -> team name and manager
        - metadata: cache_status, cache_age_seconds, stale, warnings, ...
    """
    _check_year(year)
    result = _stats_service().get_aggregates(
        year,
        weeks=_parse_int_list('weeks'),
        managers=_parse_str_list('managers'),
        franchise_ids=_parse_str_list('franchiseIds'),
        force_refresh=_parse_refresh(),
    )

    logger.info(
        f"Aggregates {year}: {len(result.teams)} teams "
        f"(cache={result.metadata['cache_status']})"
    )
    return jsonify(result.to_dict()), 200


@stats_bp.route('/stats/<int:year>/weekly-progression', methods=['GET'])
def get_weekly_progression(year: int):
    """
    Get week-by-week points per team, with running season totals.

    Takes the same filters as the aggregates route.
    """
    _check_year(year)
    body = _stats_service().get_weekly_progression(
        year,
        weeks=_parse_int_list('weeks'),
        managers=_parse_str_list('managers'),
        franchise_ids=_parse_str_list('franchiseIds'),
        force_refresh=_parse_refresh(),
    )
    return jsonify(body), 200


@stats_bp.route('/stats/aggregates', methods=['GET'])
def get_multi_year_aggregates():
    """
    Get aggregates for several seasons at once (?years=2023,2024).

    Seasons that fail are listed in `warnings`. Returns 503 only when every
    season failed.
    """
    years = _parse_int_list('years')
    if not years:
        raise InvalidQueryError("'years' is required")
    for year in years:
        _check_year(year)

    result = asyncio.run(_stats_service().get_multi_year_aggregates(
        years,
        weeks=_parse_int_list('weeks'),
        managers=_parse_str_list('managers'),
        franchise_ids=_parse_str_list('franchiseIds'),
        force_refresh=_parse_refresh(),
    ))

    if not result.results:
        return jsonify({
            'error': 'Stats unavailable for every requested season',
            'warnings': result.warnings,
        }), 503

    return jsonify(result.to_dict()), 200


# =============================================================================
# Rankings
# =============================================================================

@stats_bp.route('/stats/<int:year>/rankings', methods=['GET'])
def get_rankings(year: int):
    """
    Get category leaderboards for a season.

    With ?category=<id> returns one leaderboard; otherwise every category.
    """
    _check_year(year)
    category_param = request.args.get('category')
    category = None
    if category_param:
        try:
            category = parse_category(category_param)
        except ValueError as e:
            raise InvalidQueryError(str(e))

    service = _stats_service()
    result = service.get_aggregates(
        year,
        weeks=_parse_int_list('weeks'),
        managers=_parse_str_list('managers'),
        franchise_ids=_parse_str_list('franchiseIds'),
        force_refresh=_parse_refresh(),
    )

    if category is not None:
        body = Leaderboard(category, service.get_rankings(result.teams, category)).to_dict()
    else:
        body = {'categories': rank_all(result.teams)}
    body['metadata'] = result.metadata

    return jsonify(body), 200


# =============================================================================
# Debug / Cache
# =============================================================================

@stats_bp.route('/stats/<int:year>/weeks/<int:week>/franchises/<franchise_id>/debug', methods=['GET'])
def get_debug_report(year: int, week: int, franchise_id: str):
    """Lineup breakdown and detected issues for one franchise-week."""
    _check_year(year)
    report = _stats_service().get_debug_report(year, week, franchise_id)
    if report is None:
        return jsonify({
            'error': 'Not Found',
            'message': f'No record for franchise {franchise_id} in {year} week {week}'
        }), 404
    return jsonify(report), 200


@stats_bp.route('/stats/<int:year>/cache', methods=['GET'])
def get_cache_status(year: int):
    """Freshness of the cached season (FRESH, STALE or MISS)."""
    _check_year(year)
    service = _stats_service()
    status = service.cache_status(year)
    status['stats'] = service.cache.get_stats()
    return jsonify(status), 200


@stats_bp.route('/stats/<int:year>/cache', methods=['DELETE'])
def invalidate_cache(year: int):
    """Drop every cached entry for a season."""
    _check_year(year)
    removed = _stats_service().invalidate(year)
    logger.info(f"Invalidated {removed} cache entries for {year}")
    return jsonify({'year': year, 'invalidated': removed}), 200
