"""
MFL League Analytics - Flask Application

Builds the stats API: config, logging, the per-app cache and MFL client,
the stats blueprint and the background jobs.
"""

import atexit
import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Dict, Optional

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from mfl_analytics.config import get_config
from mfl_analytics.services.cache_service import CacheService
from mfl_analytics.services.league_stats_service import LeagueStatsService
from mfl_analytics.services.mfl_client import MFLClient
from mfl_analytics.services.scheduler_service import get_scheduler, init_scheduler, shutdown_scheduler

API_VERSION = '1.0.0'


def create_app(config_class=None, client: Optional[MFLClient] = None, cache: Optional[CacheService] = None):
    """
    Build a configured application.

    Args:
        config_class: Config class or instance; defaults to get_config()
        client: MFL client to use instead of one built from config
        cache: Cache to use instead of a fresh one

    Returns:
        Flask application
    """
    app = Flask(__name__)

    if config_class is None:
        config_class = get_config()
    app.config.from_object(config_class() if isinstance(config_class, type) else config_class)

    # Read-only API apart from cache invalidation
    CORS(
        app,
        origins=app.config.get('CORS_ORIGINS', ['http://localhost:3000']),
        allow_headers=['Content-Type'],
        methods=['GET', 'DELETE', 'OPTIONS'],
    )

    configure_logging(app)
    init_services(app, client=client, cache=cache)

    from mfl_analytics.api.stats import stats_bp
    app.register_blueprint(stats_bp, url_prefix='/api')

    register_error_handlers(app)
    register_ops_routes(app)

    if not app.testing:
        init_scheduler(app)
        atexit.register(shutdown_scheduler)

    app.logger.info(f"Stats API ready for league {app.config.get('MFL_LEAGUE_ID')}")
    return app


def configure_logging(app):
    """
    Attach handlers to the app logger and the `mfl_analytics` package logger.

    Outside debug and testing, records also go to a rotating file under
    LOG_DIR.
    """
    level = logging.DEBUG if app.debug else logging.INFO
    package_logger = logging.getLogger('mfl_analytics')

    handlers = []
    stream = logging.StreamHandler()
    stream.setFormatter(logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s'))
    handlers.append(stream)

    if not (app.debug or app.testing):
        log_dir = app.config.get('LOG_DIR', 'logs')
        os.makedirs(log_dir, exist_ok=True)
        rotating = RotatingFileHandler(
            os.path.join(log_dir, 'mfl_analytics.log'),
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
        )
        rotating.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s %(name)s %(message)s (%(filename)s:%(lineno)d)'
        ))
        handlers.append(rotating)

    for handler in handlers:
        handler.setLevel(level)
        app.logger.addHandler(handler)
        # create_app() may run many times in one process
        if not any(type(h) is type(handler) for h in package_logger.handlers):
            package_logger.addHandler(handler)

    app.logger.setLevel(level)
    package_logger.setLevel(level)


def load_owner_mappings(path: Optional[str]) -> Dict[str, str]:
    """
    Read franchise id -> manager name overrides from a JSON file.

    A missing or unreadable file yields no overrides.
    """
    if not path:
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logging.getLogger(__name__).warning(f"Could not load owner mappings from {path}: {e}")
        return {}
    return {str(k): str(v) for k, v in data.items()}


def init_services(app, client: Optional[MFLClient] = None, cache: Optional[CacheService] = None):
    """Create the per-application cache, upstream client and stats service."""
    config = app.config

    if cache is None:
        cache = CacheService(
            current_season_ttl=config['CACHE_TTL_CURRENT_SEASON_HOURS'] * 3600,
            completed_season_ttl=config['CACHE_TTL_COMPLETED_SEASON_DAYS'] * 86400,
            max_entry_age=config['CACHE_MAX_ENTRY_AGE_DAYS'] * 86400,
        )

    if client is None:
        client = MFLClient(
            base_url=config['MFL_API_BASE_URL'],
            timeout=config['MFL_API_TIMEOUT'],
            user_agent=config['MFL_USER_AGENT'],
            api_key=config.get('MFL_API_KEY'),
            request_interval=config['MFL_REQUEST_INTERVAL'],
            retry_delay=config['MFL_RATE_LIMIT_RETRY_DELAY'],
            owner_mappings=load_owner_mappings(config.get('OWNER_MAPPINGS_FILE')),
        )

    app.extensions['stats_cache'] = cache
    app.extensions['league_stats'] = LeagueStatsService(client, cache, config['MFL_LEAGUE_ID'])


def register_error_handlers(app):
    """Render HTTP errors as JSON bodies of the form {'error', 'message'}."""

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'error': error.name, 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def unhandled_error(error):
        app.logger.exception(f"Unhandled error: {error}")
        return jsonify({'error': 'Internal Server Error', 'message': 'An unexpected error occurred'}), 500


def register_ops_routes(app):
    """Health and scheduler status endpoints."""

    @app.route('/api/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'version': API_VERSION,
            'league_id': app.config.get('MFL_LEAGUE_ID'),
            'cache_entries': len(app.extensions['stats_cache']),
            'scheduler_running': get_scheduler().is_running,
        })

    @app.route('/api/scheduler/status')
    def scheduler_status():
        scheduler = get_scheduler()
        running = scheduler.is_running
        return jsonify({'running': running, 'jobs': scheduler.get_jobs() if running else []})


if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=5000, debug=True)
