"""
Configuration management for MFL League Analytics.

Settings are read from the environment (and a .env file). Defaults suit
local development; production must set MFL_LEAGUE_ID.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Settings shared by every environment."""

    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
    JSON_SORT_KEYS = False

    # CORS - Allow dashboard frontend
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost:3000').split(',')

    # MFL API
    MFL_LEAGUE_ID = os.environ.get('MFL_LEAGUE_ID', '')
    MFL_API_BASE_URL = os.environ.get('MFL_API_BASE_URL', 'https://api.myfantasyleague.com')
    MFL_API_KEY = os.environ.get('MFL_API_KEY')
    MFL_API_TIMEOUT = int(os.environ.get('MFL_API_TIMEOUT', '30'))
    MFL_USER_AGENT = os.environ.get('MFL_USER_AGENT', 'MFL-Dashboard/1.0')
    MFL_REQUEST_INTERVAL = float(os.environ.get('MFL_REQUEST_INTERVAL', '1.0'))
    MFL_RATE_LIMIT_RETRY_DELAY = float(os.environ.get('MFL_RATE_LIMIT_RETRY_DELAY', '5.0'))

    # Franchise id -> manager name overrides (JSON file)
    OWNER_MAPPINGS_FILE = os.environ.get('OWNER_MAPPINGS_FILE')

    # Cache
    CACHE_TTL_CURRENT_SEASON_HOURS = int(os.environ.get('CACHE_TTL_CURRENT_SEASON_HOURS', '24'))
    CACHE_TTL_COMPLETED_SEASON_DAYS = int(os.environ.get('CACHE_TTL_COMPLETED_SEASON_DAYS', '7'))
    CACHE_MAX_ENTRY_AGE_DAYS = int(os.environ.get('CACHE_MAX_ENTRY_AGE_DAYS', '30'))

    # Scheduler
    SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'true').lower() == 'true'
    SCHEDULER_REFRESH_HOUR = int(os.environ.get('SCHEDULER_REFRESH_HOUR', '3'))
    SCHEDULER_REFRESH_MINUTE = int(os.environ.get('SCHEDULER_REFRESH_MINUTE', '0'))
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE', 'America/New_York')
    CACHE_CLEANUP_INTERVAL_HOURS = int(os.environ.get('CACHE_CLEANUP_INTERVAL_HOURS', '6'))

    # Logging
    LOG_DIR = os.environ.get('LOG_DIR', 'logs')


class DevelopmentConfig(Config):
    """Local development with the debug reloader."""

    DEBUG = True


class TestingConfig(Config):
    """Fixed league, no throttling and no background jobs."""

    TESTING = True
    DEBUG = True
    MFL_LEAGUE_ID = '46221'
    MFL_REQUEST_INTERVAL = 0.0
    MFL_RATE_LIMIT_RETRY_DELAY = 0.0
    OWNER_MAPPINGS_FILE = None
    SCHEDULER_ENABLED = False


class ProductionConfig(Config):
    """Deployed API; the league id has no default."""

    DEBUG = False

    # Require a league in production
    @property
    def MFL_LEAGUE_ID(self):
        league_id = os.environ.get('MFL_LEAGUE_ID')
        if not league_id:
            raise ValueError('MFL_LEAGUE_ID environment variable must be set in production')
        return league_id


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Config class named by FLASK_ENV, falling back to development."""
    env = os.environ.get('FLASK_ENV', 'development')
    return config.get(env, config['default'])
