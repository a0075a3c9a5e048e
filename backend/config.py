"""
Configuration Module for the Catalog Sync API
Handles logging setup, environment settings and Flask app initialization
"""

import os
import logging
from dataclasses import dataclass

from errors import ConfigurationError


def configure_logging(level=None):
    """
    Configure application logging with standard format

    Args:
        level: Log level name; defaults to LOG_LEVEL or INFO

    Returns:
        Logger instance for the config module
    """
    level = level or os.environ.get('LOG_LEVEL', 'INFO')
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    """Secrets and switches read from the environment"""
    spotify_client_id: str
    spotify_client_secret: str
    database_url: str
    database_service_key: str
    db_use_pooling: bool = False


def _env(name, environ):
    # Older deployments exported the Spotify secrets with the frontend prefix
    return environ.get(name) or environ.get(f'VITE_{name}')


def load_settings(environ=None) -> Settings:
    """
    Read settings from the environment

    Raises:
        ConfigurationError: If any required secret is missing (lists all of them)
    """
    environ = os.environ if environ is None else environ

    values = {
        'SPOTIFY_CLIENT_ID': _env('SPOTIFY_CLIENT_ID', environ),
        'SPOTIFY_CLIENT_SECRET': _env('SPOTIFY_CLIENT_SECRET', environ),
        'DATABASE_URL': environ.get('DATABASE_URL'),
        'DATABASE_SERVICE_KEY': environ.get('DATABASE_SERVICE_KEY'),
    }
    missing = [name for name, value in values.items() if not value]
    if missing:
        logging.getLogger(__name__).error(f"Missing environment variables: {', '.join(missing)}")
        raise ConfigurationError(missing)

    return Settings(
        spotify_client_id=values['SPOTIFY_CLIENT_ID'],
        spotify_client_secret=values['SPOTIFY_CLIENT_SECRET'],
        database_url=values['DATABASE_URL'],
        database_service_key=values['DATABASE_SERVICE_KEY'],
        db_use_pooling=environ.get('DB_USE_POOLING', 'false').lower() == 'true',
    )


def init_app_config(app):
    """
    Initialize Flask app configuration

    This sets up:
    - Custom JSON provider for date formatting

    Args:
        app: Flask application instance
    """
    from utils.json_provider import CustomJSONProvider
    app.json = CustomJSONProvider(app)
