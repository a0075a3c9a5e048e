"""
Catalog Sync API Backend
A Flask API that keeps the album/artist record store in sync with Spotify
"""

from flask import Flask, request
from flask_cors import CORS
import atexit
import logging
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from config import configure_logging, init_app_config, load_settings

import catalog_db
import db_utils as db_tools
from routes import register_blueprints
from spotify_client import SpotifyClient

logger = configure_logging()

CORS_ALLOW_HEADERS = ['authorization', 'x-client-info', 'apikey', 'content-type']
# Sync endpoints are POST only; /health is the one GET route
CORS_RESOURCES = {
    r'/health': {'methods': ['GET']},
    r'/*': {'methods': ['POST', 'OPTIONS']},
}


def create_app(settings=None, spotify_client=None, record_store=None):
    """
    Build the Flask application

    Args:
        settings: config.Settings; read from the environment when omitted
        spotify_client: Catalog client; built from settings when omitted
        record_store: Record store module/object; catalog_db when omitted

    Raises:
        ConfigurationError: If a required secret is missing
    """
    settings = settings or load_settings()

    app = Flask(__name__)
    CORS(app, resources=CORS_RESOURCES, origins='*', allow_headers=CORS_ALLOW_HEADERS)
    init_app_config(app)

    db_tools.configure(
        settings.database_url,
        settings.database_service_key,
        use_pooling=settings.db_use_pooling
    )

    app.extensions['spotify_client'] = spotify_client or SpotifyClient.from_settings(settings)
    app.extensions['record_store'] = record_store or catalog_db

    register_blueprints(app)

    # Request/response logging
    @app.before_request
    def log_request():
        """Log incoming requests"""
        logger.info(f"{request.method} {request.path}")

    @app.after_request
    def log_response(response):
        """Log response status"""
        logger.info(f"{request.method} {request.path} - {response.status_code}")
        return response

    logger.info(f"Flask app initialized in PID {os.getpid()}")
    return app


def cleanup_connections():
    """Close the connection pool on shutdown"""
    logger.info("Shutting down connection pool...")
    db_tools.close_connection_pool()


atexit.register(cleanup_connections)


if __name__ == '__main__':
    # Running directly with 'python app.py' (not gunicorn)
    logger.info("Starting Flask application directly (not gunicorn)...")
    app = create_app()
    try:
        app.run(debug=True, host='0.0.0.0', port=5001)
    finally:
        logger.info("Shutting down...")
        db_tools.close_connection_pool()
        logger.info("Shutdown complete")
