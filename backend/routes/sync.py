# routes/sync.py
from flask import Blueprint, current_app, jsonify, request
import logging

import catalog_sync
from errors import UpstreamError

logger = logging.getLogger(__name__)
sync_bp = Blueprint('sync', __name__)

# Sync endpoints (POST, OPTIONS preflight handled by flask-cors):
# - /sync-popular-albums
# - /sync-artist-discography
# - /migrate-album-tracks
# - /migrate-artist-spotify-urls
# - /refresh-album-popularity
# - /sync-album
# - /sync-artist
# - /sync-spotify-catalog


def _client():
    return current_app.extensions['spotify_client']


def _store():
    return current_app.extensions['record_store']


def _error_response(error, fallback_message):
    """Single JSON error shape for every sync failure"""
    details = error.details if isinstance(error, UpstreamError) else None
    return jsonify({
        'error': str(error) or fallback_message,
        'details': details
    }), 500


def _request_body():
    return request.get_json(silent=True) or {}


@sync_bp.route('/sync-popular-albums', methods=['POST'])
def sync_popular_albums():
    """Sync one page of Spotify new releases"""
    try:
        logger.info('Starting sync-popular-albums...')
        count = catalog_sync.sync_popular_albums(_client(), _store())
        return jsonify({
            'message': 'Popular albums synced successfully',
            'count': count
        })
    except Exception as e:
        logger.error(f"Error in sync-popular-albums: {e}", exc_info=True)
        return _error_response(e, 'Failed to sync popular albums')


@sync_bp.route('/sync-artist-discography', methods=['POST'])
def sync_artist_discography():
    """
    Sync an artist's full discography

    Body:
        artistId: Spotify artist id
    """
    try:
        artist_id = _request_body().get('artistId')
        count = catalog_sync.sync_artist_discography(_client(), _store(), artist_id)
        return jsonify({
            'message': f'Discography for artist {artist_id} synced successfully.',
            'totalAlbumsProcessed': count
        })
    except Exception as e:
        logger.error(f"Error in sync-artist-discography: {e}", exc_info=True)
        return _error_response(e, 'Failed to sync artist discography')


@sync_bp.route('/migrate-album-tracks', methods=['POST'])
def migrate_album_tracks():
    """Backfill track listings for albums stored without them"""
    try:
        logger.info('Starting migrate-album-tracks...')
        total = catalog_sync.backfill_missing_tracks(_client(), _store())
        return jsonify({
            'message': 'Album track data migration completed successfully',
            'totalAlbumsPopulated': total
        })
    except Exception as e:
        logger.error(f"Error in migrate-album-tracks: {e}", exc_info=True)
        return _error_response(e, 'Failed to migrate album track data')


@sync_bp.route('/migrate-artist-spotify-urls', methods=['POST'])
def migrate_artist_spotify_urls():
    """Refresh profiles of every stored artist"""
    try:
        logger.info('Starting migrate-artist-spotify-urls...')
        total = catalog_sync.backfill_artist_profiles(_client(), _store())
        return jsonify({
            'message': 'Artist Spotify URLs migration completed successfully',
            'totalArtistsProcessed': total
        })
    except Exception as e:
        logger.error(f"Error in migrate-artist-spotify-urls: {e}", exc_info=True)
        return _error_response(e, 'Failed to migrate artist Spotify URLs')


@sync_bp.route('/refresh-album-popularity', methods=['POST'])
def refresh_album_popularity():
    """Refresh popularity of the least recently updated albums"""
    try:
        count = catalog_sync.refresh_stale_albums(_client(), _store())
        return jsonify({
            'message': 'Album popularity refreshed successfully',
            'count': count
        })
    except Exception as e:
        logger.error(f"Error in refresh-album-popularity: {e}", exc_info=True)
        return _error_response(e, 'Failed to refresh album popularity')


@sync_bp.route('/sync-album', methods=['POST'])
def sync_album():
    try:
        data = catalog_sync.sync_album(_store(), _request_body().get('album'))
        return jsonify({'message': 'Album synced successfully', 'data': data})
    except Exception as e:
        logger.error(f"Error in sync-album: {e}", exc_info=True)
        return _error_response(e, 'Failed to sync album')


@sync_bp.route('/sync-artist', methods=['POST'])
def sync_artist():
    try:
        data = catalog_sync.sync_artist(_store(), _request_body().get('artist'))
        return jsonify({'message': 'Artist synced successfully', 'data': data})
    except Exception as e:
        logger.error(f"Error in sync-artist: {e}", exc_info=True)
        return _error_response(e, 'Failed to sync artist')


@sync_bp.route('/sync-spotify-catalog', methods=['POST'])
def sync_spotify_catalog():
    """Scheduled sweep: new releases, discovered artists, stale popularity"""
    try:
        logger.info('Starting sync-spotify-catalog...')
        counts = catalog_sync.sync_catalog(_client(), _store())
        return jsonify({
            'message': 'Spotify catalog sync completed successfully',
            'newReleasesProcessed': counts['new_releases_processed'],
            'artistsDiscovered': counts['artists_discovered'],
            'newAlbumsFromArtistsProcessed': counts['new_albums_from_artists_processed'],
            'existingAlbumsPopularityRefreshed': counts['existing_albums_popularity_refreshed'],
        })
    except Exception as e:
        logger.error(f"Error in sync-spotify-catalog: {e}", exc_info=True)
        return _error_response(e, 'Failed to sync Spotify catalog')
