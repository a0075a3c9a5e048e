"""
Catalog Database Operations

Record store queries for synchronized albums and artists, and the batch
upsert gateway that maps catalog records onto stored rows. Rows are keyed by
the Spotify id, so every upsert can be replayed safely.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Union

import psycopg
from psycopg.types.json import Jsonb

from catalog_models import CatalogAlbum, CatalogArtist
from db_utils import get_db_connection
from errors import UpstreamError

logger = logging.getLogger(__name__)

UNKNOWN_ARTIST_NAME = 'Unknown Artist'
UNKNOWN_ARTIST_ID = 'unknown'
PLACEHOLDER_COVER_URL = 'https://via.placeholder.com/300'


# ============================================================================
# ROW MAPPING
# ============================================================================

def album_to_row(album: CatalogAlbum, updated_at: datetime) -> dict:
    """Stored projection of an album, with defaults for absent fields"""
    tracks = None
    if album.tracks is not None:
        tracks = [
            {
                'id': track.id,
                'name': track.name,
                'duration': track.duration_seconds,
                'trackNumber': track.track_number,
            }
            for track in album.tracks
        ]

    return {
        'id': album.id,
        'name': album.name,
        'artist': album.primary_artist_name or UNKNOWN_ARTIST_NAME,
        'artist_id': album.primary_artist_id or UNKNOWN_ARTIST_ID,
        'cover_url': album.cover_url or PLACEHOLDER_COVER_URL,
        'release_date': album.release_date,
        'album_type': album.album_type,
        'popularity': album.popularity or 0,
        'spotify_url': album.external_url,
        'tracks': tracks,
        'updated_at': updated_at,
    }


def artist_to_row(artist: CatalogArtist, updated_at: datetime) -> dict:
    return {
        'id': artist.id,
        'name': artist.name,
        'image_url': artist.image_url,
        'spotify_url': artist.external_url,
        'genres': list(artist.genres or ()),
        'updated_at': updated_at,
    }


# ============================================================================
# BATCH UPSERT GATEWAY
# ============================================================================

# A listing without tracks must not wipe tracks fetched earlier
UPSERT_ALBUMS_SQL = """
    INSERT INTO albums (
        id, name, artist, artist_id, cover_url, release_date,
        album_type, popularity, spotify_url, tracks, updated_at
    )
    VALUES (
        %(id)s, %(name)s, %(artist)s, %(artist_id)s, %(cover_url)s, %(release_date)s,
        %(album_type)s, %(popularity)s, %(spotify_url)s, %(tracks)s, %(updated_at)s
    )
    ON CONFLICT (id) DO UPDATE SET
        name = EXCLUDED.name,
        artist = EXCLUDED.artist,
        artist_id = EXCLUDED.artist_id,
        cover_url = EXCLUDED.cover_url,
        release_date = EXCLUDED.release_date,
        album_type = EXCLUDED.album_type,
        popularity = EXCLUDED.popularity,
        spotify_url = EXCLUDED.spotify_url,
        tracks = COALESCE(EXCLUDED.tracks, albums.tracks),
        updated_at = EXCLUDED.updated_at
"""

UPSERT_ARTISTS_SQL = """
    INSERT INTO artists (id, name, image_url, spotify_url, genres, updated_at)
    VALUES (%(id)s, %(name)s, %(image_url)s, %(spotify_url)s, %(genres)s, %(updated_at)s)
    ON CONFLICT (id) DO UPDATE SET
        name = EXCLUDED.name,
        image_url = EXCLUDED.image_url,
        spotify_url = EXCLUDED.spotify_url,
        genres = EXCLUDED.genres,
        updated_at = EXCLUDED.updated_at
"""


def _bulk_upsert(table: str, query: str, rows: List[dict]) -> int:
    """
    Write all rows in one transaction; any failure rolls back the batch

    Raises:
        UpstreamError: Wrapping the underlying psycopg error
    """
    logger.info(f"Upserting {len(rows)} {table}...")
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(query, rows)
    except psycopg.Error as e:
        logger.error(f"Error upserting {table}: {e}")
        raise UpstreamError(f"Failed to upsert {table}: {e}", details=getattr(e, 'sqlstate', None)) from e

    logger.info(f"{table.capitalize()} upserted successfully.")
    return len(rows)


def upsert_albums(albums: Sequence[CatalogAlbum]) -> int:
    """
    Insert or update albums keyed by Spotify id

    Returns:
        Number of rows written (0 without touching the database for empty input)
    """
    if not albums:
        return 0

    updated_at = datetime.now(timezone.utc)
    rows = []
    for album in albums:
        row = album_to_row(album, updated_at)
        if row['tracks'] is not None:
            row['tracks'] = Jsonb(row['tracks'])
        rows.append(row)

    return _bulk_upsert('albums', UPSERT_ALBUMS_SQL, rows)


def upsert_artists(artists: Sequence[CatalogArtist]) -> int:
    """Insert or update artists keyed by Spotify id"""
    if not artists:
        return 0

    updated_at = datetime.now(timezone.utc)
    rows = [artist_to_row(artist, updated_at) for artist in artists]
    return _bulk_upsert('artists', UPSERT_ARTISTS_SQL, rows)


def upsert_records(records: Sequence[Union[CatalogAlbum, CatalogArtist]]) -> int:
    """
    Upsert a mixed sequence of albums and artists

    Returns:
        Total number of rows written
    """
    albums, artists = [], []
    for record in records:
        if isinstance(record, CatalogAlbum):
            albums.append(record)
        elif isinstance(record, CatalogArtist):
            artists.append(record)
        else:
            raise TypeError(f"Cannot upsert {type(record).__name__}")

    return upsert_albums(albums) + upsert_artists(artists)


# ============================================================================
# SELECTIONS
# ============================================================================

def _select_ids(query: str, params) -> List[str]:
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return [row['id'] for row in cur.fetchall()]
    except psycopg.Error as e:
        logger.error(f"Error selecting ids from record store: {e}")
        raise UpstreamError(f"Record store query failed: {e}") from e


def select_albums_missing_tracks(limit: int = 100, exclude: Sequence[str] = ()) -> List[str]:
    """
    Ids of stored albums whose track list has never been fetched

    Args:
        limit: Page size
        exclude: Ids to skip (albums that already failed during this run)
    """
    return _select_ids(
        """
        SELECT id FROM albums
        WHERE tracks IS NULL
          AND NOT (id = ANY(%s))
        ORDER BY id
        LIMIT %s
        """,
        (list(exclude), limit)
    )


def select_artist_ids(offset: int = 0, limit: int = 100) -> List[str]:
    """One page of stored artist ids, in a stable order"""
    return _select_ids(
        "SELECT id FROM artists ORDER BY id LIMIT %s OFFSET %s",
        (limit, offset)
    )


def select_stale_album_ids(older_than: datetime, limit: int = 100) -> List[str]:
    """Albums last updated before ``older_than``, oldest first"""
    return _select_ids(
        """
        SELECT id FROM albums
        WHERE updated_at < %s
        ORDER BY updated_at ASC
        LIMIT %s
        """,
        (older_than, limit)
    )


def select_albums_needing_update(album_ids: Sequence[str], older_than: datetime) -> List[str]:
    """
    The subset of ``album_ids`` that is not stored yet or was last updated
    before ``older_than``, in input order
    """
    if not album_ids:
        return []

    fresh = set(_select_ids(
        "SELECT id FROM albums WHERE id = ANY(%s) AND updated_at >= %s",
        (list(album_ids), older_than)
    ))
    return [album_id for album_id in album_ids if album_id not in fresh]


def get_album(album_id: str) -> Optional[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM albums WHERE id = %s", (album_id,))
            return cur.fetchone()


def get_artist(artist_id: str) -> Optional[dict]:
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM artists WHERE id = %s", (artist_id,))
            return cur.fetchone()
