"""
Catalog Sync Orchestrators

Each orchestrator is a straight-line procedure: page through Spotify or the
record store, fetch details through the rate-limited client, and upsert the
results. Per-item fetch failures are logged and dropped; an upsert failure or
a Spotify authentication failure aborts the run.

Nothing is checkpointed between runs. Rows still missing data are simply
picked up again by the next run.
"""

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from catalog_models import ALBUM_TYPES, CatalogAlbum, CatalogArtist
from errors import CatalogAuthError, ValidationError

logger = logging.getLogger(__name__)

NEW_RELEASES_LIMIT = 50
ARTIST_ALBUMS_PAGE_SIZE = 50
STORE_PAGE_LIMIT = 100
SPOTIFY_BATCH_SIZE = 20
DEFAULT_MAX_WORKERS = 10


# ============================================================================
# CONCURRENT FETCH
# ============================================================================

def _fetch_or_none(fetch: Callable[[str], Any], item_id: str, label: str):
    try:
        return fetch(item_id)
    except CatalogAuthError:
        raise
    except Exception as e:
        logger.warning(f"Could not fetch {label} {item_id}: {e}")
        return None


def fetch_all(ids: Sequence[str], fetch: Callable[[str], Any], label: str = 'item',
              max_workers: int = DEFAULT_MAX_WORKERS) -> List[Any]:
    """
    Fetch every id concurrently and wait for all of them to settle

    Failed fetches are replaced by None and filtered out, so the result keeps
    the input order minus the failures. A CatalogAuthError is re-raised
    because no other fetch in the run can succeed either.
    """
    if not ids:
        return []

    with ThreadPoolExecutor(max_workers=min(max_workers, len(ids))) as executor:
        futures = [executor.submit(_fetch_or_none, fetch, item_id, label) for item_id in ids]
        results = [future.result() for future in futures]

    return [result for result in results if result is not None]


# ============================================================================
# ORCHESTRATORS
# ============================================================================

def sync_popular_albums(client, store, limit: int = NEW_RELEASES_LIMIT) -> int:
    """
    Fetch one page of new releases and upsert them

    Returns:
        Number of albums synced
    """
    logger.info(f"Fetching {limit} new releases from Spotify...")
    albums = client.list_new_releases(limit=limit)
    logger.info(f"Successfully fetched {len(albums)} albums.")

    store.upsert_albums(albums)
    return len(albums)


def _list_artist_albums(client, artist_id: str, page_size: int) -> List[CatalogAlbum]:
    logger.info(f"Fetching all albums for artist ID: {artist_id} from Spotify.")
    listed: List[CatalogAlbum] = []
    offset = 0
    while True:
        items, has_next = client.list_artist_albums(artist_id, offset=offset, limit=page_size)
        listed.extend(items)
        if not has_next:
            break
        offset += page_size
    logger.info(f"Fetched {len(listed)} albums for artist ID: {artist_id} from Spotify.")
    return listed


def sync_artist_discography(client, store, artist_id: str,
                            page_size: int = ARTIST_ALBUMS_PAGE_SIZE,
                            max_workers: int = DEFAULT_MAX_WORKERS) -> int:
    """
    Sync every release of one artist, with full track listings

    Pages through the artist's albums until Spotify reports no further page,
    fetches each album's detail individually, then upserts the whole batch.

    Returns:
        Number of albums whose detail could be fetched and stored
    """
    if not artist_id:
        raise ValidationError('Missing artistId in request body')

    listed = _list_artist_albums(client, artist_id, page_size)
    full_albums = fetch_all([album.id for album in listed], client.get_album,
                            label='album', max_workers=max_workers)
    store.upsert_albums(full_albums)

    logger.info(f"Discography sync completed for artist ID: {artist_id}. "
                f"Total albums processed: {len(full_albums)}")
    return len(full_albums)


def backfill_missing_tracks(client, store, page_limit: int = STORE_PAGE_LIMIT,
                            batch_size: int = SPOTIFY_BATCH_SIZE,
                            batch_delay: float = 0.5, page_delay: float = 2.0,
                            sleep: Optional[Callable[[float], None]] = None,
                            max_workers: int = DEFAULT_MAX_WORKERS) -> int:
    """
    Populate track listings for stored albums that have none

    Pulls pages of album ids missing tracks, fetches their detail in
    sub-batches, and upserts each sub-batch. Stops the first time a page
    comes back empty. Albums that fail during this run are excluded from
    later pages so they cannot be picked up over and over.

    Returns:
        Total number of albums populated
    """
    sleep = sleep or time.sleep
    total_populated = 0
    failed_ids = set()

    while True:
        album_ids = store.select_albums_missing_tracks(page_limit, exclude=sorted(failed_ids))
        if not album_ids:
            logger.info("No more albums missing track data.")
            break

        logger.info(f"Found {len(album_ids)} albums missing track data.")

        for i in range(0, len(album_ids), batch_size):
            batch_ids = album_ids[i:i + batch_size]
            logger.info(f"  Fetching details for batch of {len(batch_ids)} albums from Spotify.")

            albums = fetch_all(batch_ids, client.get_album, label='album', max_workers=max_workers)
            filled = {album.id for album in albums if album.tracks is not None}
            failed_ids.update(set(batch_ids) - filled)

            if albums:
                total_populated += store.upsert_albums(albums)
                logger.info(f"  Successfully updated {len(albums)} albums.")

            sleep(batch_delay)

        logger.info(f"Current total populated: {total_populated}")
        sleep(page_delay)

    if failed_ids:
        logger.warning(f"{len(failed_ids)} albums could not be populated this run")
    logger.info(f"Migration complete. Total albums populated with track data: {total_populated}")
    return total_populated


def backfill_artist_profiles(client, store, page_limit: int = STORE_PAGE_LIMIT,
                             page_delay: float = 1.0,
                             sleep: Optional[Callable[[float], None]] = None,
                             max_workers: int = DEFAULT_MAX_WORKERS) -> int:
    """
    Refresh every stored artist's profile (image, Spotify URL, genres)

    Returns:
        Total number of artists updated
    """
    sleep = sleep or time.sleep
    offset = 0
    total_processed = 0

    while True:
        artist_ids = store.select_artist_ids(offset=offset, limit=page_limit)
        if not artist_ids:
            break

        logger.info(f"Processing batch of {len(artist_ids)} artists (offset: {offset})...")
        artists = fetch_all(artist_ids, client.get_artist, label='artist', max_workers=max_workers)

        if artists:
            total_processed += store.upsert_artists(artists)

        offset += page_limit
        sleep(page_delay)

    logger.info(f"Migration complete. Total artists processed: {total_processed}")
    return total_processed


def refresh_stale_albums(client, store, max_age_days: int = 14,
                         limit: int = STORE_PAGE_LIMIT,
                         batch_size: int = SPOTIFY_BATCH_SIZE,
                         batch_delay: float = 0.5,
                         sleep: Optional[Callable[[float], None]] = None,
                         now: Optional[datetime] = None) -> int:
    """
    Re-fetch the least recently updated albums to refresh their popularity

    Uses the multi-album endpoint, one request per batch. A batch that fails
    is logged and skipped.

    Returns:
        Number of albums refreshed
    """
    sleep = sleep or time.sleep
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=max_age_days)
    album_ids = store.select_stale_album_ids(cutoff, limit)
    logger.info(f"Found {len(album_ids)} albums not updated since {cutoff.isoformat()}")

    refreshed = 0
    for i in range(0, len(album_ids), batch_size):
        batch_ids = album_ids[i:i + batch_size]
        try:
            albums = client.get_albums(batch_ids)
        except CatalogAuthError:
            raise
        except Exception as e:
            logger.warning(f"Could not fetch album batch starting at {batch_ids[0]}: {e}")
            albums = []

        if albums:
            refreshed += store.upsert_albums(albums)
        sleep(batch_delay)

    logger.info(f"Refreshed popularity for {refreshed} existing albums.")
    return refreshed


# ============================================================================
# SCHEDULED CATALOG SYNC
# ============================================================================

SEED_GENRES = ['pop', 'rock', 'hip hop', 'jazz', 'electronic',
               'country', 'r&b', 'metal', 'indie', 'classical']


def _sync_albums_needing_update(client, store, album_ids: Sequence[str], cutoff: datetime,
                                album_delay: float, sleep: Callable[[float], None]) -> int:
    """Fetch and upsert, one by one, the albums not refreshed since ``cutoff``"""
    synced = 0
    for album_id in store.select_albums_needing_update(album_ids, cutoff):
        album = _fetch_or_none(client.get_album, album_id, 'album')
        if album is not None:
            store.upsert_albums([album])
            synced += 1
        sleep(album_delay)
    return synced


def sync_catalog(client, store, max_age_days: int = 14,
                 new_releases_limit: int = NEW_RELEASES_LIMIT,
                 artists_per_run: int = 2,
                 refresh_limit: int = STORE_PAGE_LIMIT,
                 genre: Optional[str] = None,
                 album_delay: float = 0.2, artist_delay: float = 1.0,
                 sleep: Optional[Callable[[float], None]] = None,
                 now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Scheduled sweep that grows and refreshes the catalog in three phases

    1. New releases not refreshed within ``max_age_days`` get full detail.
    2. A few artists found by searching one seed genre (random unless
       ``genre`` is given) are upserted, and their albums go through the
       same freshness check. A failing artist is logged and skipped.
    3. The least recently updated stored albums get their popularity
       refreshed (``refresh_stale_albums``).

    Returns:
        Counts per phase: new_releases_processed, artists_discovered,
        new_albums_from_artists_processed, existing_albums_popularity_refreshed
    """
    sleep = sleep or time.sleep
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=max_age_days)

    logger.info("Phase 1: Syncing new releases...")
    releases = client.list_new_releases(limit=new_releases_limit)
    new_releases_processed = _sync_albums_needing_update(
        client, store, [album.id for album in releases], cutoff, album_delay, sleep
    )
    logger.info(f"Phase 1: Synced {new_releases_processed} new/updated release albums.")

    genre = genre or random.choice(SEED_GENRES)
    logger.info(f"Phase 2: Discovering artists in genre: {genre!r}")
    artists = client.search_artists(genre, limit=artists_per_run)
    artist_albums_processed = 0
    for artist in artists:
        try:
            store.upsert_artists([artist])
            listed = _list_artist_albums(client, artist.id, ARTIST_ALBUMS_PAGE_SIZE)
            artist_albums_processed += _sync_albums_needing_update(
                client, store, [album.id for album in listed], cutoff, album_delay, sleep
            )
        except CatalogAuthError:
            raise
        except Exception as e:
            logger.warning(f"Error processing artist {artist.name} ({artist.id}): {e}")
        sleep(artist_delay)
    logger.info(f"Phase 2: Discovered {len(artists)} artists and synced "
                f"{artist_albums_processed} albums from their discographies.")

    logger.info("Phase 3: Refreshing popularity for existing albums...")
    refreshed = refresh_stale_albums(client, store, max_age_days=max_age_days,
                                     limit=refresh_limit, sleep=sleep, now=now)

    return {
        'new_releases_processed': new_releases_processed,
        'artists_discovered': len(artists),
        'new_albums_from_artists_processed': artist_albums_processed,
        'existing_albums_popularity_refreshed': refreshed,
    }


# ============================================================================
# SINGLE RECORD SYNC
# ============================================================================

ALBUM_REQUIRED_FIELDS = ['id', 'name', 'artist', 'artistId', 'coverUrl', 'releaseDate', 'type']
ARTIST_REQUIRED_FIELDS = ['id', 'name']


def _require_fields(record: Optional[Dict[str, Any]], kind: str, required: List[str]):
    if not record:
        raise ValidationError(f'Missing {kind} data in request body')
    missing = [name for name in required if not record.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def sync_album(store, album: Optional[Dict[str, Any]]) -> Optional[dict]:
    """
    Upsert one album supplied by the frontend and return the stored row
    """
    _require_fields(album, 'album', ALBUM_REQUIRED_FIELDS)
    if album['type'] not in ALBUM_TYPES:
        raise ValidationError(f"Invalid album type: {album['type']} "
                              f"(expected one of {', '.join(ALBUM_TYPES)})")

    record = CatalogAlbum(
        id=album['id'],
        name=album['name'],
        primary_artist_name=album['artist'],
        primary_artist_id=album['artistId'],
        cover_url=album['coverUrl'],
        release_date=album['releaseDate'],
        album_type=album['type'],
        popularity=album.get('popularity'),
        external_url=album.get('spotifyUrl'),
    )
    store.upsert_albums([record])
    return store.get_album(record.id)


def sync_artist(store, artist: Optional[Dict[str, Any]]) -> Optional[dict]:
    """Upsert one artist supplied by the frontend and return the stored row"""
    _require_fields(artist, 'artist', ARTIST_REQUIRED_FIELDS)

    record = CatalogArtist(
        id=artist['id'],
        name=artist['name'],
        image_url=artist.get('imageUrl'),
        external_url=artist.get('spotifyUrl'),
        genres=tuple(artist.get('genres') or ()),
    )
    store.upsert_artists([record])
    return store.get_artist(record.id)
