"""
Spotify API Client Infrastructure

Handles low-level Spotify API concerns:
- Client-credentials token caching
- Rate limiting with a bounded retry policy
- Parsing responses into catalog records

Used by the sync orchestrators for all catalog API interactions.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import requests

from catalog_models import CatalogAlbum, CatalogArtist
from errors import CatalogAuthError, ExhaustedRetries, UpstreamError

logger = logging.getLogger(__name__)

SPOTIFY_TOKEN_URL = 'https://accounts.spotify.com/api/token'
SPOTIFY_API_BASE = 'https://api.spotify.com/v1'


def _response_details(response) -> Any:
    """Best-effort body of an error response, for the JSON error payload"""
    try:
        return response.json()
    except ValueError:
        return getattr(response, 'text', None) or None


# ============================================================================
# TOKEN CACHE
# ============================================================================

@dataclass
class Credential:
    """Bearer token and the instant (epoch seconds) it stops being valid"""
    token: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class TokenCache:
    """
    Holds a single Spotify bearer credential and refreshes it on demand.

    Refresh is serialized by a lock so concurrent detail fetches do not all
    race to the token endpoint; the last credential written wins either way.
    """

    def __init__(self, client_id: str, client_secret: str, session=None,
                 clock: Callable[[], float] = time.time, timeout: int = 10):
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = session or requests.Session()
        self.clock = clock
        self.timeout = timeout
        self.credential: Optional[Credential] = None
        self._lock = threading.Lock()

    def get_token(self) -> Credential:
        """Return the cached credential, refreshing it if it has expired"""
        with self._lock:
            now = self.clock()
            if self.credential is not None and self.credential.is_valid(now):
                return self.credential

            self.credential = self.authenticate(now)
            return self.credential

    def authenticate(self, now: float) -> Credential:
        """
        Exchange the client id/secret for a new bearer token

        Raises:
            CatalogAuthError: If the token endpoint fails or answers garbage
        """
        logger.info("Fetching new Spotify access token...")
        try:
            response = self.session.post(
                SPOTIFY_TOKEN_URL,
                data={'grant_type': 'client_credentials'},
                auth=(self.client_id, self.client_secret),
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to authenticate with Spotify: {e}")
            raise CatalogAuthError(f"Spotify authentication failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Spotify authentication rejected (HTTP {response.status_code})")
            raise CatalogAuthError(
                "Spotify authentication failed",
                details=_response_details(response),
                status_code=response.status_code
            )

        try:
            data = response.json()
            credential = Credential(
                token=data['access_token'],
                expires_at=now + float(data['expires_in'])
            )
        except (ValueError, KeyError, TypeError) as e:
            raise CatalogAuthError(f"Unexpected Spotify token response: {e}") from e

        logger.info(f"Spotify access token obtained (expires in {data['expires_in']}s)")
        return credential


# ============================================================================
# RETRY POLICY
# ============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    How rate-limited calls are retried.

    ``max_retries`` counts retries, not attempts: the default of 3 allows
    four attempts in total. Without a Retry-After header the wait grows
    linearly with the attempt number.
    """
    max_retries: int = 3
    base_delay: float = 1.0
    retryable_statuses: Tuple[int, ...] = (429,)

    def is_retryable(self, status_code: int) -> bool:
        return status_code in self.retryable_statuses

    def backoff(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Seconds to wait before retry number ``attempt + 1``"""
        if retry_after is not None:
            return retry_after
        return self.base_delay * (attempt + 1)


# ============================================================================
# CLIENT
# ============================================================================

class SpotifyClient:
    """
    Rate-limited Spotify catalog client.
    """

    def __init__(self, token_cache: TokenCache, session=None,
                 retry_policy: Optional[RetryPolicy] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 base_url: str = SPOTIFY_API_BASE, timeout: int = 10):
        """
        Args:
            token_cache: Source of bearer credentials
            session: requests-compatible session (a new one if not given)
            retry_policy: Rate limit policy (defaults to 3 retries, 1s base delay)
            sleep: Sleep function, swapped out in tests
            base_url: Spotify Web API root
            timeout: Per-request timeout in seconds
        """
        self.token_cache = token_cache
        self.session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep = sleep
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        self._stats_lock = threading.Lock()
        self.stats = {
            'api_calls': 0,
            'rate_limit_hits': 0,
            'rate_limit_waits': 0
        }

    @classmethod
    def from_settings(cls, settings, **kwargs) -> 'SpotifyClient':
        session = requests.Session()
        token_cache = TokenCache(
            settings.spotify_client_id,
            settings.spotify_client_secret,
            session=session
        )
        return cls(token_cache, session=session, **kwargs)

    def _count(self, name: str):
        # Detail fetches run on several worker threads
        with self._stats_lock:
            self.stats[name] += 1

    # ========================================================================
    # RATE LIMITING
    # ========================================================================

    def _handle_rate_limit_response(self, response) -> Optional[float]:
        """
        Read the advisory Retry-After header (seconds)

        Returns:
            Seconds to wait, or None when the header is missing or unparseable
        """
        retry_after = response.headers.get('Retry-After')
        if retry_after is None:
            return None
        try:
            return max(0.0, float(retry_after))
        except ValueError:
            logger.warning(f"Invalid Retry-After header: {retry_after}")
            return None

    def call(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET a catalog endpoint with token handling and rate limit retries

        Args:
            endpoint: Path below the API root, e.g. ``/albums/123``
            params: Optional query parameters

        Returns:
            Decoded JSON payload

        Raises:
            ExhaustedRetries: If every allowed attempt was rate limited
            UpstreamError: For any other HTTP or network failure (not retried)
            CatalogAuthError: If a token could not be obtained
        """
        url = f"{self.base_url}{endpoint}"
        policy = self.retry_policy
        attempt = 0

        while True:
            credential = self.token_cache.get_token()

            try:
                response = self.session.get(
                    url,
                    params=params,
                    headers={'Authorization': f'Bearer {credential.token}'},
                    timeout=self.timeout
                )
            except requests.exceptions.RequestException as e:
                logger.error(f"Request to {endpoint} failed: {e}")
                raise UpstreamError(f"Spotify request failed for {endpoint}: {e}") from e

            self._count('api_calls')

            if policy.is_retryable(response.status_code):
                self._count('rate_limit_hits')
                retry_after = self._handle_rate_limit_response(response)

                if attempt >= policy.max_retries:
                    logger.error(f"Rate limit retries exhausted for {endpoint}")
                    raise ExhaustedRetries(endpoint, retry_after)

                wait_time = policy.backoff(attempt, retry_after)
                logger.warning(f"Rate limit hit (attempt {attempt + 1}/{policy.max_retries + 1}) "
                               f"for {endpoint}. Retrying in {wait_time}s")
                self._count('rate_limit_waits')
                self.sleep(wait_time)
                attempt += 1
                continue

            if response.status_code >= 400:
                logger.error(f"Spotify API error {response.status_code} for {endpoint}")
                raise UpstreamError(
                    f"Spotify API error {response.status_code} for {endpoint}",
                    details=_response_details(response),
                    status_code=response.status_code
                )

            return response.json()

    # ========================================================================
    # CATALOG OPERATIONS
    # ========================================================================

    def get_album(self, album_id: str) -> CatalogAlbum:
        """Full album detail, including tracks"""
        return CatalogAlbum.from_spotify(self.call(f'/albums/{album_id}'))

    def get_albums(self, album_ids: Sequence[str]) -> List[CatalogAlbum]:
        """Several albums in one request (Spotify allows up to 20 ids)"""
        if not album_ids:
            return []
        data = self.call('/albums', params={'ids': ','.join(album_ids)})
        # Unknown ids come back as null entries
        return [CatalogAlbum.from_spotify(a) for a in data.get('albums') or [] if a]

    def get_artist(self, artist_id: str) -> CatalogArtist:
        return CatalogArtist.from_spotify(self.call(f'/artists/{artist_id}'))

    def list_artist_albums(self, artist_id: str, offset: int = 0,
                           limit: int = 50) -> Tuple[List[CatalogAlbum], bool]:
        """
        One page of an artist's releases

        Returns:
            (albums on this page, whether Spotify reports a further page)
        """
        data = self.call(
            f'/artists/{artist_id}/albums',
            params={
                'include_groups': 'album,single,compilation',
                'limit': limit,
                'offset': offset
            }
        )
        items = [CatalogAlbum.from_spotify(a) for a in data.get('items') or [] if a]
        return items, bool(data.get('next'))

    def list_new_releases(self, limit: int = 50, country: str = 'US') -> List[CatalogAlbum]:
        data = self.call('/browse/new-releases', params={'country': country, 'limit': limit})
        items = (data.get('albums') or {}).get('items') or []
        return [CatalogAlbum.from_spotify(a) for a in items if a]

    def search_artists(self, query: str, limit: int = 20) -> List[CatalogArtist]:
        """Artists matching a free-text query, e.g. a genre name"""
        data = self.call('/search', params={'q': query, 'type': 'artist', 'limit': limit})
        items = (data.get('artists') or {}).get('items') or []
        return [CatalogArtist.from_spotify(a) for a in items if a]
