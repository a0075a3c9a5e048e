"""
Catalog records as returned by the Spotify Web API.

Only the fields the record store keeps are parsed. Every record is keyed by
its Spotify id; there is no local identity.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

ALBUM_TYPES = ('album', 'single', 'compilation')


@dataclass
class CatalogTrack:
    """One track of an album"""
    id: str
    name: str
    duration_seconds: int
    track_number: int

    @classmethod
    def from_spotify(cls, data: Dict[str, Any]) -> 'CatalogTrack':
        return cls(
            id=data['id'],
            name=data.get('name') or '',
            duration_seconds=int(data.get('duration_ms') or 0) // 1000,
            track_number=int(data.get('track_number') or 0),
        )


@dataclass
class CatalogAlbum:
    """Album (or single / compilation) with its primary artist"""
    id: str
    name: str
    primary_artist_name: Optional[str] = None
    primary_artist_id: Optional[str] = None
    cover_url: Optional[str] = None
    release_date: Optional[str] = None
    album_type: Optional[str] = None
    popularity: Optional[int] = None
    external_url: Optional[str] = None
    # None means "not fetched", which is different from an album with no tracks
    tracks: Optional[List[CatalogTrack]] = None

    @classmethod
    def from_spotify(cls, data: Dict[str, Any]) -> 'CatalogAlbum':
        """
        Build an album from a Spotify album object

        Handles both the simplified album objects (listings, new releases),
        which carry no tracks, and the full album object where tracks arrive
        as a paging object ``{"items": [...]}``.
        """
        artists = data.get('artists') or []
        images = data.get('images') or []
        primary = artists[0] if artists else {}

        raw_tracks = data.get('tracks')
        if isinstance(raw_tracks, dict):
            raw_tracks = raw_tracks.get('items')
        tracks = None
        if raw_tracks is not None:
            tracks = [CatalogTrack.from_spotify(t) for t in raw_tracks if t]

        album_type = data.get('album_type')
        if album_type not in ALBUM_TYPES:
            album_type = None

        return cls(
            id=data['id'],
            name=data.get('name') or '',
            primary_artist_name=primary.get('name'),
            primary_artist_id=primary.get('id'),
            cover_url=images[0].get('url') if images else None,
            release_date=data.get('release_date'),
            album_type=album_type,
            popularity=data.get('popularity'),
            external_url=(data.get('external_urls') or {}).get('spotify'),
            tracks=tracks,
        )


@dataclass
class CatalogArtist:
    id: str
    name: str
    image_url: Optional[str] = None
    external_url: Optional[str] = None
    genres: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Genres behave as a set but keep first-seen order for stable rows
        self.genres = tuple(dict.fromkeys(self.genres or ()))

    @classmethod
    def from_spotify(cls, data: Dict[str, Any]) -> 'CatalogArtist':
        images = data.get('images') or []
        return cls(
            id=data['id'],
            name=data.get('name') or '',
            image_url=images[0].get('url') if images else None,
            external_url=(data.get('external_urls') or {}).get('spotify'),
            genres=tuple(data.get('genres') or ()),
        )
