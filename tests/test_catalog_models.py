import pytest

from catalog_models import CatalogAlbum, CatalogArtist, CatalogTrack
from tests.support.stubs import spotify_album_json, spotify_artist_json


@pytest.mark.unit
def test_track_duration_is_floored_to_seconds():
    track = CatalogTrack.from_spotify({"id": "t", "name": "T", "duration_ms": 125000, "track_number": 3})
    assert track.duration_seconds == 125

    track = CatalogTrack.from_spotify({"id": "t", "name": "T", "duration_ms": 125999, "track_number": 3})
    assert track.duration_seconds == 125


@pytest.mark.unit
def test_simplified_album_has_no_tracks():
    album = CatalogAlbum.from_spotify(spotify_album_json("a1"))

    assert album.tracks is None
    assert album.primary_artist_id == "art1"
    assert album.cover_url == "http://img/a1.jpg"
    assert album.external_url == "https://open.spotify.com/album/a1"


@pytest.mark.unit
def test_album_tracks_accept_paging_object_or_list():
    paged = CatalogAlbum.from_spotify(spotify_album_json("a1", with_tracks=True))
    listed = CatalogAlbum.from_spotify(
        spotify_album_json("a1", tracks=[{"id": "x", "name": "X", "duration_ms": 1000, "track_number": 1}])
    )
    empty = CatalogAlbum.from_spotify(spotify_album_json("a1", tracks={"items": []}))

    assert [t.id for t in paged.tracks] == ["a1-t1", "a1-t2"]
    assert [t.id for t in listed.tracks] == ["x"]
    assert empty.tracks == []


@pytest.mark.unit
def test_album_without_artists_or_images():
    album = CatalogAlbum.from_spotify({"id": "bare", "name": "Bare", "album_type": "ep"})

    assert album.primary_artist_name is None
    assert album.cover_url is None
    assert album.album_type is None
    assert album.popularity is None


@pytest.mark.unit
def test_artist_genres_are_deduplicated():
    artist = CatalogArtist.from_spotify(spotify_artist_json(genres=["jazz", "bebop", "jazz"]))
    assert artist.genres == ("jazz", "bebop")


@pytest.mark.unit
def test_artist_missing_optional_fields():
    artist = CatalogArtist.from_spotify({"id": "a", "name": "A"})
    assert artist.image_url is None
    assert artist.external_url is None
    assert artist.genres == ()
