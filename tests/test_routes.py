from datetime import datetime

import pytest

import db_utils
from errors import ConfigurationError, UpstreamError
from tests.support.stubs import FakeCatalogClient, FakeStore, make_album


def _post(client, path, body=None):
    return client.post(path, json=body if body is not None else {})


# ---------------------------------------------------------------------------
# Sync endpoints
# ---------------------------------------------------------------------------

@pytest.mark.unit
def test_sync_popular_albums(client, fake_store):
    response = _post(client, "/sync-popular-albums")

    assert response.status_code == 200
    assert response.get_json() == {"message": "Popular albums synced successfully", "count": 3}
    assert sorted(fake_store.albums) == ["new0", "new1", "new2"]


@pytest.mark.unit
def test_sync_artist_discography(app, client):
    app.extensions["spotify_client"] = FakeCatalogClient(artist_album_ids=["a1", "a2"])

    response = _post(client, "/sync-artist-discography", {"artistId": "miles"})

    assert response.status_code == 200
    assert response.get_json() == {
        "message": "Discography for artist miles synced successfully.",
        "totalAlbumsProcessed": 2,
    }


@pytest.mark.unit
def test_sync_artist_discography_without_artist_id(client):
    response = _post(client, "/sync-artist-discography")

    assert response.status_code == 500
    assert response.get_json() == {"error": "Missing artistId in request body", "details": None}


@pytest.mark.unit
def test_sync_artist_discography_with_non_json_body(client):
    response = client.post("/sync-artist-discography", data="not json", content_type="text/plain")

    assert response.status_code == 500
    assert response.get_json()["error"] == "Missing artistId in request body"


@pytest.mark.unit
def test_migrate_album_tracks(app, client, monkeypatch):
    app.extensions["record_store"] = FakeStore(album_ids_missing_tracks=["m0", "m1"])
    monkeypatch.setattr("catalog_sync.time.sleep", lambda seconds: None)

    response = _post(client, "/migrate-album-tracks")

    assert response.status_code == 200
    assert response.get_json() == {
        "message": "Album track data migration completed successfully",
        "totalAlbumsPopulated": 2,
    }


@pytest.mark.unit
def test_migrate_artist_spotify_urls(app, client, monkeypatch):
    app.extensions["record_store"] = FakeStore(artist_ids=["x", "y", "z"])
    monkeypatch.setattr("catalog_sync.time.sleep", lambda seconds: None)

    response = _post(client, "/migrate-artist-spotify-urls")

    assert response.status_code == 200
    assert response.get_json() == {
        "message": "Artist Spotify URLs migration completed successfully",
        "totalArtistsProcessed": 3,
    }


@pytest.mark.unit
def test_refresh_album_popularity(app, client, monkeypatch):
    app.extensions["record_store"] = FakeStore(stale_album_ids=["s1", "s2"])
    monkeypatch.setattr("catalog_sync.time.sleep", lambda seconds: None)

    response = _post(client, "/refresh-album-popularity")

    assert response.status_code == 200
    assert response.get_json() == {"message": "Album popularity refreshed successfully", "count": 2}


@pytest.mark.unit
def test_sync_album_returns_stored_row(client):
    album = {
        "id": "alb1", "name": "Kind of Blue", "artist": "Miles Davis", "artistId": "miles",
        "coverUrl": "http://img/kob.jpg", "releaseDate": "1959-08-17", "type": "album",
    }

    response = _post(client, "/sync-album", {"album": album})

    body = response.get_json()
    assert response.status_code == 200
    assert body["message"] == "Album synced successfully"
    assert body["data"]["id"] == "alb1"
    assert body["data"]["artist_id"] == "miles"


@pytest.mark.unit
def test_sync_album_missing_fields(client):
    response = _post(client, "/sync-album", {"album": {"id": "alb1", "name": "Kind of Blue"}})

    assert response.status_code == 500
    assert response.get_json()["error"] == (
        "Missing required fields: artist, artistId, coverUrl, releaseDate, type"
    )


@pytest.mark.unit
def test_sync_artist(client):
    response = _post(client, "/sync-artist", {"artist": {"id": "miles", "name": "Miles Davis"}})

    assert response.status_code == 200
    assert response.get_json()["data"]["name"] == "Miles Davis"


@pytest.mark.unit
def test_sync_spotify_catalog(app, client, monkeypatch):
    app.extensions["spotify_client"] = FakeCatalogClient(
        new_releases=[make_album("new0", with_tracks=False)],
        search_artist_ids=["x"],
        artist_albums={"x": ["x1", "x2"]},
    )
    app.extensions["record_store"] = FakeStore(stale_album_ids=["old1"])
    monkeypatch.setattr("catalog_sync.time.sleep", lambda seconds: None)

    response = _post(client, "/sync-spotify-catalog")

    assert response.status_code == 200
    assert response.get_json() == {
        "message": "Spotify catalog sync completed successfully",
        "newReleasesProcessed": 1,
        "artistsDiscovered": 1,
        "newAlbumsFromArtistsProcessed": 2,
        "existingAlbumsPopularityRefreshed": 1,
    }


@pytest.mark.unit
def test_sync_album_rejects_unknown_type(client):
    album = {
        "id": "alb1", "name": "Kind of Blue", "artist": "Miles Davis", "artistId": "miles",
        "coverUrl": "http://img/kob.jpg", "releaseDate": "1959-08-17", "type": "ep",
    }

    response = _post(client, "/sync-album", {"album": album})

    assert response.status_code == 500
    assert response.get_json()["error"].startswith("Invalid album type: ep")


# ---------------------------------------------------------------------------
# Error shape
# ---------------------------------------------------------------------------

@pytest.mark.unit
def test_upstream_error_details_are_returned(app, client):
    class FailingClient(FakeCatalogClient):
        def list_new_releases(self, limit=50, country="US"):
            raise UpstreamError("Spotify API error 503 for /browse/new-releases",
                                details={"error": {"status": 503}}, status_code=503)

    app.extensions["spotify_client"] = FailingClient()

    response = _post(client, "/sync-popular-albums")

    assert response.status_code == 500
    assert response.get_json() == {
        "error": "Spotify API error 503 for /browse/new-releases",
        "details": {"error": {"status": 503}},
    }


@pytest.mark.unit
def test_store_failure_returns_error(app, client):
    app.extensions["record_store"] = FakeStore(fail_upserts=True)

    response = _post(client, "/sync-popular-albums")

    assert response.status_code == 500
    assert response.get_json()["error"].startswith("Failed to upsert albums")


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

@pytest.mark.unit
@pytest.mark.parametrize("path", ["/sync-popular-albums", "/migrate-album-tracks", "/sync-artist",
                                  "/sync-spotify-catalog"])
def test_preflight_allows_any_origin(client, path):
    response = client.options(path, headers={
        "Origin": "https://example.com",
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "content-type, apikey",
    })

    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    allowed = response.headers["Access-Control-Allow-Methods"]
    assert "POST" in allowed
    assert "GET" not in allowed


@pytest.mark.unit
def test_error_responses_carry_cors_headers(client):
    response = client.post("/sync-artist-discography", json={}, headers={"Origin": "https://example.com"})

    assert response.status_code == 500
    assert response.headers["Access-Control-Allow-Origin"] == "*"


# ---------------------------------------------------------------------------
# Health and app factory
# ---------------------------------------------------------------------------

@pytest.mark.unit
def test_health_reports_database(client, monkeypatch):
    monkeypatch.setattr(db_utils, "test_connection", lambda: {
        "current_database": "postgres",
        "version": "PostgreSQL 16.2",
        "current_timestamp": datetime(2024, 6, 15, 12, 0, 0),
    })

    response = client.get("/health")

    body = response.get_json()
    assert response.status_code == 200
    assert body["status"] == "healthy"
    assert body["db_version"] == "PostgreSQL 16.2"


@pytest.mark.unit
def test_health_unreachable_database(client, monkeypatch):
    monkeypatch.setattr(db_utils, "test_connection", lambda: None)

    response = client.get("/health")

    assert response.status_code == 503
    assert response.get_json()["status"] == "unhealthy"


@pytest.mark.unit
def test_create_app_requires_secrets(monkeypatch):
    from app import create_app

    monkeypatch.delenv("SPOTIFY_CLIENT_SECRET")
    monkeypatch.delenv("DATABASE_SERVICE_KEY")

    with pytest.raises(ConfigurationError) as excinfo:
        create_app()

    assert excinfo.value.missing == ["SPOTIFY_CLIENT_SECRET", "DATABASE_SERVICE_KEY"]
