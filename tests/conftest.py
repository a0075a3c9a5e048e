import os
import sys

import pytest

# Backend modules use flat imports ('import catalog_db'), scripts import 'script_base'
_TESTS_DIR = os.path.dirname(__file__)
_BACKEND_DIR = os.path.abspath(os.path.join(_TESTS_DIR, os.pardir, "backend"))
for _path in (_BACKEND_DIR, os.path.join(_BACKEND_DIR, "scripts")):
    if _path not in sys.path:
        sys.path.insert(0, _path)

from tests.support import stubs as test_stubs


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Known secrets for every test, nothing inherited from the developer's shell."""
    for name in ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET", "VITE_SPOTIFY_CLIENT_ID",
                 "VITE_SPOTIFY_CLIENT_SECRET", "DATABASE_URL", "DATABASE_SERVICE_KEY", "DB_USE_POOLING"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("SPOTIFY_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("DATABASE_URL", "postgresql://postgres@localhost:5432/postgres")
    monkeypatch.setenv("DATABASE_SERVICE_KEY", "test-service-key")
    yield


@pytest.fixture
def settings():
    from config import load_settings
    return load_settings()


@pytest.fixture
def fake_client():
    return test_stubs.FakeCatalogClient(
        new_releases=[test_stubs.make_album(f"new{i}", with_tracks=False) for i in range(3)]
    )


@pytest.fixture
def fake_store():
    return test_stubs.FakeStore()


@pytest.fixture
def app(settings, fake_client, fake_store):
    from app import create_app

    application = create_app(settings, spotify_client=fake_client, record_store=fake_store)
    application.config["TESTING"] = True
    yield application


@pytest.fixture
def client(app):
    return app.test_client()
