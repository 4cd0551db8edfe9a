"""Pytest configuration for backend tests.

Routes run against an in-memory store and a temporary media root via
FastAPI dependency overrides.
"""

import pytest
from fastapi.testclient import TestClient

from slughouse.domain.library.media import MediaStorage
from slughouse.domain.library.memory import InMemoryLibraryStore
from web.backend.auth import NoAuth, StaticTokenAuth
from web.backend.deps import get_auth, get_media_storage, get_store
from web.backend.main import app

ADMIN_TOKEN = "slug-secret"


class StepClock:
    """Clock that advances one second per call."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now


@pytest.fixture
def store():
    return InMemoryLibraryStore(clock=StepClock())


@pytest.fixture
def media(tmp_path):
    return MediaStorage(tmp_path / "media", max_upload_bytes=1024)


def _client(store, media, auth):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_media_storage] = lambda: media
    app.dependency_overrides[get_auth] = lambda: auth
    return TestClient(app)


@pytest.fixture
def client(store, media):
    """Client for a server with no admin token configured."""
    yield _client(store, media, NoAuth())
    app.dependency_overrides.clear()


@pytest.fixture
def guarded_client(store, media):
    """Client for a server that requires x-admin-token."""
    yield _client(store, media, StaticTokenAuth(ADMIN_TOKEN))
    app.dependency_overrides.clear()


@pytest.fixture
def admin_token():
    return ADMIN_TOKEN
