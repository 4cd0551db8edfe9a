"""Shared fixtures for domain tests."""

import pytest

from slughouse.domain.library.memory import InMemoryLibraryStore
from slughouse.domain.library.models import NewTrack, Track
from slughouse.domain.library.store import SqlLibraryStore


class FakeClock:
    """Settable epoch-ms clock for deterministic timestamps."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Keep config, data and logs out of the real home directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path, clock):
    """Every LibraryStore backend, behind the same interface."""
    if request.param == "sqlite":
        return SqlLibraryStore(sqlite_path=tmp_path / "library.db", clock=clock)
    return InMemoryLibraryStore(clock=clock)


def _new_track(track_id: str, **overrides) -> NewTrack:
    fields = {
        "id": track_id,
        "title": f"Title {track_id}",
        "artist": "Slug",
        "src": f"/media/{track_id}.mp3",
    }
    fields.update(overrides)
    return NewTrack(**fields)


def _make_track(track_id: str, sort_order: int = 0, added_at: int = 0, **overrides) -> Track:
    fields = {
        "id": track_id,
        "title": f"Title {track_id}",
        "artist": "Slug",
        "src": f"http://localhost:4000/media/{track_id}.mp3",
        "added_at": added_at,
        "sort_order": sort_order,
    }
    fields.update(overrides)
    return Track(**fields)


@pytest.fixture
def new_track():
    """Factory for NewTrack payloads with sensible defaults."""
    return _new_track


@pytest.fixture
def make_track():
    """Factory for Track values (player and client tests)."""
    return _make_track
