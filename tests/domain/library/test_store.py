"""Tests for the LibraryStore backends (SQLite and in-memory)."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from slughouse.core.database import get_db_connection, get_schema_version
from slughouse.core.errors import ConflictError, NotFoundError, TransactionError, ValidationError
from slughouse.domain.library.models import TrackUpdate
from slughouse.domain.library.store import MEMORY_URL, SqlLibraryStore, create_store
from slughouse.domain.library.memory import InMemoryLibraryStore
from slughouse.core.config import Config


def ids(store) -> list[str]:
    return [track.id for track in store.list_tracks()]


class TestInsert:
    """Test track creation and default ranks."""

    def test_empty_library_lists_nothing(self, store):
        assert store.list_tracks() == []

    def test_first_track_gets_rank_zero_then_appends(self, store, new_track):
        first = store.insert_track(new_track("a"))
        second = store.insert_track(new_track("b"))

        assert first.sort_order == 0
        assert second.sort_order == 1
        assert ids(store) == ["a", "b"]

    def test_rank_follows_current_maximum(self, store, new_track):
        store.insert_track(new_track("a", sort_order=7))
        track = store.insert_track(new_track("b"))
        assert track.sort_order == 8

    def test_explicit_zero_rank_is_kept(self, store, new_track):
        store.insert_track(new_track("a"))
        store.insert_track(new_track("b"))
        track = store.insert_track(new_track("c", sort_order=0))
        assert track.sort_order == 0

    def test_added_at_defaults_to_clock(self, store, clock, new_track):
        clock.now = 42_000
        track = store.insert_track(new_track("a"))
        assert track.added_at == 42_000

    def test_fields_round_trip(self, store, new_track):
        store.insert_track(
            new_track(
                "a",
                storage_path="a-1-song.mp3",
                cover_art="https://img.example/a.png",
                duration=187.5,
                added_at=1234,
            )
        )
        track = store.get_track("a")

        assert track.src == "/media/a.mp3"
        assert track.storage_path == "a-1-song.mp3"
        assert track.cover_art == "https://img.example/a.png"
        assert track.duration == 187.5
        assert track.added_at == 1234
        assert track.metrics.play_count == 0

    def test_duplicate_id_conflicts(self, store, new_track):
        store.insert_track(new_track("a"))
        with pytest.raises(ConflictError):
            store.insert_track(new_track("a", title="Other"))
        assert store.get_track("a").title == "Title a"


class TestRead:
    """Test ordering of the read path."""

    def test_ties_broken_by_added_at(self, store, new_track):
        store.insert_track(new_track("late", sort_order=1, added_at=300))
        store.insert_track(new_track("early", sort_order=1, added_at=100))
        store.insert_track(new_track("first", sort_order=0, added_at=900))

        assert ids(store) == ["first", "early", "late"]

    def test_missing_track_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.get_track("nope")

    def test_list_includes_metrics(self, store, new_track):
        store.insert_track(new_track("a"))
        store.record_play("a")
        store.record_vibe("a", 4)

        [track] = store.list_tracks()
        assert track.metrics.play_count == 1
        assert track.metrics.vibe_average == 4.0


class TestUpdate:
    """Test partial updates."""

    def test_updates_only_given_fields(self, store, new_track):
        store.insert_track(new_track("a"))
        track = store.update_track("a", TrackUpdate(title="New title"))

        assert track.title == "New title"
        assert track.artist == "Slug"

    def test_sort_order_update_moves_track(self, store, new_track):
        for track_id in ("a", "b", "c"):
            store.insert_track(new_track(track_id))
        store.update_track("c", TrackUpdate(sort_order=-1))
        assert ids(store) == ["c", "a", "b"]

    def test_empty_update_rejected(self, store, new_track):
        store.insert_track(new_track("a"))
        with pytest.raises(ValidationError, match="No updates provided"):
            store.update_track("a", TrackUpdate())

    def test_missing_track_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.update_track("nope", TrackUpdate(title="x"))


class TestDelete:
    """Test deletion."""

    def test_returns_deleted_track_and_drops_metrics(self, store, new_track):
        store.insert_track(new_track("a", storage_path="a.mp3"))
        store.record_play("a")

        deleted = store.delete_track("a")

        assert deleted.storage_path == "a.mp3"
        assert store.list_tracks() == []
        assert store.get_metrics("a").play_count == 0

    def test_missing_track_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.delete_track("nope")


class TestReorder:
    """Test full-list reorder."""

    def test_reorder_sets_rank_to_index(self, store, new_track):
        for track_id in ("a", "b", "c"):
            store.insert_track(new_track(track_id))

        store.reorder(["c", "a", "b"])

        assert ids(store) == ["c", "a", "b"]
        assert [t.sort_order for t in store.list_tracks()] == [0, 1, 2]

    def test_unknown_ids_update_nothing(self, store, new_track):
        for track_id in ("a", "b"):
            store.insert_track(new_track(track_id))

        store.reorder(["ghost", "b", "a"])

        assert ids(store) == ["b", "a"]
        assert store.get_track("b").sort_order == 1
        assert store.get_track("a").sort_order == 2

    @pytest.mark.parametrize("order", [[], None, "a,b", {"a": 0}, ["a", 3], ["a", "a"]])
    def test_invalid_order_rejected(self, store, new_track, order):
        store.insert_track(new_track("a"))
        with pytest.raises(ValidationError):
            store.reorder(order)
        assert store.get_track("a").sort_order == 0


class TestMetrics:
    """Test play and vibe aggregation."""

    def test_three_plays(self, store, clock, new_track):
        store.insert_track(new_track("a", added_at=1))
        for now in (1000, 2000, 3000):
            clock.now = now
            metrics = store.record_play("a")

        assert metrics.play_count == 3
        assert metrics.last_played_at == 3000
        assert store.get_track("a").metrics.last_played_at == 3000

    def test_play_for_unknown_id_creates_metrics(self, store):
        metrics = store.record_play("orphan")
        assert metrics.play_count == 1
        assert store.get_metrics("orphan").play_count == 1

    @pytest.mark.parametrize(
        "score,expected",
        [(99, 5), ("abc", 1), (None, 1), (0, 1), (-4, 1), (3, 3), ("4", 4)],
    )
    def test_vibe_clamped(self, store, score, expected):
        metrics = store.record_vibe("a", score)
        assert metrics.vibe_total == expected
        assert metrics.vibe_count == 1

    def test_vibe_average(self, store):
        store.record_vibe("a", 4)
        metrics = store.record_vibe("a", 5)

        assert metrics.vibe_total == 9
        assert metrics.vibe_count == 2
        assert metrics.vibe_average == 4.5

    def test_vibe_keeps_play_count(self, store, clock):
        clock.now = 500
        store.record_play("a")
        metrics = store.record_vibe("a", 2)

        assert metrics.play_count == 1
        assert metrics.last_played_at == 500

    def test_metrics_for_unknown_id_are_zero(self, store):
        metrics = store.get_metrics("nothing")
        assert metrics.play_count == 0
        assert metrics.vibe_average == 0.0
        assert metrics.last_played_at is None

    def test_concurrent_events_are_all_counted(self, store):
        store.list_tracks()  # create the schema before the workers race

        with ThreadPoolExecutor(max_workers=8) as pool:
            plays = [pool.submit(store.record_play, "x") for _ in range(200)]
            vibes = [pool.submit(store.record_vibe, "x", 99) for _ in range(100)]
            for future in plays + vibes:
                future.result()

        metrics = store.get_metrics("x")
        assert metrics.play_count == 200
        assert metrics.vibe_count == 100
        assert metrics.vibe_total == 500


class TestSqlStore:
    """SQLite-specific behaviour."""

    def test_failed_reorder_leaves_previous_order(self, tmp_path, new_track):
        db_path = tmp_path / "library.db"
        store = SqlLibraryStore(sqlite_path=db_path)
        for track_id in ("a", "b", "c"):
            store.insert_track(new_track(track_id))

        with get_db_connection(db_path) as conn:
            conn.execute(
                """
                CREATE TRIGGER fail_on_b BEFORE UPDATE OF sort_order ON tracks
                WHEN NEW.id = 'b'
                BEGIN
                    SELECT RAISE(ABORT, 'injected failure');
                END
                """
            )

        with pytest.raises(TransactionError):
            store.reorder(["c", "b", "a"])

        assert ids(store) == ["a", "b", "c"]
        assert store.get_track("c").sort_order == 2

    def test_schema_initialized_once(self, tmp_path):
        db_path = tmp_path / "library.db"
        SqlLibraryStore(sqlite_path=db_path).initialize()
        SqlLibraryStore(sqlite_path=db_path).initialize()

        with get_db_connection(db_path) as conn:
            assert get_schema_version(conn) == 1
            count = conn.execute("SELECT COUNT(*) AS n FROM schema_version").fetchone()["n"]
        assert count == 1

    def test_data_survives_new_store_instance(self, tmp_path, new_track):
        db_path = tmp_path / "library.db"
        SqlLibraryStore(sqlite_path=db_path).insert_track(new_track("a"))
        assert ids(SqlLibraryStore(sqlite_path=db_path)) == ["a"]


class TestCreateStore:
    """Test backend selection."""

    def test_memory_url_gives_in_memory_store(self):
        config = Config()
        config.server.database_url = MEMORY_URL
        assert isinstance(create_store(config), InMemoryLibraryStore)

    def test_default_is_sqlite_in_data_dir(self, tmp_path):
        store = create_store(Config())
        assert isinstance(store, SqlLibraryStore)
        assert store.database_url is None
        assert store.sqlite_path == tmp_path / "data" / "slughouse" / "slughouse.db"

    def test_postgres_url_selects_postgres(self):
        config = Config()
        config.server.database_url = "postgresql://user:pw@localhost/slughouse"
        store = create_store(config)
        assert isinstance(store, SqlLibraryStore)
        assert store.database_url == "postgresql://user:pw@localhost/slughouse"
