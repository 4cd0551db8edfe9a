"""Library Store: persistence of tracks and their metrics.

One interface, swappable backends:
- SqlLibraryStore: SQLite by default, PostgreSQL when the database URL says so
- InMemoryLibraryStore (memory.py): embedded store for tests and demos

All writes are transactional. Metrics use INSERT ... ON CONFLICT DO UPDATE
with increments so concurrent play/vibe events for one track never lose
an update; a reorder rewrites every submitted rank in one transaction.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Protocol, Sequence

from loguru import logger

from slughouse.core import db_adapter
from slughouse.core.config import Config
from slughouse.core.database import get_database_path, init_database, transaction
from slughouse.core.errors import (
    ConflictError,
    NotFoundError,
    SlughouseError,
    TransactionError,
    ValidationError,
)
from slughouse.domain.metrics import normalize_vibe_score
from slughouse.domain.ordering import next_sort_order, rank_assignments, validate_order

from .models import NewTrack, Track, TrackMetrics, TrackUpdate, now_ms

MEMORY_URL = "memory://"

TRACK_SELECT = """
    SELECT t.id, t.title, t.artist, t.audio_url, t.audio_path, t.cover_art,
           t.duration, t.added_at, t.sort_order,
           m.play_count, m.vibe_total, m.vibe_count, m.last_played_at
    FROM tracks t
    LEFT JOIN track_metrics m ON m.track_id = t.id
"""

METRICS_SELECT = """
    SELECT play_count, vibe_total, vibe_count, last_played_at
    FROM track_metrics
    WHERE track_id = ?
"""

# Integer-valued on the wire; both backends accept the same upsert syntax.
PLAY_UPSERT = """
    INSERT INTO track_metrics (track_id, play_count, last_played_at)
    VALUES (?, 1, ?)
    ON CONFLICT (track_id) DO UPDATE SET
        play_count = track_metrics.play_count + 1,
        last_played_at = excluded.last_played_at
"""

VIBE_UPSERT = """
    INSERT INTO track_metrics (track_id, vibe_total, vibe_count)
    VALUES (?, ?, 1)
    ON CONFLICT (track_id) DO UPDATE SET
        vibe_total = track_metrics.vibe_total + excluded.vibe_total,
        vibe_count = track_metrics.vibe_count + 1
"""

# PATCH field -> column
UPDATE_COLUMNS = {
    "title": "title",
    "artist": "artist",
    "cover_art": "cover_art",
    "sort_order": "sort_order",
}


class LibraryStore(Protocol):
    """Persistence interface for tracks and metrics."""

    def list_tracks(self) -> list[Track]: ...
    def get_track(self, track_id: str) -> Track: ...
    def insert_track(self, new_track: NewTrack) -> Track: ...
    def update_track(self, track_id: str, changes: TrackUpdate) -> Track: ...
    def delete_track(self, track_id: str) -> Track: ...
    def reorder(self, order: Sequence[str]) -> None: ...
    def record_play(self, track_id: str) -> TrackMetrics: ...
    def record_vibe(self, track_id: str, score: Any) -> TrackMetrics: ...
    def get_metrics(self, track_id: str) -> TrackMetrics: ...


class SqlLibraryStore:
    """LibraryStore over SQLite or PostgreSQL (via db_adapter)."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        sqlite_path: Optional[Path] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.database_url = database_url
        self.sqlite_path = sqlite_path
        self._clock = clock
        self._initialized = False

    @classmethod
    def from_config(cls, config: Config) -> "SqlLibraryStore":
        database_url = config.server.database_url
        if db_adapter.is_postgres(database_url):
            return cls(database_url=database_url)
        return cls(sqlite_path=get_database_path())

    @contextmanager
    def _connection(self) -> Iterator[db_adapter.ConnectionProtocol]:
        with db_adapter.connect(self.database_url, self.sqlite_path) as conn:
            if not self._initialized:
                init_database(conn)
                self._initialized = True
            yield conn

    def initialize(self) -> None:
        """Create the schema now instead of on first use."""
        with self._connection():
            pass

    # Reads

    def list_tracks(self) -> list[Track]:
        with self._connection() as conn:
            rows = conn.execute(
                TRACK_SELECT + " ORDER BY t.sort_order ASC, t.added_at ASC"
            ).fetchall()
        return [Track.from_row(row) for row in rows]

    def get_track(self, track_id: str) -> Track:
        with self._connection() as conn:
            return self._fetch_track(conn, track_id)

    def get_metrics(self, track_id: str) -> TrackMetrics:
        with self._connection() as conn:
            row = conn.execute(METRICS_SELECT, (track_id,)).fetchone()
        return TrackMetrics.from_row(row)

    def _fetch_track(self, conn, track_id: str) -> Track:
        row = conn.execute(TRACK_SELECT + " WHERE t.id = ?", (track_id,)).fetchone()
        if row is None:
            raise NotFoundError(track_id)
        return Track.from_row(row)

    # Writes

    def insert_track(self, new_track: NewTrack) -> Track:
        added_at = new_track.added_at if new_track.added_at is not None else self._clock()

        try:
            with self._connection() as conn:
                with transaction(conn):
                    exists = conn.execute(
                        "SELECT id FROM tracks WHERE id = ?", (new_track.id,)
                    ).fetchone()
                    if exists:
                        raise ConflictError(new_track.id)

                    sort_order = new_track.sort_order
                    if sort_order is None:
                        row = conn.execute(
                            "SELECT MAX(sort_order) AS max_order FROM tracks"
                        ).fetchone()
                        current_max = row["max_order"] if row else None
                        sort_order = next_sort_order(
                            [] if current_max is None else [int(current_max)]
                        )

                    conn.execute(
                        """
                        INSERT INTO tracks (id, title, artist, audio_url, audio_path,
                                            cover_art, duration, added_at, sort_order)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            new_track.id,
                            new_track.title,
                            new_track.artist,
                            new_track.src,
                            new_track.storage_path,
                            new_track.cover_art,
                            float(new_track.duration or 0),
                            added_at,
                            sort_order,
                        ),
                    )
                track = self._fetch_track(conn, new_track.id)
        except (sqlite3.IntegrityError, db_adapter.IntegrityViolation) as e:
            # Lost a race with a concurrent insert of the same id
            raise ConflictError(new_track.id) from e

        logger.info(f"Inserted track {track.id} at sort_order={track.sort_order}")
        return track

    def update_track(self, track_id: str, changes: TrackUpdate) -> Track:
        if changes.is_empty():
            raise ValidationError("No updates provided")

        assignments = []
        values: list[Any] = []
        for field_name, column in UPDATE_COLUMNS.items():
            value = getattr(changes, field_name)
            if value is not None:
                assignments.append(f"{column} = ?")
                values.append(value)
        values.append(track_id)

        with self._connection() as conn:
            with transaction(conn):
                cursor = conn.execute(
                    f"UPDATE tracks SET {', '.join(assignments)} WHERE id = ?",
                    tuple(values),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError(track_id)
            track = self._fetch_track(conn, track_id)

        logger.info(f"Updated track {track_id}: {', '.join(assignments)}")
        return track

    def delete_track(self, track_id: str) -> Track:
        """Remove a track and its metrics; returns the deleted row."""
        with self._connection() as conn:
            with transaction(conn):
                track = self._fetch_track(conn, track_id)
                conn.execute("DELETE FROM tracks WHERE id = ?", (track_id,))
                conn.execute("DELETE FROM track_metrics WHERE track_id = ?", (track_id,))

        logger.info(f"Deleted track {track_id}")
        return track

    def reorder(self, order: Sequence[str]) -> None:
        """Rewrite sort_order = index for every id, all-or-nothing.

        Ids that match no track update nothing. Concurrent reorders are
        last-write-wins at the transaction level.
        """
        ids = validate_order(order)

        try:
            with self._connection() as conn:
                with transaction(conn):
                    for rank, track_id in rank_assignments(ids):
                        conn.execute(
                            "UPDATE tracks SET sort_order = ? WHERE id = ?",
                            (rank, track_id),
                        )
        except SlughouseError:
            raise
        except Exception as e:
            logger.exception(f"Reorder of {len(ids)} tracks rolled back")
            raise TransactionError("Failed to reorder tracks") from e

        logger.info(f"Reordered {len(ids)} tracks")

    def record_play(self, track_id: str) -> TrackMetrics:
        played_at = self._clock()
        with self._connection() as conn:
            with transaction(conn):
                conn.execute(PLAY_UPSERT, (track_id, played_at))
                row = conn.execute(METRICS_SELECT, (track_id,)).fetchone()

        metrics = TrackMetrics.from_row(row)
        logger.debug(f"Recorded play for {track_id}: play_count={metrics.play_count}")
        return metrics

    def record_vibe(self, track_id: str, score: Any) -> TrackMetrics:
        normalized = normalize_vibe_score(score)
        with self._connection() as conn:
            with transaction(conn):
                conn.execute(VIBE_UPSERT, (track_id, normalized))
                row = conn.execute(METRICS_SELECT, (track_id,)).fetchone()

        metrics = TrackMetrics.from_row(row)
        logger.debug(
            f"Recorded vibe {normalized} for {track_id}: average={metrics.vibe_average}"
        )
        return metrics


def create_store(config: Config) -> LibraryStore:
    """Pick the backing store from the configured database URL."""
    if config.server.database_url == MEMORY_URL:
        from .memory import InMemoryLibraryStore

        logger.info("Using in-memory library store")
        return InMemoryLibraryStore()

    store = SqlLibraryStore.from_config(config)
    backend = "PostgreSQL" if db_adapter.is_postgres(store.database_url) else "SQLite"
    logger.info(f"Using {backend} library store")
    return store
