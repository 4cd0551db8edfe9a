"""
SQLite database operations for the Slughouse library store
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from loguru import logger

from .config import get_data_dir


# Database schema version for migrations
SCHEMA_VERSION = 1

# Shared between SQLite and PostgreSQL. No foreign key from track_metrics to
# tracks: play/vibe events for unknown ids are accepted and stored as-is.
SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS tracks (
        id VARCHAR(64) PRIMARY KEY,
        title VARCHAR(255) NOT NULL,
        artist VARCHAR(255) NOT NULL,
        audio_url TEXT NOT NULL,
        audio_path TEXT DEFAULT NULL,
        cover_art TEXT DEFAULT NULL,
        duration REAL DEFAULT 0,
        added_at BIGINT NOT NULL,
        sort_order INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tracks_order ON tracks (sort_order, added_at)",
    """
    CREATE TABLE IF NOT EXISTS track_metrics (
        track_id VARCHAR(64) PRIMARY KEY,
        play_count INTEGER NOT NULL DEFAULT 0,
        vibe_total INTEGER NOT NULL DEFAULT 0,
        vibe_count INTEGER NOT NULL DEFAULT 0,
        last_played_at BIGINT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY
    )
    """,
]


def get_database_path() -> Path:
    """Get the path to the SQLite database file."""
    return get_data_dir() / "slughouse.db"


@contextmanager
def get_db_connection(db_path: Optional[Path] = None) -> Iterator[sqlite3.Connection]:
    """Get a database connection with proper cleanup and concurrency support.

    The connection runs in autocommit mode; multi-statement writes go
    through transaction().
    """
    db_path = db_path or get_database_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # WAL mode enables concurrent reads during writes
    conn = sqlite3.connect(db_path, timeout=30.0, isolation_level=None)
    conn.row_factory = sqlite3.Row  # Enable dict-like access
    conn.execute("PRAGMA journal_mode=WAL")

    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn) -> Iterator:
    """Run a block in a single transaction: commit on success, rollback on error.

    SQLite takes the write lock up front (BEGIN IMMEDIATE) so concurrent
    writers queue on the busy timeout instead of failing mid-transaction.
    PostgreSQL connections open their transaction implicitly.
    """
    if isinstance(conn, sqlite3.Connection):
        conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        try:
            conn.rollback()
        except Exception:
            logger.exception("Rollback failed")
        raise
    else:
        conn.commit()


def get_schema_version(conn) -> int:
    """Return the stored schema version, 0 for a fresh database."""
    row = conn.execute("SELECT MAX(version) AS version FROM schema_version").fetchone()
    return row["version"] if row and row["version"] is not None else 0


def init_database(conn) -> None:
    """Create tables if missing and record the schema version."""
    with transaction(conn):
        for statement in SCHEMA_STATEMENTS:
            conn.execute(statement)

        current = get_schema_version(conn)
        if current < SCHEMA_VERSION:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            logger.info(f"Database schema initialized at version {SCHEMA_VERSION}")
