"""
Database adapter that supports both SQLite and PostgreSQL.

Uses the configured database URL to determine which backend to use:
- If it starts with "postgres://" or "postgresql://", use PostgreSQL
- Otherwise, use SQLite (default behavior)
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

from loguru import logger


class CursorProtocol(Protocol):
    """Protocol for database cursor."""

    def execute(self, query: str, params: tuple = ()) -> "CursorProtocol": ...
    def fetchone(self) -> Optional[dict[str, Any]]: ...
    def fetchall(self) -> list[dict[str, Any]]: ...
    @property
    def rowcount(self) -> int: ...
    def close(self) -> None: ...


class ConnectionProtocol(Protocol):
    """Protocol for database connection."""

    def execute(self, query: str, params: tuple = ()) -> CursorProtocol: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
    def close(self) -> None: ...


class IntegrityViolation(Exception):
    """Unique/primary key violation raised by the PostgreSQL wrapper."""

    pass


def is_postgres(url: Optional[str]) -> bool:
    """Check if a database URL points at PostgreSQL."""
    return url is not None and url.startswith(("postgres://", "postgresql://"))


def _convert_query_placeholders(query: str) -> str:
    """Convert SQLite ? placeholders to PostgreSQL %s placeholders."""
    # Simple conversion - doesn't handle ? inside strings
    return query.replace("?", "%s")


class PostgresCursor:
    """Wrapper around psycopg2 cursor to provide dict-like row access."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor
        self._columns: Optional[list[str]] = None

    def execute(self, query: str, params: tuple = ()) -> "PostgresCursor":
        import psycopg2

        pg_query = _convert_query_placeholders(query)
        try:
            self._cursor.execute(pg_query, params)
        except psycopg2.IntegrityError as e:
            raise IntegrityViolation(str(e)) from e
        if self._cursor.description:
            self._columns = [desc[0] for desc in self._cursor.description]
        return self

    def _row_to_dict(self, row: Optional[tuple]) -> Optional[dict[str, Any]]:
        if row is None or self._columns is None:
            return None
        return dict(zip(self._columns, row))

    def fetchone(self) -> Optional[dict[str, Any]]:
        row = self._cursor.fetchone()
        return self._row_to_dict(row)

    def fetchall(self) -> list[dict[str, Any]]:
        rows = self._cursor.fetchall()
        if not self._columns:
            return []
        return [dict(zip(self._columns, row)) for row in rows]

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    def close(self) -> None:
        self._cursor.close()


class PostgresConnection:
    """Wrapper around psycopg2 connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    def execute(self, query: str, params: tuple = ()) -> PostgresCursor:
        cursor = PostgresCursor(self._conn.cursor())
        cursor.execute(query, params)
        return cursor

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


@contextmanager
def connect(
    database_url: Optional[str] = None, sqlite_path: Optional[Path] = None
) -> Iterator[ConnectionProtocol]:
    """
    Get a database connection for the library store.

    Uses database_url if it is a PostgreSQL URL, otherwise SQLite at
    sqlite_path (default: the data directory database).
    """
    if is_postgres(database_url):
        import psycopg2

        logger.debug("Connecting to PostgreSQL")

        conn = psycopg2.connect(database_url)
        wrapped = PostgresConnection(conn)
        try:
            yield wrapped
        finally:
            wrapped.close()
    else:
        from .database import get_db_connection

        with get_db_connection(sqlite_path) as conn:
            yield conn
