"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML + environment)
- Database connections (SQLite, PostgreSQL via adapter)
- Error taxonomy
- Logging (Loguru) and console output (Rich)
"""

from .config import (
    Config,
    load_config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    get_media_root,
    ensure_directories,
)
from .database import (
    get_database_path,
    get_db_connection,
    init_database,
    transaction,
)
from .errors import (
    SlughouseError,
    ValidationError,
    PayloadTooLargeError,
    NotFoundError,
    ConflictError,
    UnauthorizedError,
    StorageError,
    TransactionError,
    PlaybackError,
    ClientError,
)

__all__ = [
    # Config
    "Config",
    "load_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "get_media_root",
    "ensure_directories",
    # Database
    "get_database_path",
    "get_db_connection",
    "init_database",
    "transaction",
    # Errors
    "SlughouseError",
    "ValidationError",
    "PayloadTooLargeError",
    "NotFoundError",
    "ConflictError",
    "UnauthorizedError",
    "StorageError",
    "TransactionError",
    "PlaybackError",
    "ClientError",
]
