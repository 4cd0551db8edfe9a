from functools import lru_cache

from fastapi import Depends, HTTPException, Request
from loguru import logger

from slughouse.core.config import Config, load_config
from slughouse.core.errors import UnauthorizedError
from slughouse.domain.library.media import MediaStorage
from slughouse.domain.library.store import LibraryStore, create_store

from .auth import AuthProvider, get_auth_provider


@lru_cache
def get_config() -> Config:
    """FastAPI dependency for configuration (loaded once per process)."""
    return load_config()


@lru_cache
def get_store() -> LibraryStore:
    """FastAPI dependency for the library store (one per process)."""
    return create_store(get_config())


@lru_cache
def get_media_storage() -> MediaStorage:
    """FastAPI dependency for uploaded media storage."""
    return MediaStorage.from_config(get_config())


@lru_cache
def get_auth() -> AuthProvider:
    """FastAPI dependency for the admin gate."""
    return get_auth_provider(get_config())


def require_admin(request: Request, auth: AuthProvider = Depends(get_auth)) -> None:
    """Dependency for admin-mutating routes."""
    try:
        auth.authorize(request.headers)
    except UnauthorizedError as e:
        logger.warning(f"Rejected admin request: {request.method} {request.url.path}")
        raise HTTPException(401, str(e))
