"""Admin authorization for mutating routes.

The gate is a shared secret in the x-admin-token header. It keeps casual
visitors out of the admin UI and is not a user-account system.
"""

import hmac
from typing import Mapping, Protocol

from slughouse.core.config import Config
from slughouse.core.errors import UnauthorizedError

ADMIN_TOKEN_HEADER = "x-admin-token"


class AuthProvider(Protocol):
    def authorize(self, headers: Mapping[str, str]) -> None:
        """Raise UnauthorizedError if the request may not use admin routes."""
        ...


class NoAuth:
    """Accepts every request (no admin token configured)."""

    def authorize(self, headers: Mapping[str, str]) -> None:
        return None


class StaticTokenAuth:
    """Compares x-admin-token against a configured secret in constant time."""

    def __init__(self, token: str) -> None:
        if not token:
            raise ValueError("StaticTokenAuth requires a non-empty token")
        self._token = token.encode("utf-8")

    def authorize(self, headers: Mapping[str, str]) -> None:
        supplied = headers.get(ADMIN_TOKEN_HEADER) or ""
        if not hmac.compare_digest(supplied.encode("utf-8"), self._token):
            raise UnauthorizedError()


def get_auth_provider(config: Config) -> AuthProvider:
    """NoAuth when admin_token is empty, StaticTokenAuth otherwise."""
    if config.server.admin_token:
        return StaticTokenAuth(config.server.admin_token)
    return NoAuth()
