"""Slughouse exception taxonomy.

The web layer maps these onto HTTP status codes; the player client
raises PlaybackError and ClientError.
"""

from typing import Optional


class SlughouseError(Exception):
    """Base exception for Slughouse operations."""

    status_code = 500


class ValidationError(SlughouseError):
    """Raised when a request is missing fields or has malformed values."""

    status_code = 400


class PayloadTooLargeError(ValidationError):
    """Raised when an upload exceeds the configured size limit."""

    status_code = 413


class NotFoundError(SlughouseError):
    """Raised when a track id does not exist."""

    status_code = 404

    def __init__(self, track_id: str, message: Optional[str] = None):
        self.track_id = track_id
        super().__init__(message or "Track not found")


class ConflictError(SlughouseError):
    """Raised when a track with the same id already exists."""

    status_code = 409

    def __init__(self, track_id: str, message: Optional[str] = None):
        self.track_id = track_id
        super().__init__(message or "Track with this ID already exists")


class UnauthorizedError(SlughouseError):
    """Raised when the admin token is missing or wrong."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class StorageError(SlughouseError):
    """Raised when writing or removing an audio file fails."""

    pass


class TransactionError(SlughouseError):
    """Raised when a multi-row update failed and was rolled back."""

    pass


class PlaybackError(SlughouseError):
    """Raised by a media engine when it cannot load or start playback."""

    pass


class ClientError(SlughouseError):
    """Raised when the API cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.http_status = status_code
        super().__init__(message)
