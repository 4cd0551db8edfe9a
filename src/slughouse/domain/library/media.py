"""Uploaded audio storage under the media root.

Files are written as <track id>-<ms timestamp>-<sanitized name> and served
either from the API's /media mount or from MEDIA_BASE_URL.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional
from urllib.parse import quote, urljoin

from loguru import logger
from mutagen import File as MutagenFile
from mutagen import MutagenError

from slughouse.core.config import Config, get_media_root
from slughouse.core.errors import PayloadTooLargeError, StorageError
from slughouse.core.path_security import resolve_media_path

from .models import now_ms

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class StoredFile:
    """A file written under the media root."""

    relative_path: str
    absolute_path: Path
    size: int


def safe_filename(track_id: str, original_name: str, timestamp: Optional[int] = None) -> str:
    """Pure function - storage name for an upload.

    Lowercases the client filename and collapses anything outside
    [a-z0-9.] into single dashes.
    """
    safe_name = re.sub(r"[^a-z0-9.]+", "-", (original_name or "").lower()).strip("-.")
    safe_name = safe_name or "audio"
    safe_id = re.sub(r"[^A-Za-z0-9_-]+", "-", track_id)
    return f"{safe_id}-{timestamp if timestamp is not None else now_ms()}-{safe_name}"


def probe_duration(file_path: Path) -> float:
    """Read the audio duration in seconds with mutagen, 0.0 if unknown."""
    try:
        audio = MutagenFile(str(file_path))
    except (MutagenError, OSError) as e:
        logger.debug(f"Could not probe duration of {file_path.name}: {e}")
        return 0.0

    if audio is None or audio.info is None:
        return 0.0
    return float(getattr(audio.info, "length", 0.0) or 0.0)


class MediaStorage:
    """Writes, locates and deletes audio files under one root directory."""

    def __init__(self, root: Path, base_url: str = "", max_upload_bytes: int = 0) -> None:
        self.root = root
        self.base_url = base_url
        self.max_upload_bytes = max_upload_bytes

    @classmethod
    def from_config(cls, config: Config) -> "MediaStorage":
        return cls(
            root=get_media_root(config),
            base_url=config.media.media_base_url,
            max_upload_bytes=config.media.max_upload_bytes,
        )

    def public_url(self, relative_path: str) -> str:
        """URL the player uses to fetch a stored file."""
        if not relative_path:
            return ""
        relative_path = relative_path.lstrip("/")
        if self.base_url:
            base = self.base_url if self.base_url.endswith("/") else f"{self.base_url}/"
            return urljoin(base, quote(relative_path))
        return f"/media/{quote(relative_path)}"

    def save_upload(self, track_id: str, filename: str, source: BinaryIO) -> StoredFile:
        """Stream an upload to disk.

        Raises:
            PayloadTooLargeError: If the stream exceeds max_upload_bytes
            StorageError: If the file cannot be written
        Partially written files are removed before raising.
        """
        name = safe_filename(track_id, filename)
        destination = self.root / name
        size = 0

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with open(destination, "wb") as out:
                while True:
                    chunk = source.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if self.max_upload_bytes and size > self.max_upload_bytes:
                        raise PayloadTooLargeError(
                            f"Upload exceeds {self.max_upload_bytes} bytes"
                        )
                    out.write(chunk)
        except PayloadTooLargeError:
            self._discard(destination)
            raise
        except OSError as e:
            self._discard(destination)
            logger.exception(f"Failed to store upload for track {track_id}")
            raise StorageError("Failed to save audio file") from e

        logger.info(f"Stored upload for track {track_id}: {name} ({size} bytes)")
        return StoredFile(relative_path=name, absolute_path=destination, size=size)

    def copy_into(self, track_id: str, file_path: Path) -> StoredFile:
        """Store a local file (CLI import) as if it had been uploaded."""
        try:
            with open(file_path, "rb") as source:
                return self.save_upload(track_id, file_path.name, source)
        except OSError as e:
            raise StorageError(f"Cannot read {file_path}") from e

    def path_for(self, relative_path: Optional[str]) -> Optional[Path]:
        """Absolute path of a stored file, None when empty or outside the root."""
        if not relative_path:
            return None
        return resolve_media_path(relative_path, self.root)

    def delete(self, relative_path: Optional[str]) -> bool:
        """Remove a stored file. Missing files are not an error.

        Returns:
            True if a file was removed
        """
        path = self.path_for(relative_path)
        if path is None:
            if relative_path:
                logger.warning(f"Refusing to delete path outside media root: {relative_path}")
            return False

        try:
            path.unlink()
            logger.info(f"Deleted media file {relative_path}")
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to delete file {path}: {e}")
            return False

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to clean up partial upload {path}: {e}")

