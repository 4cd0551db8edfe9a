import mimetypes
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from loguru import logger

from slughouse.domain.library.media import MediaStorage

from ..deps import get_media_storage

router = APIRouter()

AUDIO_MIME_TYPES: dict[str, str] = {
    ".opus": "audio/opus",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
}


def get_mime_type(file_path: Path) -> str:
    """Pure function - deterministic MIME type detection."""
    mime = AUDIO_MIME_TYPES.get(file_path.suffix.lower())
    if mime:
        return mime
    guessed, _ = mimetypes.guess_type(str(file_path))
    return guessed or "application/octet-stream"


@router.get("/media/{relative_path:path}")
async def serve_media(relative_path: str, media: MediaStorage = Depends(get_media_storage)):
    """Serve an uploaded file from the media root."""
    # SECURITY: resolved path must stay inside the media root
    file_path = media.path_for(relative_path)
    if file_path is None:
        logger.warning(f"Blocked media access outside root: {relative_path}")
        raise HTTPException(404, "File not found")

    if not file_path.is_file():
        raise HTTPException(404, "File not found")

    return FileResponse(file_path, media_type=get_mime_type(file_path))
