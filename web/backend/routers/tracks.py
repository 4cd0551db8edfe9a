import asyncio
import json
from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from slughouse.core.errors import SlughouseError
from slughouse.domain.library.media import MediaStorage, probe_duration
from slughouse.domain.library.store import LibraryStore

from ..deps import get_media_storage, get_store, require_admin
from ..schemas import (
    MessageResponse,
    MetricsOut,
    ReorderRequest,
    TrackCreate,
    TrackOut,
    TrackPatch,
    VibeRequest,
)

router = APIRouter()

ModelT = TypeVar("ModelT", bound=BaseModel)


def _http_error(error: SlughouseError, failure: str) -> HTTPException:
    """Pure function - HTTPException for a domain error.

    Client errors keep their message; server errors get the generic
    failure text (the cause is logged by the caller).
    """
    if error.status_code >= 500:
        return HTTPException(error.status_code, failure)
    return HTTPException(error.status_code, str(error))


@router.get("/tracks", response_model=list[TrackOut])
def list_tracks(store: LibraryStore = Depends(get_store)):
    try:
        return [TrackOut.from_track(track) for track in store.list_tracks()]
    except Exception:
        logger.exception("Failed to fetch tracks")
        raise HTTPException(500, "Failed to fetch tracks")


@router.post(
    "/tracks",
    status_code=201,
    response_model=TrackOut,
    dependencies=[Depends(require_admin)],
)
async def create_track(
    request: Request,
    store: LibraryStore = Depends(get_store),
    media: MediaStorage = Depends(get_media_storage),
):
    """Create a track from a multipart upload or a JSON body with a hosted src."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        return await _create_from_upload(request, store, media)
    return await _create_from_json(request, store)


async def _json_body(request: Request, model: type[ModelT]) -> ModelT:
    """Parse a JSON object body into model, 400 on anything malformed.

    An empty body counts as {} so each route can report what is missing.
    """
    raw = await request.body()
    if not raw.strip():
        data = {}
    else:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise HTTPException(400, "Invalid JSON body")

    if not isinstance(data, dict):
        raise HTTPException(400, "Request body must be a JSON object")

    try:
        return model.model_validate(data)
    except PydanticValidationError:
        raise HTTPException(400, "Invalid request fields")


async def _create_from_json(request: Request, store: LibraryStore) -> TrackOut:
    payload = await _json_body(request, TrackCreate)

    missing = payload.missing_fields(require_src=True)
    if missing:
        raise HTTPException(400, f"Missing {', '.join(missing)}")

    try:
        track = await asyncio.to_thread(store.insert_track, payload.to_new_track())
    except SlughouseError as e:
        if e.status_code >= 500:
            logger.exception(f"Failed to save track {payload.id}")
        raise _http_error(e, "Failed to save track")
    except Exception:
        logger.exception(f"Failed to save track {payload.id}")
        raise HTTPException(500, "Failed to save track")

    logger.info(f"Created track {track.id} from {track.src}")
    return TrackOut.from_track(track)


async def _create_from_upload(
    request: Request, store: LibraryStore, media: MediaStorage
) -> TrackOut:
    form = await request.form()
    upload = form.get("file")
    try:
        fields = {key: value for key, value in form.items() if key != "file"}
        try:
            payload = TrackCreate.model_validate(fields)
        except PydanticValidationError:
            raise HTTPException(400, "Invalid track fields")

        if payload.missing_fields(require_src=False):
            raise HTTPException(400, "Missing id, title, or artist")
        if not isinstance(upload, UploadFile):
            raise HTTPException(400, "Missing audio file")

        track_id = payload.id.strip()
        try:
            stored = await asyncio.to_thread(
                media.save_upload, track_id, upload.filename or "audio", upload.file
            )
        except SlughouseError as e:
            raise _http_error(e, "Failed to save audio file")

        try:
            duration = await asyncio.to_thread(probe_duration, stored.absolute_path)
            track = await asyncio.to_thread(
                store.insert_track,
                payload.to_new_track(
                    src=media.public_url(stored.relative_path),
                    storage_path=stored.relative_path,
                    duration=duration,
                ),
            )
        except SlughouseError as e:
            # Duplicate id or storage failure: the upload has no owner
            media.delete(stored.relative_path)
            if e.status_code >= 500:
                logger.exception(f"Failed to save track {track_id}")
            raise _http_error(e, "Failed to save track")
        except Exception:
            media.delete(stored.relative_path)
            logger.exception(f"Failed to save track {track_id}")
            raise HTTPException(500, "Failed to save track")
    finally:
        if isinstance(upload, UploadFile):
            await upload.close()

    logger.info(f"Created track {track.id} with upload {stored.relative_path} ({stored.size} bytes)")
    return TrackOut.from_track(track)


@router.patch(
    "/tracks/{track_id}",
    response_model=TrackOut,
    dependencies=[Depends(require_admin)],
)
async def update_track(
    track_id: str, request: Request, store: LibraryStore = Depends(get_store)
):
    body = await _json_body(request, TrackPatch)
    try:
        track = await asyncio.to_thread(store.update_track, track_id, body.to_update())
        return TrackOut.from_track(track)
    except SlughouseError as e:
        if e.status_code >= 500:
            logger.exception(f"Failed to update track {track_id}")
        raise _http_error(e, "Failed to update track")
    except Exception:
        logger.exception(f"Failed to update track {track_id}")
        raise HTTPException(500, "Failed to update track")


@router.delete(
    "/tracks/{track_id}",
    status_code=204,
    dependencies=[Depends(require_admin)],
)
def delete_track(
    track_id: str,
    store: LibraryStore = Depends(get_store),
    media: MediaStorage = Depends(get_media_storage),
):
    """Remove the track, its metrics and its uploaded file."""
    try:
        track = store.delete_track(track_id)
    except SlughouseError as e:
        if e.status_code >= 500:
            logger.exception(f"Failed to delete track {track_id}")
        raise _http_error(e, "Failed to delete track")
    except Exception:
        logger.exception(f"Failed to delete track {track_id}")
        raise HTTPException(500, "Failed to delete track")

    if track.storage_path:
        media.delete(track.storage_path)

    logger.info(f"Deleted track {track_id}")
    return Response(status_code=204)


@router.post(
    "/tracks/reorder",
    response_model=MessageResponse,
    dependencies=[Depends(require_admin)],
)
async def reorder_tracks(request: Request, store: LibraryStore = Depends(get_store)):
    body = await _json_body(request, ReorderRequest)
    try:
        await asyncio.to_thread(store.reorder, body.order)
    except SlughouseError as e:
        # TransactionError is logged by the store after rollback
        raise _http_error(e, "Failed to reorder tracks")
    except Exception:
        logger.exception("Failed to reorder tracks")
        raise HTTPException(500, "Failed to reorder tracks")

    return MessageResponse(message="Order updated")


@router.post("/tracks/{track_id}/play", response_model=MetricsOut)
def record_play(track_id: str, store: LibraryStore = Depends(get_store)):
    try:
        return MetricsOut.from_metrics(store.record_play(track_id))
    except Exception:
        logger.exception(f"Failed to record play for {track_id}")
        raise HTTPException(500, "Failed to record play")


@router.post("/tracks/{track_id}/vibe", response_model=MetricsOut)
async def record_vibe(
    track_id: str, request: Request, store: LibraryStore = Depends(get_store)
):
    body = await _json_body(request, VibeRequest)
    try:
        metrics = await asyncio.to_thread(store.record_vibe, track_id, body.score)
        return MetricsOut.from_metrics(metrics)
    except Exception:
        logger.exception(f"Failed to record vibe for {track_id}")
        raise HTTPException(500, "Failed to record vibe")
