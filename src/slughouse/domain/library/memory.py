"""In-memory LibraryStore.

Embedded backend for tests, demos and single-process use. A single lock
serializes writers; every write builds the new state first and swaps it
in, so a failed reorder leaves the previous ranks untouched.
"""

import threading
from dataclasses import replace
from typing import Any, Callable, Optional, Sequence

from loguru import logger

from slughouse.core.errors import ConflictError, NotFoundError, ValidationError
from slughouse.domain.metrics import apply_play, apply_vibe, normalize_vibe_score
from slughouse.domain.ordering import next_sort_order, rank_assignments, sort_tracks, validate_order

from .models import NewTrack, Track, TrackMetrics, TrackUpdate, now_ms


class InMemoryLibraryStore:
    """LibraryStore kept in process memory."""

    def __init__(
        self,
        tracks: Optional[Sequence[Track]] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._lock = threading.RLock()
        self._clock = clock
        self._tracks: dict[str, Track] = {}
        self._metrics: dict[str, TrackMetrics] = {}
        for track in tracks or []:
            self._tracks[track.id] = replace(track, metrics=TrackMetrics())
            if track.metrics != TrackMetrics():
                self._metrics[track.id] = track.metrics

    def _with_metrics(self, track: Track) -> Track:
        return replace(track, metrics=self._metrics.get(track.id, TrackMetrics()))

    def _require(self, track_id: str) -> Track:
        track = self._tracks.get(track_id)
        if track is None:
            raise NotFoundError(track_id)
        return track

    def list_tracks(self) -> list[Track]:
        with self._lock:
            return sort_tracks(self._with_metrics(t) for t in self._tracks.values())

    def get_track(self, track_id: str) -> Track:
        with self._lock:
            return self._with_metrics(self._require(track_id))

    def get_metrics(self, track_id: str) -> TrackMetrics:
        with self._lock:
            return self._metrics.get(track_id, TrackMetrics())

    def insert_track(self, new_track: NewTrack) -> Track:
        with self._lock:
            if new_track.id in self._tracks:
                raise ConflictError(new_track.id)

            sort_order = new_track.sort_order
            if sort_order is None:
                sort_order = next_sort_order(t.sort_order for t in self._tracks.values())

            track = Track(
                id=new_track.id,
                title=new_track.title,
                artist=new_track.artist,
                src=new_track.src,
                storage_path=new_track.storage_path,
                cover_art=new_track.cover_art,
                duration=float(new_track.duration or 0),
                added_at=new_track.added_at if new_track.added_at is not None else self._clock(),
                sort_order=sort_order,
            )
            self._tracks[track.id] = track
            logger.info(f"Inserted track {track.id} at sort_order={sort_order}")
            return self._with_metrics(track)

    def update_track(self, track_id: str, changes: TrackUpdate) -> Track:
        if changes.is_empty():
            raise ValidationError("No updates provided")

        with self._lock:
            track = self._require(track_id)
            fields = {
                name: value
                for name, value in (
                    ("title", changes.title),
                    ("artist", changes.artist),
                    ("cover_art", changes.cover_art),
                    ("sort_order", changes.sort_order),
                )
                if value is not None
            }
            updated = replace(track, **fields)
            self._tracks[track_id] = updated
            return self._with_metrics(updated)

    def delete_track(self, track_id: str) -> Track:
        with self._lock:
            track = self._with_metrics(self._require(track_id))
            del self._tracks[track_id]
            self._metrics.pop(track_id, None)
            return track

    def reorder(self, order: Sequence[str]) -> None:
        ids = validate_order(order)
        with self._lock:
            reordered = dict(self._tracks)
            for rank, track_id in rank_assignments(ids):
                track = reordered.get(track_id)
                if track is not None:
                    reordered[track_id] = replace(track, sort_order=rank)
            self._tracks = reordered
        logger.info(f"Reordered {len(ids)} tracks")

    def record_play(self, track_id: str) -> TrackMetrics:
        with self._lock:
            metrics = apply_play(self._metrics.get(track_id, TrackMetrics()), self._clock())
            self._metrics[track_id] = metrics
            return metrics

    def record_vibe(self, track_id: str, score: Any) -> TrackMetrics:
        normalized = normalize_vibe_score(score)
        with self._lock:
            metrics = apply_vibe(self._metrics.get(track_id, TrackMetrics()), normalized)
            self._metrics[track_id] = metrics
            return metrics
