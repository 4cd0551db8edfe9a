import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from slughouse.domain.library.models import NewTrack, Track, TrackMetrics, TrackUpdate


class CamelModel(BaseModel):
    """Base for request/response bodies: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MetricsOut(CamelModel):
    play_count: int = 0
    vibe_total: int = 0
    vibe_count: int = 0
    vibe_average: float = 0.0
    last_played_at: Optional[int] = None

    @classmethod
    def from_metrics(cls, metrics: TrackMetrics) -> "MetricsOut":
        return cls(
            play_count=metrics.play_count,
            vibe_total=metrics.vibe_total,
            vibe_count=metrics.vibe_count,
            vibe_average=metrics.vibe_average,
            last_played_at=metrics.last_played_at,
        )


class TrackOut(MetricsOut):
    """A track flattened together with its metrics."""

    id: str
    title: str
    artist: str
    src: str
    storage_path: Optional[str] = None
    cover_art: Optional[str] = None
    duration: float = 0.0
    added_at: int
    sort_order: int

    @classmethod
    def from_track(cls, track: Track) -> "TrackOut":
        metrics = track.metrics
        return cls(
            id=track.id,
            title=track.title,
            artist=track.artist,
            src=track.src,
            storage_path=track.storage_path,
            cover_art=track.cover_art,
            duration=track.duration,
            added_at=track.added_at,
            sort_order=track.sort_order,
            play_count=metrics.play_count,
            vibe_total=metrics.vibe_total,
            vibe_count=metrics.vibe_count,
            vibe_average=metrics.vibe_average,
            last_played_at=metrics.last_played_at,
        )


def _optional_number(value: Any, cast) -> Optional[Any]:
    """Pure function - lenient numeric parsing for form and JSON fields."""
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return cast(number)


def _optional_text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


class TrackCreate(CamelModel):
    """POST /tracks body, from JSON or from multipart form fields.

    Fields are loosely typed so missing or malformed values become a 400
    from missing_fields() instead of a 422 from request validation.
    """

    id: Any = None
    title: Any = None
    artist: Any = None
    src: Any = None
    storage_path: Any = None
    cover_art: Any = None
    duration: Any = None
    added_at: Any = None
    sort_order: Any = None

    def missing_fields(self, require_src: bool) -> list[str]:
        names = ["id", "title", "artist"] + (["src"] if require_src else [])
        return [
            name
            for name in names
            if not isinstance(getattr(self, name), str) or not getattr(self, name).strip()
        ]

    def to_new_track(
        self,
        src: Optional[str] = None,
        storage_path: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> NewTrack:
        """Build the domain object; upload-derived values override body fields."""
        body_duration = _optional_number(self.duration, float)
        return NewTrack(
            id=self.id.strip(),
            title=self.title,
            artist=self.artist,
            src=src if src is not None else self.src,
            storage_path=storage_path if storage_path is not None else _optional_text(self.storage_path),
            cover_art=_optional_text(self.cover_art),
            duration=max(body_duration if body_duration else (duration or 0.0), 0.0),
            added_at=_optional_number(self.added_at, int),
            sort_order=_optional_number(self.sort_order, int),
        )


class TrackPatch(CamelModel):
    """PATCH /tracks/{id} body. Values of the wrong type are ignored."""

    title: Any = None
    artist: Any = None
    cover_art: Any = None
    sort_order: Any = None

    def to_update(self) -> TrackUpdate:
        sort_order = self.sort_order
        if (
            isinstance(sort_order, bool)
            or not isinstance(sort_order, (int, float))
            or not math.isfinite(sort_order)
        ):
            sort_order = None
        return TrackUpdate(
            title=self.title if isinstance(self.title, str) else None,
            artist=self.artist if isinstance(self.artist, str) else None,
            cover_art=self.cover_art if isinstance(self.cover_art, str) else None,
            sort_order=int(sort_order) if sort_order is not None else None,
        )


class ReorderRequest(CamelModel):
    order: Any = None


class VibeRequest(CamelModel):
    score: Any = None


class MessageResponse(BaseModel):
    message: str
