"""
Music library domain models.

Contains data structures for tracks and their engagement metrics.
Timestamps are epoch milliseconds.
"""

import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def vibe_average(vibe_total: int, vibe_count: int) -> float:
    """Average rating rounded half-up to one decimal, 0 with no ratings."""
    if vibe_count <= 0:
        return 0.0
    average = Decimal(vibe_total) / Decimal(vibe_count)
    return float(average.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class TrackMetrics:
    """Play count and vibe rating aggregate for one track."""

    play_count: int = 0
    vibe_total: int = 0
    vibe_count: int = 0
    last_played_at: Optional[int] = None

    @property
    def vibe_average(self) -> float:
        return vibe_average(self.vibe_total, self.vibe_count)

    @classmethod
    def from_row(cls, row: Optional[Mapping[str, Any]]) -> "TrackMetrics":
        """Build from a metrics row; missing row or NULL columns mean zero."""
        if row is None:
            return cls()
        last_played = row["last_played_at"]
        return cls(
            play_count=int(row["play_count"] or 0),
            vibe_total=int(row["vibe_total"] or 0),
            vibe_count=int(row["vibe_count"] or 0),
            last_played_at=int(last_played) if last_played is not None else None,
        )


@dataclass(frozen=True)
class Track:
    """A playable audio item with metadata.

    src is the public URL the player loads; storage_path is the
    media-root-relative file for uploads (None for external URLs).
    """

    id: str
    title: str
    artist: str
    src: str
    added_at: int
    sort_order: int = 0
    duration: float = 0.0  # in seconds
    cover_art: Optional[str] = None
    storage_path: Optional[str] = None
    metrics: TrackMetrics = field(default_factory=TrackMetrics)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Track":
        """Build from a tracks row joined with track_metrics."""
        keys = row.keys()
        metrics = (
            TrackMetrics.from_row(row)
            if "play_count" in keys and row["play_count"] is not None
            else TrackMetrics()
        )
        return cls(
            id=row["id"],
            title=row["title"],
            artist=row["artist"],
            src=row["audio_url"],
            storage_path=row["audio_path"] or None,
            cover_art=row["cover_art"] or None,
            duration=float(row["duration"] or 0),
            added_at=int(row["added_at"]),
            sort_order=int(row["sort_order"] or 0),
            metrics=metrics,
        )


@dataclass(frozen=True)
class NewTrack:
    """Fields accepted when creating a track.

    sort_order None means "append after the current last track";
    added_at None means "now".
    """

    id: str
    title: str
    artist: str
    src: str
    storage_path: Optional[str] = None
    cover_art: Optional[str] = None
    duration: float = 0.0
    added_at: Optional[int] = None
    sort_order: Optional[int] = None


@dataclass(frozen=True)
class TrackUpdate:
    """Partial update; None fields are left unchanged."""

    title: Optional[str] = None
    artist: Optional[str] = None
    cover_art: Optional[str] = None
    sort_order: Optional[int] = None

    def is_empty(self) -> bool:
        return (
            self.title is None
            and self.artist is None
            and self.cover_art is None
            and self.sort_order is None
        )
