"""Engagement metrics: play counts and vibe ratings.

Pure helpers shared by every library store. The stores apply these
inside an atomic upsert so concurrent events never lose an increment.
"""

import math
from typing import Any

from slughouse.domain.library.models import TrackMetrics, vibe_average

MIN_VIBE = 1
MAX_VIBE = 5


def normalize_vibe_score(score: Any) -> int:
    """Clamp a submitted rating into [1, 5].

    Non-numeric, missing, zero and NaN input counts as 1 before clamping.
    Fractions are truncated since ratings are stored as integers.
    """
    if isinstance(score, bool):
        value = 1.0
    else:
        try:
            value = float(score)
        except (TypeError, ValueError):
            value = 1.0

    if math.isnan(value) or value == 0:
        value = 1.0

    value = min(max(value, MIN_VIBE), MAX_VIBE)
    return int(value)


def apply_play(metrics: TrackMetrics, played_at: int) -> TrackMetrics:
    """Metrics after one more play event."""
    return TrackMetrics(
        play_count=metrics.play_count + 1,
        vibe_total=metrics.vibe_total,
        vibe_count=metrics.vibe_count,
        last_played_at=played_at,
    )


def apply_vibe(metrics: TrackMetrics, score: int) -> TrackMetrics:
    """Metrics after one more (already normalized) rating."""
    return TrackMetrics(
        play_count=metrics.play_count,
        vibe_total=metrics.vibe_total + score,
        vibe_count=metrics.vibe_count + 1,
        last_played_at=metrics.last_played_at,
    )


__all__ = [
    "MIN_VIBE",
    "MAX_VIBE",
    "normalize_vibe_score",
    "apply_play",
    "apply_vibe",
    "vibe_average",
]
