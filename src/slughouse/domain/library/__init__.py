"""Library domain - track persistence and uploaded media.

This domain handles:
- Track and metrics models
- The LibraryStore interface and its SQL / in-memory backends (store, memory)
- Audio file storage under the media root (media)

Store modules import the ordering and metrics helpers, so only the models
are re-exported here.
"""

from .models import NewTrack, Track, TrackMetrics, TrackUpdate, now_ms, vibe_average

__all__ = [
    "NewTrack",
    "Track",
    "TrackMetrics",
    "TrackUpdate",
    "now_ms",
    "vibe_average",
]
