"""Library ordering: rank assignment and the canonical queue sort.

Every store lists tracks by (sort_order asc, added_at asc). Ranks need not
be contiguous; a reorder rewrites rank = index for every submitted id.
"""

from typing import Any, Iterable, Sequence

from slughouse.core.errors import ValidationError
from slughouse.domain.library.models import Track


def sort_key(track: Track) -> tuple[int, int]:
    """Queue position key: rank first, insertion time as tie-break."""
    return (track.sort_order, track.added_at)


def sort_tracks(tracks: Iterable[Track]) -> list[Track]:
    """Return tracks in queue order."""
    return sorted(tracks, key=sort_key)


def next_sort_order(existing: Iterable[int]) -> int:
    """Rank for a newly appended track: max(existing) + 1, or 0 when empty."""
    ranks = list(existing)
    return max(ranks) + 1 if ranks else 0


def validate_order(order: Any) -> list[str]:
    """Check a reorder payload and return it as a list of ids.

    Raises:
        ValidationError: If order is not a non-empty list of unique string ids
    """
    if not isinstance(order, (list, tuple)) or len(order) == 0:
        raise ValidationError("Order must be a non-empty array of track ids")

    ids = list(order)
    for track_id in ids:
        if not isinstance(track_id, str) or not track_id:
            raise ValidationError("Order must contain only non-empty track id strings")

    if len(set(ids)) != len(ids):
        raise ValidationError("Order contains duplicate track ids")

    return ids


def rank_assignments(order: Sequence[str]) -> list[tuple[int, str]]:
    """(rank, track_id) pairs for a validated order, rank = list index."""
    return [(index, track_id) for index, track_id in enumerate(order)]


def queue_index(tracks: Sequence[Track], track_id: str) -> int:
    """Position of track_id in a queue, -1 if absent."""
    for index, track in enumerate(tracks):
        if track.id == track_id:
            return index
    return -1
