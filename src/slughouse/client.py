"""
HTTP client for the Slughouse API

Used by the player CLI to load the library and report plays and vibes.
"""

from typing import Any, Mapping, Optional, Sequence
from urllib.parse import urljoin

import requests
from loguru import logger

from slughouse.core.errors import ClientError
from slughouse.domain.library.models import Track, TrackMetrics
from slughouse.domain.ordering import sort_tracks

REQUEST_TIMEOUT = 30


def metrics_from_json(data: Mapping[str, Any]) -> TrackMetrics:
    """Pure function - TrackMetrics from a camelCase metrics payload."""
    last_played = data.get("lastPlayedAt")
    return TrackMetrics(
        play_count=int(data.get("playCount") or 0),
        vibe_total=int(data.get("vibeTotal") or 0),
        vibe_count=int(data.get("vibeCount") or 0),
        last_played_at=int(last_played) if last_played is not None else None,
    )


def track_from_json(data: Mapping[str, Any], base_url: str = "") -> Track:
    """Pure function - Track from an API payload.

    Relative src values (served from /media) are resolved against base_url.
    """
    src = data.get("src") or ""
    if base_url and src.startswith("/"):
        src = urljoin(base_url if base_url.endswith("/") else f"{base_url}/", src.lstrip("/"))

    return Track(
        id=data["id"],
        title=data.get("title", ""),
        artist=data.get("artist", ""),
        src=src,
        storage_path=data.get("storagePath"),
        cover_art=data.get("coverArt"),
        duration=float(data.get("duration") or 0),
        added_at=int(data.get("addedAt") or 0),
        sort_order=int(data.get("sortOrder") or 0),
        metrics=metrics_from_json(data),
    )


class LibraryClient:
    """Thin wrapper over the REST contract.

    Raises ClientError for network failures and non-2xx responses; the
    message is the API's {"detail"} text when present.
    """

    def __init__(
        self,
        base_url: str,
        admin_token: str = "",
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if admin_token:
            self.session.headers["x-admin-token"] = admin_token

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise ClientError(f"Cannot reach {self.base_url}: {e}") from e

        if not response.ok:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = None
            message = detail if isinstance(detail, str) else response.reason or "Request failed"
            logger.warning(f"{method} {url} returned {response.status_code}: {message}")
            raise ClientError(message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def health(self) -> bool:
        try:
            return self._request("GET", "/health").get("status") == "ok"
        except ClientError:
            return False

    def list_tracks(self) -> list[Track]:
        data = self._request("GET", "/tracks")
        return [track_from_json(item, self.base_url) for item in data]

    def create_track(self, payload: Mapping[str, Any]) -> Track:
        """Create a track from an already-hosted URL (JSON body)."""
        return track_from_json(self._request("POST", "/tracks", json=dict(payload)), self.base_url)

    def update_track(self, track_id: str, changes: Mapping[str, Any]) -> Track:
        data = self._request("PATCH", f"/tracks/{track_id}", json=dict(changes))
        return track_from_json(data, self.base_url)

    def delete_track(self, track_id: str) -> None:
        self._request("DELETE", f"/tracks/{track_id}")

    def reorder(self, order: Sequence[str]) -> None:
        self._request("POST", "/tracks/reorder", json={"order": list(order)})

    def record_play(self, track_id: str) -> TrackMetrics:
        return metrics_from_json(self._request("POST", f"/tracks/{track_id}/play"))

    def record_vibe(self, track_id: str, score: Any) -> TrackMetrics:
        return metrics_from_json(
            self._request("POST", f"/tracks/{track_id}/vibe", json={"score": score})
        )


class Library:
    """Client-side cache of the ordered track list."""

    def __init__(self, client: LibraryClient) -> None:
        self.client = client
        self.tracks: list[Track] = []

    def refresh(self) -> list[Track]:
        """Reload from the API. On failure the previous list is kept."""
        try:
            self.tracks = sort_tracks(self.client.list_tracks())
            logger.info(f"Loaded {len(self.tracks)} tracks")
        except ClientError as e:
            logger.error(f"Failed to refresh library, keeping {len(self.tracks)} cached tracks: {e}")
        return self.tracks
