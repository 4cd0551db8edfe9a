"""
Playback controller for the Slughouse player

State machine over a single MediaEngine:

    IDLE --load--> PAUSED <--play/pause--> PLAYING --ended--> ENDED

Natural end runs the auto-advance policy (repeat one, shuffle, then
sequential with wrap). Manual next/previous ignore repeat mode.
"""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from loguru import logger

from slughouse.core.errors import NotFoundError, PlaybackError
from slughouse.domain.library.models import Track
from slughouse.domain.ordering import queue_index

from .engine import MediaEngine
from .state import PlaybackSettings, RepeatMode, SettingsStore


class PlayerStatus(str, Enum):
    IDLE = "idle"
    PAUSED = "paused"
    PLAYING = "playing"
    ENDED = "ended"


@dataclass(frozen=True)
class PlaybackSnapshot:
    """Immutable view of the controller after a transition."""

    status: PlayerStatus
    track: Optional[Track]
    index: int
    position: float
    duration: float
    settings: PlaybackSettings
    muted: bool = False

    @property
    def is_playing(self) -> bool:
        return self.status == PlayerStatus.PLAYING


SnapshotListener = Callable[[PlaybackSnapshot], None]
TrackStartedHook = Callable[[Track], None]


class PlaybackController:
    """Drives one MediaEngine through the playback state machine.

    Args:
        engine: Audio renderer; the controller registers itself as its listener
        settings_store: Loaded once here, written on every settings change
        tracks: Initial queue in library order
        rng: Random source for shuffle picks
        on_track_started: Called in a worker thread when a track starts
            playing through load+play (used to report plays)
    """

    def __init__(
        self,
        engine: MediaEngine,
        settings_store: SettingsStore,
        tracks: Sequence[Track] = (),
        rng: Optional[random.Random] = None,
        on_track_started: Optional[TrackStartedHook] = None,
    ) -> None:
        self._engine = engine
        self._settings_store = settings_store
        self._settings = settings_store.load()
        self._tracks: list[Track] = list(tracks)
        self._rng = rng or random.Random()
        self._on_track_started = on_track_started
        self._listeners: list[SnapshotListener] = []

        self._status = PlayerStatus.IDLE
        self._current: Optional[Track] = None
        self._position = 0.0
        self._duration = 0.0
        self._muted = False

        engine.set_listener(self)

    # Read side

    @property
    def status(self) -> PlayerStatus:
        return self._status

    @property
    def current_track(self) -> Optional[Track]:
        return self._current

    @property
    def current_index(self) -> int:
        """Queue index of the current track, -1 when none or no longer queued."""
        if self._current is None:
            return -1
        return queue_index(self._tracks, self._current.id)

    @property
    def settings(self) -> PlaybackSettings:
        return self._settings

    @property
    def tracks(self) -> list[Track]:
        return list(self._tracks)

    @property
    def muted(self) -> bool:
        return self._muted

    def snapshot(self) -> PlaybackSnapshot:
        return PlaybackSnapshot(
            status=self._status,
            track=self._current,
            index=self.current_index,
            position=self._position,
            duration=self._duration,
            settings=self._settings,
            muted=self._muted,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot listener. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Playback listener failed")

    # Transitions

    async def load(self, track: Track) -> None:
        """Load a track paused at 0. The previous source is released first."""
        if self._current is not None:
            try:
                await self._engine.stop()
            except PlaybackError as e:
                logger.warning(f"Failed to stop previous source: {e}")

        self._current = track
        self._position = 0.0
        self._duration = 0.0

        try:
            await self._engine.load(track.src)
        except PlaybackError as e:
            logger.error(f"Failed to load track {track.id}: {e}")
            self._status = PlayerStatus.IDLE
            self._notify()
            return

        self._engine.set_volume(self._output_volume())
        self._status = PlayerStatus.PAUSED
        logger.debug(f"Loaded track {track.id}")
        self._notify()

    async def play(self) -> None:
        """PAUSED -> PLAYING. Engine failures are logged and leave it paused."""
        if self._status != PlayerStatus.PAUSED:
            logger.debug(f"Ignoring play in state {self._status.value}")
            return

        try:
            await self._engine.play()
        except PlaybackError as e:
            logger.error(f"Playback failed for track {self._current.id}: {e}")
            self._notify()
            return

        self._status = PlayerStatus.PLAYING
        self._notify()

    def pause(self) -> None:
        """PLAYING -> PAUSED."""
        if self._status != PlayerStatus.PLAYING:
            logger.debug(f"Ignoring pause in state {self._status.value}")
            return

        self._engine.pause()
        self._status = PlayerStatus.PAUSED
        self._notify()

    async def toggle(self) -> None:
        """Play/pause. From ENDED the current track restarts; from IDLE the queue starts."""
        if self._status == PlayerStatus.PLAYING:
            self.pause()
        elif self._status == PlayerStatus.PAUSED:
            await self.play()
        elif self._status == PlayerStatus.ENDED and self._current is not None:
            await self._start(self._current)
        elif self._status == PlayerStatus.IDLE and self._tracks:
            await self._start(self._current if self._current is not None else self._tracks[0])

    def seek(self, seconds: float) -> None:
        """Move within the loaded track, clamped to [0, duration]."""
        if self._status not in (PlayerStatus.PAUSED, PlayerStatus.PLAYING):
            logger.debug(f"Ignoring seek in state {self._status.value}")
            return

        target = min(max(float(seconds), 0.0), self._duration)
        self._engine.seek(target)
        self._position = target
        self._notify()

    async def next(self) -> None:
        """Manual next: shuffle-aware, wraps at the end, ignores repeat."""
        if not self._tracks:
            return

        index = self._shuffle_pick()
        if index is None:
            index = (self.current_index + 1) % len(self._tracks)
        await self._start(self._tracks[index])

    async def previous(self) -> None:
        """Manual previous: index-1, wrapping from the first track to the last."""
        if not self._tracks:
            return

        index = self.current_index
        index = len(self._tracks) - 1 if index <= 0 else index - 1
        await self._start(self._tracks[index])

    async def select(self, track_id: str) -> None:
        """Load and play a queued track by id.

        Raises:
            NotFoundError: If the id is not in the queue
        """
        index = queue_index(self._tracks, track_id)
        if index < 0:
            raise NotFoundError(track_id)
        await self._start(self._tracks[index])

    async def auto_advance(self) -> None:
        """Pick what plays after a natural end."""
        if self._current is None or not self._tracks:
            return

        if self._settings.repeat == RepeatMode.ONE:
            await self._start(self._current)
            return

        index = self._shuffle_pick()
        if index is None:
            current = self.current_index
            if current == len(self._tracks) - 1 and self._settings.repeat == RepeatMode.OFF:
                logger.debug("End of queue reached")
                return
            index = (current + 1) % len(self._tracks)

        await self._start(self._tracks[index])

    def _shuffle_pick(self) -> Optional[int]:
        """Random queue index other than the current one, None if shuffle doesn't apply."""
        if not self._settings.shuffle or len(self._tracks) <= 1:
            return None
        current = self.current_index
        return self._rng.choice([i for i in range(len(self._tracks)) if i != current])

    async def _start(self, track: Track) -> None:
        await self.load(track)
        await self.play()
        if self._status == PlayerStatus.PLAYING and self._on_track_started is not None:
            try:
                await asyncio.to_thread(self._on_track_started, track)
            except Exception:
                logger.exception(f"Track started hook failed for {track.id}")

    # Settings

    def _save_settings(self, settings: PlaybackSettings) -> None:
        self._settings = settings
        self._settings_store.save(settings)
        self._notify()

    def _output_volume(self) -> float:
        return 0.0 if self._muted else self._settings.volume

    def set_volume(self, volume: float) -> None:
        """Clamp into [0, 1] and persist. Valid in any state; also unmutes."""
        self._muted = False
        settings = self._settings.with_volume(volume)
        self._engine.set_volume(settings.volume)
        self._save_settings(settings)

    def toggle_mute(self) -> bool:
        """Silence the engine without touching the stored volume."""
        self._muted = not self._muted
        self._engine.set_volume(self._output_volume())
        self._notify()
        return self._muted

    def toggle_shuffle(self) -> bool:
        self._save_settings(self._settings.toggled_shuffle())
        return self._settings.shuffle

    def cycle_repeat(self) -> RepeatMode:
        self._save_settings(self._settings.cycled_repeat())
        return self._settings.repeat

    def set_queue(self, tracks: Sequence[Track]) -> None:
        """Replace the queue; the current track stays current while loaded."""
        self._tracks = list(tracks)
        self._notify()

    # Engine events

    def on_metadata(self, duration: float) -> None:
        self._duration = max(float(duration), 0.0)
        self._notify()

    def on_time_update(self, position: float) -> None:
        if self._status not in (PlayerStatus.PAUSED, PlayerStatus.PLAYING):
            return
        self._position = max(float(position), 0.0)
        self._notify()

    async def on_ended(self) -> None:
        if self._current is None:
            return
        self._status = PlayerStatus.ENDED
        self._position = self._duration
        self._notify()
        await self.auto_advance()

    async def close(self) -> None:
        """Release the engine."""
        self._listeners.clear()
        await self._engine.close()
        self._status = PlayerStatus.IDLE
