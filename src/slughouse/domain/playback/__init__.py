"""Playback domain - controller state machine and media engine.

This domain handles:
- Play/pause/seek, auto-advance, shuffle and repeat (player)
- Volume, shuffle and repeat settings and their persistence (state)
- The MediaEngine interface and its MPV JSON IPC backend (engine)
"""

# Settings
from .state import (
    JsonSettingsStore,
    MemorySettingsStore,
    PlaybackSettings,
    RepeatMode,
    SettingsStore,
    clamp_volume,
)

# Engine
from .engine import EngineListener, MediaEngine, MpvEngine, build_mpv_command

# Controller
from .player import PlaybackController, PlaybackSnapshot, PlayerStatus

__all__ = [
    "JsonSettingsStore",
    "MemorySettingsStore",
    "PlaybackSettings",
    "RepeatMode",
    "SettingsStore",
    "clamp_volume",
    "EngineListener",
    "MediaEngine",
    "MpvEngine",
    "build_mpv_command",
    "PlaybackController",
    "PlaybackSnapshot",
    "PlayerStatus",
]
