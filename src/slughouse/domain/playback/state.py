"""
Playback settings for the Slughouse player

Volume, shuffle and repeat mode as an explicit value object. A settings
store reads them once at startup and writes them whenever they change.
"""

import json
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol

from loguru import logger


class RepeatMode(str, Enum):
    """Repeat behaviour on natural end of a track."""

    OFF = "off"
    ALL = "all"
    ONE = "one"

    def cycle(self) -> "RepeatMode":
        """off -> all -> one -> off"""
        order = [RepeatMode.OFF, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


def clamp_volume(volume: Any) -> float:
    """Clamp to [0, 1]; unparseable input leaves full volume."""
    try:
        value = float(volume)
    except (TypeError, ValueError):
        return 1.0
    if value != value:  # NaN
        return 1.0
    return min(max(value, 0.0), 1.0)


@dataclass(frozen=True)
class PlaybackSettings:
    """Persisted player preferences."""

    volume: float = 1.0
    shuffle: bool = False
    repeat: RepeatMode = RepeatMode.OFF

    def with_volume(self, volume: Any) -> "PlaybackSettings":
        return replace(self, volume=clamp_volume(volume))

    def toggled_shuffle(self) -> "PlaybackSettings":
        return replace(self, shuffle=not self.shuffle)

    def cycled_repeat(self) -> "PlaybackSettings":
        return replace(self, repeat=self.repeat.cycle())

    def to_dict(self) -> dict[str, Any]:
        return {"volume": self.volume, "shuffle": self.shuffle, "repeat": self.repeat.value}

    @classmethod
    def from_dict(cls, data: Any) -> "PlaybackSettings":
        """Build from stored JSON, falling back to defaults field by field."""
        if not isinstance(data, dict):
            return cls()

        defaults = cls()
        try:
            repeat = RepeatMode(data.get("repeat", defaults.repeat.value))
        except ValueError:
            repeat = defaults.repeat

        shuffle = data.get("shuffle", defaults.shuffle)
        return cls(
            volume=clamp_volume(data.get("volume", defaults.volume)),
            shuffle=shuffle if isinstance(shuffle, bool) else defaults.shuffle,
            repeat=repeat,
        )


class SettingsStore(Protocol):
    """Load/save lifecycle for PlaybackSettings."""

    def load(self) -> PlaybackSettings: ...
    def save(self, settings: PlaybackSettings) -> None: ...


class MemorySettingsStore:
    """Settings kept in memory (tests, ephemeral sessions)."""

    def __init__(self, settings: Optional[PlaybackSettings] = None) -> None:
        self.settings = settings or PlaybackSettings()
        self.save_count = 0

    def load(self) -> PlaybackSettings:
        return self.settings

    def save(self, settings: PlaybackSettings) -> None:
        self.settings = settings
        self.save_count += 1


class JsonSettingsStore:
    """Settings persisted as a small JSON file in the data directory."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> PlaybackSettings:
        """Read settings; missing or corrupt files give defaults."""
        if not self.path.exists():
            return PlaybackSettings()

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable player settings {self.path}: {e}")
            return PlaybackSettings()

        return PlaybackSettings.from_dict(data)

    def save(self, settings: PlaybackSettings) -> None:
        """Write settings atomically (temp file + rename)."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(settings.to_dict(), f)
            tmp_path.replace(self.path)
        except OSError as e:
            # Playback continues with the in-memory settings
            logger.warning(f"Failed to save player settings to {self.path}: {e}")
