"""
Playback command handlers for the Slughouse player.

Handles: play/pause, next, prev, seek, vol, mute, shuffle, repeat, list,
select, status, help, quit
"""

from typing import List, Tuple

from loguru import logger

from slughouse.core.console import safe_print
from slughouse.core.errors import NotFoundError
from slughouse.domain.playback import PlaybackController

HELP_LINES = [
    ("p, play, pause", "Toggle play/pause"),
    ("n, next", "Next track (random when shuffle is on)"),
    ("b, prev", "Previous track"),
    ("seek <sec|+sec|-sec>", "Jump to a position, or move relative to it"),
    ("vol <0-100|+n|-n>", "Set volume, or change it relative to now"),
    ("m, mute", "Mute/unmute (keeps the stored volume)"),
    ("s, shuffle", "Toggle shuffle"),
    ("r, repeat", "Cycle repeat: off -> all -> one"),
    ("ls, list", "Show the queue"),
    ("sel <n|id>", "Play queue entry n (1-based) or a track id"),
    ("status", "Show what is playing"),
    ("h, help", "Show this help"),
    ("q, quit", "Stop and exit"),
]

ALIASES = {
    "p": "toggle",
    "play": "toggle",
    "pause": "toggle",
    "n": "next",
    "b": "prev",
    "previous": "prev",
    "m": "mute",
    "s": "shuffle",
    "r": "repeat",
    "ls": "list",
    "sel": "select",
    "h": "help",
    "?": "help",
    "q": "quit",
    "exit": "quit",
}


def parse_command(line: str) -> Tuple[str, List[str]]:
    """Pure function - split an input line into (command, args), resolving aliases."""
    parts = line.strip().split()
    if not parts:
        return "", []
    command = parts[0].lower()
    return ALIASES.get(command, command), parts[1:]


def format_time(seconds: float) -> str:
    """Pure function - m:ss for display."""
    seconds = max(int(seconds), 0)
    return f"{seconds // 60}:{seconds % 60:02d}"


def print_help() -> None:
    safe_print("Player commands:", style="bold")
    for usage, description in HELP_LINES:
        safe_print(f"  {usage:<22} {description}")


def _relative_value(arg: str, current: float) -> float:
    """'+10' / '-10' move from current; a bare number is absolute.

    Raises:
        ValueError: If arg is not a number
    """
    value = float(arg)
    if arg.startswith(("+", "-")):
        return current + value
    return value


def print_status(controller: PlaybackController) -> None:
    snapshot = controller.snapshot()
    track = snapshot.track
    if track is None:
        safe_print("Nothing loaded", style="yellow")
        return

    settings = snapshot.settings
    volume = "muted" if snapshot.muted else f"{round(settings.volume * 100)}%"
    safe_print(
        f"{snapshot.status.value}: {track.artist} - {track.title} "
        f"[{format_time(snapshot.position)} / {format_time(snapshot.duration)}]",
        style="cyan",
    )
    safe_print(
        f"volume {volume}, shuffle {'on' if settings.shuffle else 'off'}, "
        f"repeat {settings.repeat.value}"
    )


def print_queue(controller: PlaybackController) -> None:
    current = controller.current_index
    for number, track in enumerate(controller.tracks, start=1):
        marker = "▶" if number - 1 == current else " "
        safe_print(f"{marker} {number:>3}. {track.artist} - {track.title} ({track.id})")


async def handle_select(controller: PlaybackController, args: List[str]) -> None:
    if not args:
        safe_print("Usage: sel <n|id>", style="yellow")
        return

    target = args[0]
    tracks = controller.tracks
    if target.isdigit() and 1 <= int(target) <= len(tracks):
        target = tracks[int(target) - 1].id

    try:
        await controller.select(target)
    except NotFoundError:
        safe_print(f"No track {args[0]} in the queue", style="red")


def handle_seek(controller: PlaybackController, args: List[str]) -> None:
    if not args:
        safe_print("Usage: seek <sec|+sec|-sec>", style="yellow")
        return
    try:
        target = _relative_value(args[0], controller.snapshot().position)
    except ValueError:
        safe_print(f"Not a number: {args[0]}", style="red")
        return
    controller.seek(target)


def handle_volume(controller: PlaybackController, args: List[str]) -> None:
    if not args:
        safe_print(f"Volume {round(controller.settings.volume * 100)}%")
        return
    try:
        percent = _relative_value(args[0], controller.settings.volume * 100)
    except ValueError:
        safe_print(f"Not a number: {args[0]}", style="red")
        return
    controller.set_volume(percent / 100)
    safe_print(f"Volume {round(controller.settings.volume * 100)}%")


async def handle_command(
    controller: PlaybackController, command: str, args: List[str]
) -> bool:
    """
    Run one player command.

    Returns:
        False when the player should exit, True otherwise
    """
    logger.debug(f"Player command: {command} {args}")

    if command == "":
        return True
    elif command == "quit":
        return False
    elif command == "help":
        print_help()
    elif command == "toggle":
        await controller.toggle()
    elif command == "next":
        await controller.next()
    elif command == "prev":
        await controller.previous()
    elif command == "seek":
        handle_seek(controller, args)
    elif command in ("vol", "volume"):
        handle_volume(controller, args)
    elif command == "mute":
        muted = controller.toggle_mute()
        safe_print("Muted" if muted else f"Volume {round(controller.settings.volume * 100)}%")
    elif command == "shuffle":
        safe_print(f"Shuffle {'on' if controller.toggle_shuffle() else 'off'}")
    elif command == "repeat":
        safe_print(f"Repeat {controller.cycle_repeat().value}")
    elif command == "list":
        print_queue(controller)
    elif command == "select":
        await handle_select(controller, args)
    elif command == "status":
        print_status(controller)
    else:
        safe_print(f"Unknown command: {command} (type 'help')", style="yellow")

    return True
