"""
Slughouse CLI - entry point

Subcommands:
    serve    Run the web API with uvicorn
    play     Stream the library through mpv
    import   Copy local audio files into the library
    init     Write a default config.toml
"""

import argparse
import asyncio
import os
import sys
import uuid
from pathlib import Path
from typing import Optional

from loguru import logger

from slughouse.core.config import Config, ensure_directories, get_data_dir, load_config, write_default_config
from slughouse.core.console import print_now_playing, print_result, safe_print
from slughouse.core.errors import ClientError, SlughouseError
from slughouse.core.output import setup_from_config


def get_settings_path(config: Config) -> Path:
    if config.player.settings_file:
        return Path(config.player.settings_file).expanduser()
    return get_data_dir() / "player-settings.json"


def run_serve(config: Config, host: Optional[str], port: Optional[int], reload: bool) -> int:
    """Run the FastAPI app (web.backend.main:app)."""
    import uvicorn

    host = host or config.server.host
    port = port or config.server.port
    safe_print(f"Serving Slughouse API on http://{host}:{port}", style="green")
    uvicorn.run("web.backend.main:app", host=host, port=port, reload=reload)
    return 0


def queue_finished(controller) -> bool:
    """True once playback has stopped for good (last track ended, no repeat/shuffle)."""
    from slughouse.domain.playback import PlayerStatus, RepeatMode

    if controller.status == PlayerStatus.IDLE:
        return True
    if controller.status != PlayerStatus.ENDED:
        return False
    settings = controller.settings
    if settings.repeat != RepeatMode.OFF:
        return False
    if settings.shuffle and len(controller.tracks) > 1:
        return False
    return controller.current_index == len(controller.tracks) - 1


async def run_command_loop(controller, fd: int) -> None:
    """Dispatch command lines read from fd until quit, EOF or the queue finishes."""
    from slughouse.commands import handle_command, parse_command

    loop = asyncio.get_running_loop()
    lines: asyncio.Queue = asyncio.Queue()  # None marks EOF
    partial = [""]

    def on_readable() -> None:
        data = os.read(fd, 4096)
        if not data:
            loop.remove_reader(fd)
            if partial[0]:
                lines.put_nowait(partial[0])
            lines.put_nowait(None)
            return
        *complete, partial[0] = (partial[0] + data.decode("utf-8", errors="replace")).split("\n")
        for line in complete:
            lines.put_nowait(line)

    loop.add_reader(fd, on_readable)
    try:
        while not queue_finished(controller):
            try:
                line = await asyncio.wait_for(lines.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            if line is None:
                # EOF: keep playing out the queue without commands
                while not queue_finished(controller):
                    await asyncio.sleep(0.5)
                return
            command, args = parse_command(line)
            if not await handle_command(controller, command, args):
                return
    finally:
        loop.remove_reader(fd)


async def play_library(
    config: Config,
    track_id: Optional[str] = None,
    shuffle: Optional[bool] = None,
    repeat: Optional[str] = None,
    interactive: bool = False,
) -> int:
    """Load the library from the API and play it through mpv.

    With interactive set, player commands are read from stdin until quit
    or the end of the queue.
    """
    from slughouse.client import Library, LibraryClient
    from slughouse.domain.playback import (
        JsonSettingsStore,
        MpvEngine,
        PlaybackController,
        PlayerStatus,
        RepeatMode,
    )

    client = LibraryClient(config.player.api_url, admin_token=config.server.admin_token)
    library = Library(client)
    tracks = library.refresh()
    if not tracks:
        safe_print(f"No tracks available from {config.player.api_url}", style="yellow")
        return 1

    def report_play(track) -> None:
        try:
            client.record_play(track.id)
        except ClientError as e:
            logger.warning(f"Could not record play for {track.id}: {e}")

    controller = PlaybackController(
        MpvEngine(config.player.mpv_socket_path),
        JsonSettingsStore(get_settings_path(config)),
        tracks,
        on_track_started=report_play if config.player.report_plays else None,
    )

    if shuffle is not None and controller.settings.shuffle != shuffle:
        controller.toggle_shuffle()
    if repeat is not None:
        target = RepeatMode(repeat)
        while controller.settings.repeat != target:
            controller.cycle_repeat()

    last_announced: list[Optional[str]] = [None]

    def announce(snapshot) -> None:
        if snapshot.status == PlayerStatus.PLAYING and snapshot.track is not None:
            if snapshot.track.id != last_announced[0]:
                last_announced[0] = snapshot.track.id
                print_now_playing(snapshot.track.artist, snapshot.track.title)

    controller.subscribe(announce)

    try:
        if track_id:
            await controller.select(track_id)
        else:
            await controller.toggle()

        if interactive:
            safe_print("Type 'help' for player commands.", style="dim")
            await run_command_loop(controller, sys.stdin.fileno())
        else:
            while not queue_finished(controller):
                await asyncio.sleep(0.5)
    finally:
        await controller.close()

    return 0


def run_import(config: Config, files: list[str], artist: str, title: Optional[str]) -> int:
    """Copy audio files into the media root and insert them as tracks."""
    from slughouse.domain.library.media import MediaStorage, probe_duration
    from slughouse.domain.library.models import NewTrack
    from slughouse.domain.library.store import create_store

    ensure_directories(config)
    store = create_store(config)
    media = MediaStorage.from_config(config)
    failures = 0

    for name in files:
        path = Path(name).expanduser()
        track_id = uuid.uuid4().hex[:12]
        try:
            stored = media.copy_into(track_id, path)
        except SlughouseError as e:
            print_result(False, f"{path.name}: {e}")
            failures += 1
            continue

        try:
            track = store.insert_track(
                NewTrack(
                    id=track_id,
                    title=title or path.stem,
                    artist=artist,
                    src=media.public_url(stored.relative_path),
                    storage_path=stored.relative_path,
                    duration=probe_duration(stored.absolute_path),
                )
            )
        except SlughouseError as e:
            media.delete(stored.relative_path)
            print_result(False, f"{path.name}: {e}")
            failures += 1
            continue

        print_result(True, f"{track.title} ({track.id})")

    return 1 if failures else 0


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the slughouse command."""
    parser = argparse.ArgumentParser(
        description="Slughouse - personal music library and player",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the web API")
    serve_parser.add_argument("--host", help="Bind address (default from config)")
    serve_parser.add_argument("--port", type=int, help="Port (default from config)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    play_parser = subparsers.add_parser("play", help="Play the library through mpv")
    play_parser.add_argument("--track", help="Start from this track id")
    shuffle_group = play_parser.add_mutually_exclusive_group()
    shuffle_group.add_argument("--shuffle", dest="shuffle", action="store_true", default=None)
    shuffle_group.add_argument("--no-shuffle", dest="shuffle", action="store_false")
    play_parser.add_argument("--repeat", choices=["off", "all", "one"])

    import_parser = subparsers.add_parser("import", help="Add local audio files to the library")
    import_parser.add_argument("files", nargs="+", help="Audio files to import")
    import_parser.add_argument("--artist", default="Unknown Artist")
    import_parser.add_argument("--title", help="Title (default: file name)")

    subparsers.add_parser("init", help="Write a default config.toml")

    args = parser.parse_args(argv)

    if not args.subcommand:
        parser.print_help()
        sys.exit(1)

    if args.subcommand == "init":
        safe_print(f"Config: {write_default_config()}")
        sys.exit(0)

    config = load_config()
    setup_from_config(config.logging)

    if args.subcommand == "serve":
        sys.exit(run_serve(config, args.host, args.port, args.reload))
    elif args.subcommand == "play":
        try:
            interactive = sys.stdin is not None and sys.stdin.isatty()
            sys.exit(
                asyncio.run(
                    play_library(config, args.track, args.shuffle, args.repeat, interactive)
                )
            )
        except KeyboardInterrupt:
            sys.exit(130)
        except SlughouseError as e:
            safe_print(f"Error: {e}", style="red")
            sys.exit(1)
    elif args.subcommand == "import":
        sys.exit(run_import(config, args.files, args.artist, args.title))


if __name__ == "__main__":
    main()
