"""
Media engine interface and the MPV implementation (JSON IPC over asyncio)

The engine owns the single audio-rendering resource. It reports
metadata-loaded, time-update and ended events to one listener; all
callbacks run on the event loop thread.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Protocol

from loguru import logger

from slughouse.core.errors import PlaybackError

# Seconds to wait for mpv to create its IPC socket
SOCKET_TIMEOUT = 5.0

# Seconds to wait for a command reply
COMMAND_TIMEOUT = 2.0

# observe_property ids
_OBSERVE_DURATION = 1
_OBSERVE_TIME_POS = 2


class EngineListener(Protocol):
    """Receives media engine events."""

    def on_metadata(self, duration: float) -> None: ...
    def on_time_update(self, position: float) -> None: ...
    async def on_ended(self) -> None: ...


class MediaEngine(Protocol):
    """Audio renderer driven by the playback controller."""

    def set_listener(self, listener: EngineListener) -> None: ...
    async def load(self, src: str) -> None: ...
    async def play(self) -> None: ...
    def pause(self) -> None: ...
    def seek(self, seconds: float) -> None: ...
    def set_volume(self, volume: float) -> None: ...
    async def stop(self) -> None: ...
    async def close(self) -> None: ...


def build_mpv_command(socket_path: str, mpv_binary: str = "mpv") -> list[str]:
    """Command line for an idle, audio-only mpv controlled over IPC."""
    return [
        mpv_binary,
        "--idle=yes",
        "--no-video",
        "--no-terminal",
        f"--input-ipc-server={socket_path}",
        "--keep-open=no",
        "--load-scripts=no",
    ]


class MpvEngine:
    """MediaEngine backed by an mpv subprocess.

    Events come from observe_property (duration, time-pos) and end-file;
    only end-file with reason "eof" counts as a natural end.
    """

    def __init__(self, socket_path: Optional[str] = None, mpv_binary: str = "mpv") -> None:
        if socket_path is None:
            socket_path = str(Path(tempfile.gettempdir()) / f"slughouse-mpv-{os.getpid()}")
        self.socket_path = socket_path
        self.mpv_binary = mpv_binary
        self._listener: Optional[EngineListener] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._pending: dict[int, asyncio.Future] = {}
        self._next_request_id = 1
        self._event_tasks: set[asyncio.Task] = set()

    def set_listener(self, listener: EngineListener) -> None:
        self._listener = listener

    @property
    def is_running(self) -> bool:
        return (
            self._process is not None
            and self._process.returncode is None
            and self._writer is not None
            and not self._writer.is_closing()
        )

    async def start(self) -> None:
        """Start mpv and connect to its IPC socket."""
        if self.is_running:
            return

        logger.info(f"Starting MPV player with socket: {self.socket_path}")
        if os.path.exists(self.socket_path):
            logger.debug(f"Removing existing socket: {self.socket_path}")
            os.unlink(self.socket_path)

        try:
            self._process = await asyncio.create_subprocess_exec(
                *build_mpv_command(self.socket_path, self.mpv_binary),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise PlaybackError(f"Failed to start MPV: {e}") from e

        loop = asyncio.get_running_loop()
        deadline = loop.time() + SOCKET_TIMEOUT
        while not os.path.exists(self.socket_path):
            if loop.time() > deadline or self._process.returncode is not None:
                await self._kill()
                raise PlaybackError(f"MPV socket creation timeout after {SOCKET_TIMEOUT}s")
            await asyncio.sleep(0.1)

        try:
            self._reader, self._writer = await asyncio.open_unix_connection(self.socket_path)
        except OSError as e:
            await self._kill()
            raise PlaybackError(f"MPV socket connection failed: {e}") from e

        self._read_task = asyncio.create_task(self._read_loop())
        try:
            await self._command("observe_property", _OBSERVE_DURATION, "duration")
            await self._command("observe_property", _OBSERVE_TIME_POS, "time-pos")
        except PlaybackError:
            logger.error("MPV did not accept property observers, shutting it down")
            await self.close()
            raise
        logger.info("MPV started successfully")

    async def load(self, src: str) -> None:
        """Replace the current file with src, paused at position 0."""
        await self.start()
        await self._command("set_property", "pause", True)
        await self._command("loadfile", src, "replace")
        logger.debug(f"Loaded {src}")

    async def play(self) -> None:
        if not self.is_running:
            raise PlaybackError("MPV is not running")
        await self._command("set_property", "pause", False)

    def pause(self) -> None:
        self._send("set_property", "pause", True)

    def seek(self, seconds: float) -> None:
        self._send("seek", seconds, "absolute")

    def set_volume(self, volume: float) -> None:
        # mpv volume is 0-100
        self._send("set_property", "volume", round(volume * 100))

    async def stop(self) -> None:
        """Stop and release the current file (mpv stays idle)."""
        if self.is_running:
            await self._command("stop")

    async def close(self) -> None:
        """Stop mpv and clean up the socket."""
        if self._read_task is not None:
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
            self._read_task = None

        if self._writer is not None:
            self._writer.close()
            self._writer = None

        await self._kill()

        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError:
                pass

    # IPC plumbing

    def _encode(self, args: tuple, request_id: Optional[int] = None) -> bytes:
        message: dict[str, Any] = {"command": list(args)}
        if request_id is not None:
            message["request_id"] = request_id
        return (json.dumps(message) + "\n").encode("utf-8")

    def _send(self, *args: Any) -> None:
        """Fire-and-forget command (seek, volume, pause)."""
        if not self.is_running:
            logger.debug(f"MPV not running, dropping command {args[0]}")
            return
        self._writer.write(self._encode(args))

    async def _command(self, *args: Any) -> Any:
        """Send a command and wait for its reply.

        Raises:
            PlaybackError: If mpv is gone, times out or reports an error
        """
        if self._writer is None or self._writer.is_closing():
            raise PlaybackError("MPV is not running")

        request_id = self._next_request_id
        self._next_request_id += 1
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            self._writer.write(self._encode(args, request_id))
            await self._writer.drain()
            reply = await asyncio.wait_for(future, timeout=COMMAND_TIMEOUT)
        except (OSError, asyncio.TimeoutError) as e:
            raise PlaybackError(f"MPV command {args[0]} failed: {e}") from e
        finally:
            self._pending.pop(request_id, None)

        if reply.get("error") != "success":
            raise PlaybackError(f"MPV command {args[0]} failed: {reply.get('error')}")
        return reply.get("data")

    async def _read_loop(self) -> None:
        while True:
            line = await self._reader.readline()
            if not line:
                logger.warning("MPV IPC connection closed")
                break
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                continue
            self._dispatch(message)

        for future in self._pending.values():
            if not future.done():
                future.set_exception(PlaybackError("MPV IPC connection closed"))

    def _dispatch(self, message: dict[str, Any]) -> None:
        request_id = message.get("request_id")
        if request_id is not None and "event" not in message:
            future = self._pending.get(request_id)
            if future is not None and not future.done():
                future.set_result(message)
            return

        if self._listener is None:
            return

        event = message.get("event")
        if event == "property-change":
            data = message.get("data")
            if data is None:
                return
            if message.get("id") == _OBSERVE_DURATION:
                self._listener.on_metadata(float(data))
            elif message.get("id") == _OBSERVE_TIME_POS:
                self._listener.on_time_update(float(data))
        elif event == "end-file" and message.get("reason") == "eof":
            # Runs as its own task: auto-advance issues commands whose
            # replies this read loop has to deliver.
            task = asyncio.create_task(self._listener.on_ended())
            self._event_tasks.add(task)
            task.add_done_callback(self._event_tasks.discard)

    async def _kill(self) -> None:
        if self._process is None:
            return
        if self._process.returncode is None:
            try:
                self._process.kill()
                await asyncio.wait_for(self._process.wait(), timeout=2.0)
            except (ProcessLookupError, asyncio.TimeoutError):
                pass  # Process already terminated or couldn't be killed
        self._process = None
