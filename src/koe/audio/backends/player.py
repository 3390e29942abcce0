"""Playback sinks backed by external media players.

``MpvSink`` feeds mpv through its stdin so audio starts while the download
is still running, and drives volume and speed over mpv's JSON IPC socket.
``FilePlayerSink`` writes a complete payload to a temporary file and plays
it with afplay or ffplay.
"""

import asyncio
import json
import logging
import mimetypes
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path

from ...errors import CapabilityError, PayloadError

logger = logging.getLogger(__name__)

# How long a terminated player may take to exit before it is killed
TERMINATE_TIMEOUT_S = 2.0

CommandBuilder = Callable[[str, float, float], list[str]]


def _afplay_command(path: str, volume: float, rate: float) -> list[str]:
    return ["afplay", "-v", f"{volume:.2f}", "-r", f"{rate:.2f}", "-q", "1", path]


def _ffplay_command(path: str, volume: float, rate: float) -> list[str]:
    return [
        "ffplay",
        "-nodisp",
        "-autoexit",
        "-loglevel",
        "error",
        "-volume",
        str(round(volume * 100)),
        "-af",
        f"atempo={rate:.2f}",
        path,
    ]


FILE_PLAYERS: dict[str, CommandBuilder] = {
    "afplay": _afplay_command,
    "ffplay": _ffplay_command,
}


def suffix_for(content_type: str) -> str:
    """Get a file suffix for an audio media type.

    Args:
        content_type: Media type such as ``audio/mpeg``

    Returns:
        Suffix including the dot, ``.audio`` when unknown
    """
    media_type = content_type.split(";")[0].strip().lower()
    if media_type in ("audio/mpeg", "audio/mp3"):
        return ".mp3"
    return mimetypes.guess_extension(media_type) or ".audio"


class FilePlayerSink:
    """Buffered-only sink that plays a temporary file.

    Implements the PlaybackSink protocol without incremental support.
    Volume and rate changes apply from the next payload on.
    """

    def __init__(self, player: str = "afplay") -> None:
        """Initialize file player sink.

        Args:
            player: Name of a supported player ("afplay" or "ffplay")

        Raises:
            ValueError: If the player is not supported
        """
        if player not in FILE_PLAYERS:
            raise ValueError(f"Unsupported file player: {player}")
        self._init_state(player)

    def _init_state(self, player: str) -> None:
        self._player = player
        self._process: asyncio.subprocess.Process | None = None
        self._workdir: Path | None = None
        self._volume = 1.0
        self._rate = 1.0

    @property
    def supports_incremental(self) -> bool:
        """File players need the complete payload."""
        return False

    @property
    def is_running(self) -> bool:
        """Return True while the player process is alive."""
        return self._process is not None and self._process.returncode is None

    def _make_workdir(self) -> Path:
        if self._workdir is None:
            try:
                self._workdir = Path(tempfile.mkdtemp(prefix="koe-"))
            except OSError as e:
                raise PayloadError(f"Cannot create audio directory: {e}") from e
        return self._workdir

    async def _spawn(self, args: list[str], stdin: int | None = None) -> None:
        logger.debug(f"Starting player: {' '.join(args)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *args,
                stdin=stdin,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise PayloadError(f"Cannot start {args[0]}: {e}") from e

    async def open(self, content_type: str, volume: float, rate: float) -> None:
        """File players cannot play incrementally."""
        raise CapabilityError(f"{self._player} cannot play a stream")

    async def append(self, data: bytes) -> None:
        """File players cannot play incrementally."""
        raise CapabilityError(f"{self._player} cannot play a stream")

    async def end_of_stream(self) -> None:
        """Nothing to flush for file playback."""
        return None

    async def play_whole(self, data: bytes, content_type: str, volume: float, rate: float) -> None:
        """Write the payload to a temporary file and start the player.

        Raises:
            PayloadError: If the file cannot be written or the player started
        """
        self._volume = volume
        self._rate = rate
        try:
            path = self._make_workdir() / f"speech{suffix_for(content_type)}"
            path.write_bytes(data)
        except OSError as e:
            raise PayloadError(f"Cannot write audio for {self._player}: {e}") from e
        await self._spawn(self._file_command(str(path)))

    def _file_command(self, path: str) -> list[str]:
        return FILE_PLAYERS[self._player](path, self._volume, self._rate)

    async def wait_done(self) -> None:
        """Wait for the player to exit.

        Raises:
            PayloadError: If the player exited with an error status
        """
        if self._process is None:
            return
        returncode = await self._process.wait()
        if returncode != 0:
            raise PayloadError(f"{self._player} exited with status {returncode}")

    async def close(self) -> None:
        """Terminate the player and delete temporary files."""
        process = self._process
        if process is not None and process.returncode is None:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=TERMINATE_TIMEOUT_S)
            except TimeoutError:
                logger.warning(f"{self._player} did not exit, killing it")
                process.kill()
                await process.wait()
        self._process = None

        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None

    async def set_volume(self, volume: float) -> None:
        """Store volume for the next payload."""
        self._volume = volume

    async def set_rate(self, rate: float) -> None:
        """Store rate for the next payload."""
        self._rate = rate


class MpvSink(FilePlayerSink):
    """Incremental sink that pipes audio into mpv.

    Writes go to mpv's stdin; ``append`` returns after the pipe has drained
    so the engine never has two writes in flight. Volume and speed are
    changed on the running player through ``--input-ipc-server``.
    """

    def __init__(self, executable: str = "mpv") -> None:
        """Initialize mpv sink.

        Args:
            executable: mpv binary name or path
        """
        self._init_state(executable)
        self._ipc_path: Path | None = None

    @property
    def supports_incremental(self) -> bool:
        """mpv reads from stdin while playing."""
        return True

    def _mpv_command(self, target: str) -> list[str]:
        self._ipc_path = self._make_workdir() / "mpv.sock"
        return [
            self._player,
            "--no-video",
            "--no-terminal",
            "--really-quiet",
            f"--volume={round(self._volume * 100)}",
            f"--speed={self._rate:.2f}",
            f"--input-ipc-server={self._ipc_path}",
            target,
        ]

    def _file_command(self, path: str) -> list[str]:
        return self._mpv_command(path)

    async def open(self, content_type: str, volume: float, rate: float) -> None:
        """Start mpv reading from stdin."""
        self._volume = volume
        self._rate = rate
        await self._spawn(self._mpv_command("-"), stdin=asyncio.subprocess.PIPE)

    async def append(self, data: bytes) -> None:
        """Write a byte range and wait until the pipe has drained.

        Raises:
            PayloadError: If mpv is gone or closed its input
        """
        if self._process is None or self._process.stdin is None:
            raise PayloadError("mpv is not running")
        try:
            self._process.stdin.write(data)
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise PayloadError(f"mpv stopped reading audio: {e}") from e

    async def end_of_stream(self) -> None:
        """Close mpv's stdin so it plays out what is buffered."""
        if self._process is None or self._process.stdin is None:
            return
        stdin = self._process.stdin
        if stdin.is_closing():
            return
        stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise PayloadError(f"mpv stopped reading audio: {e}") from e

    async def set_volume(self, volume: float) -> None:
        """Change volume of the running player."""
        self._volume = volume
        await self._send_command("set_property", "volume", round(volume * 100))

    async def set_rate(self, rate: float) -> None:
        """Change speed of the running player."""
        self._rate = rate
        await self._send_command("set_property", "speed", rate)

    async def _send_command(self, *command: object) -> None:
        if not self.is_running or self._ipc_path is None:
            return
        try:
            _, writer = await asyncio.open_unix_connection(str(self._ipc_path))
        except OSError as e:
            logger.warning(f"mpv control socket unavailable: {e}")
            return
        # mpv may exit between the liveness check and the write
        try:
            writer.write(json.dumps({"command": list(command)}).encode("utf-8") + b"\n")
            await writer.drain()
            writer.close()
            await writer.wait_closed()
        except OSError as e:
            logger.warning(f"mpv control command {command[0]} failed: {e}")
            writer.close()

    async def close(self) -> None:
        """Terminate mpv and delete its socket and temporary files."""
        await super().close()
        self._ipc_path = None


__all__ = [
    "FILE_PLAYERS",
    "FilePlayerSink",
    "MpvSink",
    "suffix_for",
]
