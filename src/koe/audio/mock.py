"""Mock audio devices for testing.

Provides in-memory implementations of AudioCapture and PlaybackSink that
can be used without audio hardware or external players.
"""

import asyncio
import time
import wave
from collections.abc import Iterator
from pathlib import Path

from ..errors import CapabilityError, PayloadError, RecognizerError
from .capture import AudioFrame


class MockAudioCapture:
    """Mock microphone capture.

    Can simulate capture from:
    - Silence (generates zeroed frames)
    - WAV files (plays back pre-recorded audio)
    - Custom audio data (for programmatic testing)

    Implements the AudioCapture protocol.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        sample_width: int = 2,
        chunk_size: int = 1024,
    ) -> None:
        """Initialize mock capture.

        Args:
            sample_rate: Sample rate in Hz
            channels: Number of audio channels
            sample_width: Bytes per sample
            chunk_size: Frames per block when streaming
        """
        self._sample_rate = sample_rate
        self._channels = channels
        self._sample_width = sample_width
        self._chunk_size = chunk_size
        self._is_active = False
        self._audio_source: bytes | None = None
        self._source_position = 0
        self._start_time_ms = 0
        self.start_error: RecognizerError | None = None
        self.start_count = 0

    def set_audio_file(self, path: Path | str) -> None:
        """Load audio from a WAV file.

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format doesn't match configuration
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")

        with wave.open(str(path), "rb") as wf:
            if wf.getsampwidth() != self._sample_width:
                raise ValueError(
                    f"Sample width mismatch: file={wf.getsampwidth()}, "
                    f"expected={self._sample_width}"
                )
            if wf.getframerate() != self._sample_rate:
                raise ValueError(
                    f"Sample rate mismatch: file={wf.getframerate()}, expected={self._sample_rate}"
                )
            self._audio_source = wf.readframes(wf.getnframes())
            self._source_position = 0

    def set_audio_data(self, data: bytes) -> None:
        """Set raw PCM data returned by subsequent reads."""
        self._audio_source = data
        self._source_position = 0

    def start(self) -> None:
        """Start mock capture, raising ``start_error`` if one is set."""
        self.start_count += 1
        if self.start_error is not None:
            raise self.start_error
        self._is_active = True
        self._source_position = 0
        self._start_time_ms = int(time.time() * 1000)

    def stop(self) -> None:
        """Stop mock capture."""
        self._is_active = False

    def read(self, frames: int) -> AudioFrame:
        """Read frames from the source, or silence once it is exhausted."""
        if not self._is_active:
            raise RuntimeError("Capture not active")

        bytes_needed = frames * self._sample_width * self._channels
        timestamp = int(time.time() * 1000) - self._start_time_ms

        data = bytes(bytes_needed)
        if self._audio_source is not None:
            available = len(self._audio_source) - self._source_position
            bytes_to_read = min(bytes_needed, available)
            if bytes_to_read > 0:
                data = self._audio_source[
                    self._source_position : self._source_position + bytes_to_read
                ]
                self._source_position += bytes_to_read

        return AudioFrame(
            data=data,
            sample_rate=self._sample_rate,
            channels=self._channels,
            sample_width=self._sample_width,
            timestamp_ms=timestamp,
        )

    def stream(self) -> Iterator[AudioFrame]:
        """Yield frame blocks until the source is exhausted."""
        if not self._is_active:
            self.start()

        while self._is_active:
            yield self.read(self._chunk_size)
            if self._audio_source is not None and self._source_position >= len(self._audio_source):
                break

    @property
    def is_active(self) -> bool:
        """Return True if capture is active."""
        return self._is_active

    @property
    def sample_rate(self) -> int:
        """Get sample rate."""
        return self._sample_rate

    @property
    def chunk_size(self) -> int:
        """Get frames per block."""
        return self._chunk_size


class MockPlaybackSink:
    """Mock playback sink.

    Records everything the engine does with it for later verification.
    Implements the PlaybackSink protocol.
    """

    def __init__(
        self,
        incremental: bool = True,
        append_delay: float = 0.0,
        hold_playback: bool = False,
        fail_on_append: int | None = None,
        fail_on_wait: bool = False,
    ) -> None:
        """Initialize mock sink.

        Args:
            incremental: Whether ``append`` is supported
            append_delay: Seconds each append takes before the sink is ready
            hold_playback: If True, ``wait_done`` blocks until ``finish()``
            fail_on_append: Zero-based append index that raises PayloadError
            fail_on_wait: If True, ``wait_done`` raises PayloadError
        """
        self._incremental = incremental
        self.append_delay = append_delay
        self.fail_on_append = fail_on_append
        self.fail_on_wait = fail_on_wait
        self._finished = asyncio.Event()
        if not hold_playback:
            self._finished.set()

        self.calls: list[str] = []
        self.appended: list[bytes] = []
        self.whole_payload: bytes | None = None
        self.content_type: str | None = None
        self.volume: float | None = None
        self.rate: float | None = None
        self.volume_changes: list[float] = []
        self.rate_changes: list[float] = []
        self.close_count = 0
        self.max_concurrent_appends = 0
        self._appends_in_flight = 0

    @property
    def supports_incremental(self) -> bool:
        """Return configured incremental support."""
        return self._incremental

    @property
    def is_closed(self) -> bool:
        """Return True once ``close`` has been called."""
        return self.close_count > 0

    @property
    def received(self) -> bytes:
        """All appended bytes joined in the order they were applied."""
        return b"".join(self.appended)

    def finish(self) -> None:
        """Let a held playback complete."""
        self._finished.set()

    async def open(self, content_type: str, volume: float, rate: float) -> None:
        """Record incremental open."""
        if not self._incremental:
            raise CapabilityError("mock sink is buffered only")
        self.calls.append("open")
        self.content_type = content_type
        self.volume = volume
        self.rate = rate

    async def append(self, data: bytes) -> None:
        """Record a byte range, optionally simulating a slow sink."""
        if not self._incremental:
            raise CapabilityError("mock sink is buffered only")
        index = len(self.appended)
        self._appends_in_flight += 1
        self.max_concurrent_appends = max(self.max_concurrent_appends, self._appends_in_flight)
        try:
            self.calls.append("append")
            if self.fail_on_append == index:
                raise PayloadError("mock decode failure")
            if self.append_delay:
                await asyncio.sleep(self.append_delay)
            self.appended.append(data)
        finally:
            self._appends_in_flight -= 1

    async def end_of_stream(self) -> None:
        """Record end of stream."""
        self.calls.append("end_of_stream")

    async def play_whole(self, data: bytes, content_type: str, volume: float, rate: float) -> None:
        """Record a complete payload."""
        self.calls.append("play_whole")
        self.whole_payload = data
        self.content_type = content_type
        self.volume = volume
        self.rate = rate

    async def wait_done(self) -> None:
        """Wait for ``finish()`` when playback is held."""
        self.calls.append("wait_done")
        await self._finished.wait()
        if self.fail_on_wait:
            raise PayloadError("mock playback failure")

    async def close(self) -> None:
        """Record resource release."""
        self.calls.append("close")
        self.close_count += 1

    async def set_volume(self, volume: float) -> None:
        """Record a live volume change."""
        self.volume = volume
        self.volume_changes.append(volume)

    async def set_rate(self, rate: float) -> None:
        """Record a live rate change."""
        self.rate = rate
        self.rate_changes.append(rate)


__all__ = ["MockAudioCapture", "MockPlaybackSink"]
