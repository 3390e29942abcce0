"""Audio capture protocol and data classes.

Defines the interface for microphone input that the speech recognizer
reads from.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Protocol


@dataclass
class AudioFrame:
    """Block of captured PCM audio.

    Attributes:
        data: Raw PCM audio bytes
        sample_rate: Sample rate in Hz (e.g., 16000)
        channels: Number of audio channels (1=mono, 2=stereo)
        sample_width: Bytes per sample (2 for 16-bit audio)
        timestamp_ms: Milliseconds since capture started
    """

    data: bytes
    sample_rate: int
    channels: int
    sample_width: int
    timestamp_ms: int

    @property
    def duration_ms(self) -> float:
        """Calculate duration of this frame block in milliseconds."""
        if self.sample_rate == 0 or self.sample_width == 0 or self.channels == 0:
            return 0.0
        num_samples = len(self.data) / (self.sample_width * self.channels)
        return (num_samples / self.sample_rate) * 1000


class AudioCapture(Protocol):
    """Interface for microphone capture.

    Calls block; the recognizer runs them in a worker thread.
    """

    def start(self) -> None:
        """Open the input device and begin capturing.

        Raises:
            RecognizerError: If the device cannot be opened
        """
        ...

    def stop(self) -> None:
        """Stop capturing and release the device.

        Safe to call even if not currently capturing.
        """
        ...

    def read(self, frames: int) -> AudioFrame:
        """Read the given number of frames.

        Raises:
            RuntimeError: If not currently capturing
        """
        ...

    def stream(self) -> Iterator[AudioFrame]:
        """Yield frame blocks until capture stops."""
        ...

    @property
    def is_active(self) -> bool:
        """Return True if capture is currently active."""
        ...

    @property
    def sample_rate(self) -> int:
        """Get the configured sample rate in Hz."""
        ...

    @property
    def chunk_size(self) -> int:
        """Get the number of frames read per block."""
        ...


__all__ = ["AudioCapture", "AudioFrame"]
