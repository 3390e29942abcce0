"""Microphone capture using PyAudio.

Provides the AudioCapture implementation used on macOS and Linux.
"""

import logging
import time
from collections.abc import Iterator
from typing import Any

from ...errors import RecognizerError, RecognizerErrorKind
from ..capture import AudioFrame

logger = logging.getLogger(__name__)

# PyAudio import with fallback for type hints
try:
    import pyaudio

    PYAUDIO_AVAILABLE = True
except ImportError:
    PYAUDIO_AVAILABLE = False
    pyaudio = None


class PyAudioCapture:
    """Microphone capture through PortAudio.

    Implements the AudioCapture protocol.
    """

    def __init__(
        self,
        device_name: str = "default",
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_size: int = 1024,
    ) -> None:
        """Initialize PyAudio capture.

        Args:
            device_name: Audio input device name or "default"
            sample_rate: Sample rate in Hz
            channels: Number of channels (1 for mono)
            chunk_size: Frames per buffer

        Raises:
            RuntimeError: If PyAudio is not available
        """
        if not PYAUDIO_AVAILABLE:
            raise RuntimeError("PyAudio not available. Install with: pip install pyaudio")

        self._device_name = device_name
        self._sample_rate = sample_rate
        self._channels = channels
        self._chunk_size = chunk_size
        self._sample_width = 2  # 16-bit audio

        self._pa: Any = None
        self._stream: Any = None
        self._is_active = False
        self._start_time_ms = 0

    def _get_device_index(self) -> int | None:
        """Get device index for configured device name."""
        if self._device_name == "default" or self._pa is None:
            return None

        for i in range(self._pa.get_device_count()):
            info = self._pa.get_device_info_by_index(i)
            if self._device_name.lower() in info["name"].lower() and info["maxInputChannels"] > 0:
                return i

        logger.warning(f"Input device '{self._device_name}' not found, using default")
        return None

    def start(self) -> None:
        """Open the input stream.

        Raises:
            RecognizerError: If the device is missing or access is denied
        """
        if self._is_active:
            return

        self._pa = pyaudio.PyAudio()
        try:
            self._stream = self._pa.open(
                format=pyaudio.paInt16,
                channels=self._channels,
                rate=self._sample_rate,
                input=True,
                input_device_index=self._get_device_index(),
                frames_per_buffer=self._chunk_size,
            )
        except PermissionError as e:
            self._release()
            raise RecognizerError(
                f"Microphone access denied: {e}", RecognizerErrorKind.PERMISSION_DENIED
            ) from e
        except OSError as e:
            self._release()
            raise RecognizerError(
                f"Cannot open input device: {e}", RecognizerErrorKind.DEVICE
            ) from e

        self._is_active = True
        self._start_time_ms = int(time.time() * 1000)

    def stop(self) -> None:
        """Stop capture and release PortAudio."""
        if not self._is_active:
            return

        self._is_active = False
        self._release()

    def _release(self) -> None:
        if self._stream is not None:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None

        if self._pa is not None:
            self._pa.terminate()
            self._pa = None

    def read(self, frames: int) -> AudioFrame:
        """Read audio frames from input."""
        if not self._is_active or self._stream is None:
            raise RuntimeError("Capture not active")

        data = self._stream.read(frames, exception_on_overflow=False)
        timestamp = int(time.time() * 1000) - self._start_time_ms

        return AudioFrame(
            data=data,
            sample_rate=self._sample_rate,
            channels=self._channels,
            sample_width=self._sample_width,
            timestamp_ms=timestamp,
        )

    def stream(self) -> Iterator[AudioFrame]:
        """Yield frame blocks continuously."""
        if not self._is_active:
            self.start()

        while self._is_active:
            yield self.read(self._chunk_size)

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


__all__ = ["PYAUDIO_AVAILABLE", "PyAudioCapture"]
