"""Playback sink protocol.

A sink turns encoded audio (mp3, wav, ...) into sound. Sinks that support
incremental playback accept byte ranges while the download is still
running; every sink can play a complete payload.
"""

from typing import Protocol


class PlaybackSink(Protocol):
    """Interface for audio output used by the playback engine.

    A sink instance plays at most one payload at a time. The engine calls
    either ``open``/``append``/``end_of_stream`` (incremental) or
    ``play_whole`` (buffered), then ``wait_done`` and finally ``close``.
    """

    @property
    def supports_incremental(self) -> bool:
        """Return True if ``append`` can be used."""
        ...

    async def open(self, content_type: str, volume: float, rate: float) -> None:
        """Prepare incremental playback of the given media type.

        Raises:
            CapabilityError: If the sink cannot play incrementally
            PayloadError: If the output cannot be started
        """
        ...

    async def append(self, data: bytes) -> None:
        """Append a byte range.

        Returns once the sink is ready to accept the next range. Callers
        must not call ``append`` again before the previous call returned.

        Raises:
            PayloadError: If the output rejected the data
        """
        ...

    async def end_of_stream(self) -> None:
        """Signal that no more data will be appended."""
        ...

    async def play_whole(self, data: bytes, content_type: str, volume: float, rate: float) -> None:
        """Start playing a complete payload.

        Raises:
            PayloadError: If the output cannot be started
        """
        ...

    async def wait_done(self) -> None:
        """Wait until audible output has finished.

        Raises:
            PayloadError: If the audio could not be decoded
        """
        ...

    async def close(self) -> None:
        """Stop output and release every resource.

        Safe to call repeatedly.
        """
        ...

    async def set_volume(self, volume: float) -> None:
        """Change volume (0.0-1.0) of the current output."""
        ...

    async def set_rate(self, rate: float) -> None:
        """Change playback speed of the current output."""
        ...


__all__ = ["PlaybackSink"]
