"""Mock local speaker for testing.

Provides a controllable LocalSpeaker for unit and integration testing.
"""

import asyncio

from ..errors import LocalSpeechError


class MockLocalSpeaker:
    """Mock offline speaker.

    Records spoken texts instead of producing sound.
    """

    def __init__(
        self,
        available: bool = True,
        fail: bool = False,
        duration: float = 0.0,
    ) -> None:
        """Initialize mock speaker.

        Args:
            available: Value reported by ``is_available``
            fail: If True, ``speak`` raises LocalSpeechError
            duration: Seconds each ``speak`` call takes
        """
        self._available = available
        self.fail = fail
        self.duration = duration
        self.spoken: list[tuple[str, float, float]] = []
        self.stop_count = 0

    @property
    def name(self) -> str:
        """Speaker name."""
        return "mock"

    @property
    def is_available(self) -> bool:
        """Return configured availability."""
        return self._available

    @property
    def spoken_texts(self) -> list[str]:
        """Texts passed to ``speak``."""
        return [text for text, _, _ in self.spoken]

    async def speak(self, text: str, rate: float = 1.0, volume: float = 1.0) -> None:
        """Record text and wait ``duration`` seconds."""
        self.spoken.append((text, rate, volume))
        if self.fail:
            raise LocalSpeechError("mock speech failure")
        if self.duration:
            await asyncio.sleep(self.duration)

    async def stop(self) -> None:
        """Record stop."""
        self.stop_count += 1


__all__ = ["MockLocalSpeaker"]
