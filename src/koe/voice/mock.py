"""Mock recognizer for testing.

Plays back a script of transcripts and errors.
"""

import asyncio

from ..errors import RecognizerError


class MockRecognizer:
    """Scripted recognizer.

    Each ``result()`` call takes the next scripted item: a string is
    returned, a RecognizerError is raised. With the script empty the call
    waits until more items are queued.
    """

    def __init__(
        self,
        script: list[str | RecognizerError] | None = None,
        start_error: RecognizerError | None = None,
    ) -> None:
        """Initialize mock recognizer.

        Args:
            script: Items returned by successive ``result()`` calls
            start_error: Error raised by every ``start()`` call
        """
        self._script: list[str | RecognizerError] = list(script or [])
        self._queued = asyncio.Event()
        if self._script:
            self._queued.set()
        self.start_error = start_error
        self.start_count = 0
        self.stop_count = 0
        self.is_listening = False

    def queue(self, *items: str | RecognizerError) -> None:
        """Append items to the script."""
        self._script.extend(items)
        self._queued.set()

    async def start(self) -> None:
        """Begin listening, or raise ``start_error``."""
        self.start_count += 1
        if self.start_error is not None:
            raise self.start_error
        self.is_listening = True

    async def result(self) -> str:
        """Return or raise the next scripted item."""
        while not self._script:
            self._queued.clear()
            await self._queued.wait()
        item = self._script.pop(0)
        if isinstance(item, RecognizerError):
            raise item
        return item

    async def stop(self) -> None:
        """Stop listening."""
        self.stop_count += 1
        self.is_listening = False


__all__ = ["MockRecognizer"]
