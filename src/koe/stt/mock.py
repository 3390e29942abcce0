"""Mock transcriber for testing.

Provides a controllable mock implementation for unit and integration testing.
"""

from .transcriber import TranscriptionResult


class MockTranscriber:
    """Mock transcriber for testing.

    Returns preset responses, one per call, for predictable testing.
    """

    def __init__(self) -> None:
        """Initialize mock transcriber."""
        self._language: str = "ja"
        self._responses: list[str] = []
        self._default_text: str = ""
        self._call_count: int = 0
        self._error_message: str | None = None
        self.received_audio: list[bytes] = []

    def set_response(self, text: str) -> None:
        """Set the text returned by every following transcription."""
        self._default_text = text
        self._error_message = None

    def queue_responses(self, *texts: str) -> None:
        """Queue texts returned by the next calls, in order."""
        self._responses.extend(texts)

    def set_error(self, message: str) -> None:
        """Raise RuntimeError with this message on the next transcription."""
        self._error_message = message

    def transcribe(self, audio: bytes, sample_rate: int) -> TranscriptionResult:
        """Return preset transcription result."""
        self._call_count += 1
        self.received_audio.append(audio)

        if self._error_message:
            raise RuntimeError(self._error_message)

        text = self._responses.pop(0) if self._responses else self._default_text
        return TranscriptionResult(
            text=text,
            confidence=0.95,
            language=self._language,
            duration_ms=int(len(audio) / (sample_rate * 2) * 1000),
        )

    def set_language(self, language: str) -> None:
        """Set language."""
        self._language = language

    @property
    def language(self) -> str:
        """Get current language setting."""
        return self._language

    @property
    def call_count(self) -> int:
        """Get number of transcribe calls."""
        return self._call_count


__all__ = ["MockTranscriber"]
