"""Transcriber protocol and data classes.

Defines the interface for speech-to-text transcription.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass
class TranscriptionResult:
    """Result of speech-to-text transcription.

    Attributes:
        text: Transcribed text
        confidence: Overall confidence score (0.0 to 1.0)
        language: Detected language code (e.g., "ja")
        duration_ms: Duration of audio processed in milliseconds
    """

    text: str
    confidence: float
    language: str
    duration_ms: int


class Transcriber(Protocol):
    """Interface for speech-to-text transcription."""

    def transcribe(self, audio: bytes, sample_rate: int) -> TranscriptionResult:
        """Transcribe audio buffer to text.

        Blocks while the model runs; call it from a worker thread.

        Args:
            audio: Raw PCM audio bytes (16-bit, mono)
            sample_rate: Audio sample rate in Hz

        Returns:
            TranscriptionResult with transcribed text

        Raises:
            RuntimeError: If transcription fails
        """
        ...

    def set_language(self, language: str) -> None:
        """Set expected language for transcription.

        Args:
            language: Language code (e.g., "ja", "en"), or "auto"
        """
        ...


__all__ = ["TranscriptionResult", "Transcriber"]
