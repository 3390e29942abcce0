"""Speech-to-text module for Koe.

Provides transcription using faster-whisper or a mock implementation.
"""

from typing import TYPE_CHECKING

from .mock import MockTranscriber
from .transcriber import TranscriptionResult, Transcriber

if TYPE_CHECKING:
    from ..config import STTConfig


def create_transcriber(
    config: "STTConfig | None" = None,
    use_mock: bool = False,
) -> Transcriber:
    """Create a transcriber instance.

    Args:
        config: STT configuration
        use_mock: If True, return mock implementation for testing

    Returns:
        Transcriber implementation

    Raises:
        RuntimeError: If faster-whisper is not installed
    """
    if use_mock:
        return MockTranscriber()

    from .whisper import WhisperTranscriber

    if config is None:
        return WhisperTranscriber()

    return WhisperTranscriber(
        model_size=config.model,
        device=config.device,
        compute_type=config.compute_type,
        language=config.language,
    )


__all__ = [
    "MockTranscriber",
    "TranscriptionResult",
    "Transcriber",
    "create_transcriber",
]
