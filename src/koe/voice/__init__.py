"""Voice input for Koe.

Recognizers turn speech into text; the capture loop keeps one listening
and pauses it around playback.
"""

from typing import TYPE_CHECKING

from .capture_loop import CaptureMode, CaptureSession, CaptureState, VoiceCaptureLoop
from .recognizer import Recognizer, WhisperRecognizer, calculate_energy

if TYPE_CHECKING:
    from ..config import CaptureConfig, STTConfig


def create_recognizer(
    capture_config: "CaptureConfig | None" = None,
    stt_config: "STTConfig | None" = None,
    use_mock: bool = False,
) -> Recognizer:
    """Create a speech recognizer.

    Args:
        capture_config: Microphone and endpointing configuration
        stt_config: Speech-to-text configuration
        use_mock: If True, return mock implementation for testing

    Returns:
        Recognizer implementation

    Raises:
        RuntimeError: If PyAudio or faster-whisper is not installed
    """
    if use_mock:
        from .mock import MockRecognizer

        return MockRecognizer()

    from ..audio import create_audio_capture
    from ..stt import create_transcriber

    capture = create_audio_capture(capture_config)
    transcriber = create_transcriber(stt_config)
    if capture_config is None:
        return WhisperRecognizer(capture, transcriber)

    return WhisperRecognizer(
        capture,
        transcriber,
        energy_threshold=capture_config.energy_threshold,
        silence_timeout_ms=capture_config.silence_timeout_ms,
        no_speech_timeout_s=capture_config.no_speech_timeout_s,
    )


__all__ = [
    "CaptureMode",
    "CaptureSession",
    "CaptureState",
    "Recognizer",
    "VoiceCaptureLoop",
    "WhisperRecognizer",
    "calculate_energy",
    "create_recognizer",
]
