"""Faster-whisper transcriber implementation.

Uses faster-whisper (CTranslate2) for efficient speech-to-text on CPU/GPU.
"""

import logging
import time
from pathlib import Path
from typing import Any

import numpy as np

from .transcriber import TranscriptionResult

# faster-whisper import with fallback
try:
    from faster_whisper import WhisperModel

    FASTER_WHISPER_AVAILABLE = True
except ImportError:
    FASTER_WHISPER_AVAILABLE = False
    WhisperModel = None  # type: ignore

logger = logging.getLogger(__name__)

WHISPER_SAMPLE_RATE = 16000

# Languages written without spaces between segments
UNSPACED_LANGUAGES = frozenset({"ja", "zh"})


class WhisperTranscriber:
    """Speech-to-text transcriber using faster-whisper.

    The model is loaded lazily on first use.
    """

    def __init__(
        self,
        model_size: str = "small",
        device: str = "cpu",
        compute_type: str = "int8",
        language: str = "ja",
        model_path: Path | None = None,
    ) -> None:
        """Initialize Whisper transcriber.

        Args:
            model_size: Whisper model size (tiny, base, small, medium, ...)
            device: Device to run on ("cpu", "cuda", "auto")
            compute_type: Computation type ("float16", "int8", "float32")
            language: Expected language code, or "auto"
            model_path: Optional path to pre-downloaded model

        Raises:
            RuntimeError: If faster-whisper is not available
        """
        if not FASTER_WHISPER_AVAILABLE:
            raise RuntimeError(
                "faster-whisper not available. Install with: pip install faster-whisper"
            )

        self._model_size = model_size
        self._device = device
        self._compute_type = compute_type
        self._model_path = model_path
        self._model: Any = None
        self._language = language

    def _ensure_model_loaded(self) -> None:
        """Load model if not already loaded."""
        if self._model is not None:
            return

        logger.info(
            f"Loading Whisper model: {self._model_size} "
            f"(device={self._device}, compute={self._compute_type})"
        )
        start = time.time()

        source = self._model_size
        if self._model_path and self._model_path.exists():
            source = str(self._model_path)
        self._model = WhisperModel(source, device=self._device, compute_type=self._compute_type)

        logger.info(f"Whisper model loaded in {(time.time() - start) * 1000:.0f}ms")

    def transcribe(self, audio: bytes, sample_rate: int) -> TranscriptionResult:
        """Transcribe audio to text.

        Args:
            audio: Raw PCM audio bytes (16-bit, mono)
            sample_rate: Audio sample rate (resampled to 16000 if different)

        Returns:
            TranscriptionResult with transcribed text
        """
        self._ensure_model_loaded()
        start_time = time.time()

        audio_array = np.frombuffer(audio, dtype=np.int16).astype(np.float32) / 32768.0

        if sample_rate != WHISPER_SAMPLE_RATE:
            # Nearest-sample resampling is enough for speech recognition
            new_length = int(len(audio_array) * WHISPER_SAMPLE_RATE / sample_rate)
            indices = np.linspace(0, len(audio_array) - 1, new_length).astype(int)
            audio_array = audio_array[indices]

        segments, info = self._model.transcribe(
            audio_array,
            language=self._language if self._language != "auto" else None,
            beam_size=1,
            vad_filter=True,
        )

        language = info.language if info else self._language
        separator = "" if language in UNSPACED_LANGUAGES else " "
        text = separator.join(segment.text.strip() for segment in segments).strip()

        duration_ms = int(len(audio) / (sample_rate * 2) * 1000)
        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Transcribed {duration_ms}ms audio in {latency_ms}ms: '{text[:50]}'")

        return TranscriptionResult(
            text=text,
            confidence=info.language_probability if info else 0.9,
            language=language,
            duration_ms=duration_ms,
        )

    def set_language(self, language: str) -> None:
        """Set language for transcription."""
        self._language = language

    @property
    def model_size(self) -> str:
        """Get model size."""
        return self._model_size

    @property
    def is_loaded(self) -> bool:
        """Check if model is loaded."""
        return self._model is not None


__all__ = ["FASTER_WHISPER_AVAILABLE", "WhisperTranscriber"]
