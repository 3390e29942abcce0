"""Speech recognizer over microphone capture and Whisper.

A recognizer turns one spoken utterance into text. Speech is detected with
an RMS energy threshold; the utterance ends after a stretch of quiet.
"""

import asyncio
import logging
import struct
from typing import Protocol

from ..audio.capture import AudioCapture, AudioFrame
from ..errors import RecognizerError, RecognizerErrorKind
from ..stt.transcriber import Transcriber

logger = logging.getLogger(__name__)

ENERGY_THRESHOLD: float = 500.0  # RMS energy that counts as speech
SILENCE_TIMEOUT_MS: int = 1200  # Quiet that ends an utterance
NO_SPEECH_TIMEOUT_S: float = 8.0  # Wait for speech before giving up
MAX_UTTERANCE_S: float = 30.0


class Recognizer(Protocol):
    """Interface for speech recognition used by the voice capture loop."""

    async def start(self) -> None:
        """Begin listening.

        Raises:
            RecognizerError: If the microphone cannot be used
        """
        ...

    async def result(self) -> str:
        """Wait for the next finalized transcript.

        Raises:
            RecognizerError: With kind NO_SPEECH when nothing was said, or
                another kind when recognition failed
        """
        ...

    async def stop(self) -> None:
        """Stop listening. Safe to call when not listening."""
        ...


def calculate_energy(audio_data: bytes) -> float:
    """Calculate RMS energy of audio data.

    Args:
        audio_data: Raw PCM audio bytes (16-bit, mono)

    Returns:
        RMS energy value
    """
    num_samples = len(audio_data) // 2
    if num_samples == 0:
        return 0.0

    try:
        samples = struct.unpack(f"<{num_samples}h", audio_data[: num_samples * 2])
    except struct.error:
        return 0.0

    sum_squares = sum(s * s for s in samples)
    return float((sum_squares / num_samples) ** 0.5)


class WhisperRecognizer:
    """Energy-endpointed recognizer using faster-whisper.

    Device reads and transcription run in worker threads so the event loop
    keeps serving playback.
    """

    def __init__(
        self,
        capture: AudioCapture,
        transcriber: Transcriber,
        energy_threshold: float = ENERGY_THRESHOLD,
        silence_timeout_ms: int = SILENCE_TIMEOUT_MS,
        no_speech_timeout_s: float = NO_SPEECH_TIMEOUT_S,
        max_utterance_s: float = MAX_UTTERANCE_S,
    ) -> None:
        """Initialize recognizer.

        Args:
            capture: Microphone capture
            transcriber: Speech-to-text engine
            energy_threshold: RMS energy above which audio counts as speech
            silence_timeout_ms: Quiet after speech that ends the utterance
            no_speech_timeout_s: How long to wait for speech to begin
            max_utterance_s: Longest utterance before it is cut off
        """
        self._capture = capture
        self._transcriber = transcriber
        self._energy_threshold = energy_threshold
        self._silence_timeout_ms = silence_timeout_ms
        self._no_speech_timeout_ms = no_speech_timeout_s * 1000
        self._max_utterance_ms = max_utterance_s * 1000
        self._pending_read: asyncio.Future[AudioFrame] | None = None

    @property
    def is_listening(self) -> bool:
        """Return True while the microphone is open."""
        return self._capture.is_active

    async def start(self) -> None:
        """Open the microphone.

        Raises:
            RecognizerError: If the device cannot be opened
        """
        try:
            await asyncio.to_thread(self._capture.start)
        except RecognizerError:
            raise
        except (OSError, RuntimeError) as e:
            raise RecognizerError(f"Microphone unavailable: {e}", RecognizerErrorKind.DEVICE) from e
        logger.debug("Recognizer listening")

    async def stop(self) -> None:
        """Close the microphone once any in-flight read has returned."""
        pending = self._pending_read
        if pending is not None and not pending.done():
            await asyncio.wait({pending})
        if pending is not None and pending.done() and not pending.cancelled():
            # Mark the result retrieved; the reader that wanted it is gone
            pending.exception()
        self._pending_read = None
        await asyncio.to_thread(self._capture.stop)
        logger.debug("Recognizer stopped")

    async def _read(self) -> AudioFrame:
        future = asyncio.ensure_future(
            asyncio.to_thread(self._capture.read, self._capture.chunk_size)
        )
        self._pending_read = future
        try:
            return await asyncio.shield(future)
        except (OSError, RuntimeError) as e:
            raise RecognizerError(f"Microphone read failed: {e}", RecognizerErrorKind.DEVICE) from e

    async def result(self) -> str:
        """Record one utterance and transcribe it.

        Returns:
            Finalized transcript

        Raises:
            RecognizerError: NO_SPEECH if nothing was said in time or the
                transcript is empty, DEVICE on read failure, OTHER when
                transcription fails
        """
        frames: list[bytes] = []
        waited_ms = 0.0
        speech_ms = 0.0
        silence_ms = 0.0
        sample_rate = self._capture.sample_rate

        while True:
            frame = await self._read()
            sample_rate = frame.sample_rate
            energy = calculate_energy(frame.data)

            if not frames:
                if energy < self._energy_threshold:
                    waited_ms += frame.duration_ms
                    if waited_ms >= self._no_speech_timeout_ms:
                        raise RecognizerError("No speech detected", RecognizerErrorKind.NO_SPEECH)
                    continue
                logger.debug(f"Speech started (energy={energy:.0f})")

            frames.append(frame.data)
            speech_ms += frame.duration_ms
            if energy < self._energy_threshold:
                silence_ms += frame.duration_ms
                if silence_ms >= self._silence_timeout_ms:
                    break
            else:
                silence_ms = 0.0
            if speech_ms >= self._max_utterance_ms:
                logger.info("Utterance reached maximum length")
                break

        audio = b"".join(frames)
        try:
            transcription = await asyncio.to_thread(self._transcriber.transcribe, audio, sample_rate)
        except RuntimeError as e:
            raise RecognizerError(f"Transcription failed: {e}", RecognizerErrorKind.OTHER) from e

        text = transcription.text.strip()
        if not text:
            raise RecognizerError("Nothing recognized", RecognizerErrorKind.NO_SPEECH)
        logger.info(f"Recognized: '{text}'")
        return text


__all__ = [
    "ENERGY_THRESHOLD",
    "Recognizer",
    "WhisperRecognizer",
    "calculate_energy",
]
