"""Voice capture loop.

Keeps a recognizer listening for utterances and gets it out of the way
while speech is playing, so the assistant never transcribes itself.

Playback state arrives from the PlaybackStateNotifier. When a session
becomes active the loop stops listening at once; when playback returns to
idle it waits a settle delay and resumes. A new session starting during
the settle delay cancels the pending resume.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ..errors import RecognizerError
from ..playback.notifier import PlaybackStateNotifier, StateChange
from ..playback.session import PlaybackState
from .recognizer import Recognizer

logger = logging.getLogger(__name__)

SETTLE_DELAY_S = 2.0
NO_SPEECH_RETRY_S = 1.0


class CaptureState(Enum):
    """Voice capture states."""

    IDLE = "idle"
    LISTENING = "listening"
    SUSPENDED_FOR_PLAYBACK = "suspended-for-playback"
    ERROR = "error"


class CaptureMode(Enum):
    """Whether listening continues after an utterance."""

    SINGLE_SHOT = "single-shot"
    CONTINUOUS = "continuous"


@dataclass
class CaptureSession:
    """State of voice input for the application lifetime."""

    mode: CaptureMode
    state: CaptureState = CaptureState.IDLE
    utterances: int = 0
    last_error: RecognizerError | None = None


UtteranceHandler = Callable[[str], None]


class VoiceCaptureLoop:
    """Drives a recognizer around playback."""

    def __init__(
        self,
        recognizer: Recognizer,
        notifier: PlaybackStateNotifier,
        on_utterance: UtteranceHandler,
        mode: CaptureMode = CaptureMode.CONTINUOUS,
        settle_delay_s: float = SETTLE_DELAY_S,
        no_speech_retry_s: float = NO_SPEECH_RETRY_S,
    ) -> None:
        """Initialize capture loop.

        Args:
            recognizer: Speech recognizer
            notifier: Source of playback state changes; also receives
                persistent errors from the recognizer
            on_utterance: Called with each finalized transcript
            mode: Single-shot or continuous listening
            settle_delay_s: Wait after playback before listening again
            no_speech_retry_s: Wait before restarting after silence
        """
        self._recognizer = recognizer
        self._notifier = notifier
        self._on_utterance = on_utterance
        self._settle_delay_s = settle_delay_s
        self._no_speech_retry_s = no_speech_retry_s
        self._session = CaptureSession(mode=mode)
        self._playback_active = False
        self._listen_task: asyncio.Task[None] | None = None
        self._resume_task: asyncio.Task[None] | None = None
        notifier.subscribe_state(self._on_playback_state)

    @property
    def session(self) -> CaptureSession:
        """Capture session state."""
        return self._session

    @property
    def state(self) -> CaptureState:
        """Current capture state."""
        return self._session.state

    @property
    def mode(self) -> CaptureMode:
        """Current capture mode."""
        return self._session.mode

    @property
    def resume_pending(self) -> bool:
        """Return True while waiting out the settle delay."""
        return self._resume_task is not None and not self._resume_task.done()

    def set_mode(self, mode: CaptureMode) -> None:
        """Switch between single-shot and continuous listening."""
        self._session.mode = mode
        logger.info(f"Voice capture mode: {mode.value}")

    async def start(self) -> None:
        """Start listening.

        Clears a previous error. While playback is active the loop starts
        suspended and begins listening after playback.
        """
        if self._session.state in (CaptureState.LISTENING, CaptureState.SUSPENDED_FOR_PLAYBACK):
            return
        self._session.last_error = None
        if self._playback_active:
            self._set_state(CaptureState.SUSPENDED_FOR_PLAYBACK)
            return
        self._begin_listening()

    async def stop(self) -> None:
        """Stop listening and cancel any pending resume."""
        self._cancel_resume()
        task = self._listen_task
        self._listen_task = None
        if self._session.state != CaptureState.ERROR:
            self._set_state(CaptureState.IDLE)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

    def _set_state(self, state: CaptureState) -> None:
        if self._session.state != state:
            logger.debug(f"Voice capture: {self._session.state.value} -> {state.value}")
            self._session.state = state

    def _begin_listening(self) -> None:
        self._set_state(CaptureState.LISTENING)
        previous = self._listen_task
        self._listen_task = asyncio.create_task(self._listen(previous))

    def _cancel_resume(self) -> None:
        if self._resume_task is not None and not self._resume_task.done():
            logger.debug("Pending voice capture resume cancelled")
            self._resume_task.cancel()
        self._resume_task = None

    def _on_playback_state(self, change: StateChange) -> None:
        if change.current.is_active:
            self._playback_active = True
            self._cancel_resume()
            if self._session.state == CaptureState.LISTENING:
                self._set_state(CaptureState.SUSPENDED_FOR_PLAYBACK)
                if self._listen_task is not None and not self._listen_task.done():
                    self._listen_task.cancel()
        elif change.current == PlaybackState.IDLE:
            self._playback_active = False
            if self._session.state == CaptureState.SUSPENDED_FOR_PLAYBACK and not self.resume_pending:
                self._resume_task = asyncio.create_task(self._resume_after_settle())

    async def _resume_after_settle(self) -> None:
        await asyncio.sleep(self._settle_delay_s)
        if self._session.state == CaptureState.SUSPENDED_FOR_PLAYBACK and not self._playback_active:
            logger.debug("Playback settled, resuming voice capture")
            self._begin_listening()

    async def _listen(self, previous: asyncio.Task[None] | None) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})

        while self._session.state == CaptureState.LISTENING:
            try:
                await self._recognizer.start()
                try:
                    text = await self._recognizer.result()
                finally:
                    await self._recognizer.stop()
            except RecognizerError as e:
                if not e.is_transient:
                    self._fail(e)
                    return
                logger.debug(f"No speech, retrying in {self._no_speech_retry_s}s")
                if self._session.mode == CaptureMode.SINGLE_SHOT:
                    self._set_state(CaptureState.IDLE)
                    return
                await asyncio.sleep(self._no_speech_retry_s)
                continue

            self._session.utterances += 1
            self._on_utterance(text)
            if self._session.mode == CaptureMode.SINGLE_SHOT:
                self._set_state(CaptureState.IDLE)
                return

    def _fail(self, error: RecognizerError) -> None:
        self._session.last_error = error
        self._set_state(CaptureState.ERROR)
        self._notifier.error(f"Voice input stopped ({error.kind.value}): {error}")


__all__ = [
    "CaptureMode",
    "CaptureSession",
    "CaptureState",
    "NO_SPEECH_RETRY_S",
    "SETTLE_DELAY_S",
    "VoiceCaptureLoop",
]
