"""Streaming playback engine.

Plays synthesized speech while it downloads. Byte ranges from the relay are
appended to a playback sink in arrival order with at most one append in
flight; audible output starts after the first accepted append. When the
machine cannot play incrementally the whole payload is fetched first.

The engine owns every PlaybackSession. Starting a session stops and
releases the previous one first, so at most one session is ever active.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from ..audio.sink import PlaybackSink
from ..errors import CapabilityError, KoeError, LocalSpeechError, PayloadError, ValidationError
from ..tts.local import LocalSpeaker
from ..tts.request import SpeechRequestClient, SynthesisRequest
from .notifier import PlaybackStateNotifier, StateChange
from .session import (
    PlaybackFailure,
    PlaybackOutcome,
    PlaybackSession,
    PlaybackState,
    SourceKind,
    clamp_rate,
    clamp_volume,
)

logger = logging.getLogger(__name__)

# Payloads smaller than this are provider failures, never played
MIN_AUDIO_BYTES = 1000

SinkFactory = Callable[[], PlaybackSink]
SessionBody = Callable[[PlaybackSession], Coroutine[Any, Any, PlaybackOutcome]]


class StreamingPlaybackEngine:
    """Plays speech from the relay or the local speaker, one session at a time."""

    def __init__(
        self,
        client: SpeechRequestClient,
        sink_factory: SinkFactory,
        notifier: PlaybackStateNotifier | None = None,
        speaker: LocalSpeaker | None = None,
        streaming_capable: bool = True,
        min_audio_bytes: int = MIN_AUDIO_BYTES,
        volume: float = 1.0,
        rate: float = 1.0,
    ) -> None:
        """Initialize playback engine.

        Args:
            client: Speech request client for the relay
            sink_factory: Creates a fresh sink for each session
            notifier: Receives state transitions (a private one if None)
            speaker: Offline speaker used by ``play_local``
            streaming_capable: Whether incremental playback is possible,
                resolved once at startup
            min_audio_bytes: Smallest payload accepted as valid audio
            volume: Initial volume (0.0-1.0)
            rate: Initial playback rate (0.5-2.0)
        """
        self._client = client
        self._sink_factory = sink_factory
        self._notifier = notifier or PlaybackStateNotifier()
        self._speaker = speaker
        self._streaming_capable = streaming_capable
        self._min_audio_bytes = min_audio_bytes
        self._volume = clamp_volume(volume)
        self._rate = clamp_rate(rate)

        self._session: PlaybackSession | None = None
        self._sink: PlaybackSink | None = None
        self._task: asyncio.Task[PlaybackOutcome] | None = None
        self._append_lock = asyncio.Lock()
        # Held from stopping the previous session until the next one is registered
        self._start_lock = asyncio.Lock()

    @property
    def state(self) -> PlaybackState:
        """State of the active session, IDLE when there is none."""
        if self._session is None:
            return PlaybackState.IDLE
        return self._session.state

    @property
    def session(self) -> PlaybackSession | None:
        """The active session, if any."""
        return self._session

    @property
    def notifier(self) -> PlaybackStateNotifier:
        """Notifier receiving this engine's transitions."""
        return self._notifier

    @property
    def streaming_capable(self) -> bool:
        """Whether incremental playback is used."""
        return self._streaming_capable

    @property
    def speaker(self) -> LocalSpeaker | None:
        """Offline speaker used for local synthesis."""
        return self._speaker

    @property
    def volume(self) -> float:
        """Current volume."""
        return self._volume

    @property
    def rate(self) -> float:
        """Current playback rate."""
        return self._rate

    async def play_streamed(self, request: SynthesisRequest) -> PlaybackOutcome:
        """Play a synthesis request while it downloads.

        Falls back to buffered mode, without error, when the machine cannot
        play incrementally, including when the sink refuses to open for
        streaming; the outcome then has ``ran_buffered`` set.

        Args:
            request: Synthesis request

        Returns:
            PlaybackOutcome describing how the session ended

        Raises:
            ValidationError: If the request is malformed (nothing is sent)
        """
        self._client.validate(request)
        if not self._streaming_capable:
            logger.debug("No incremental playback, using buffered mode")
            return await self._start(
                SourceKind.BUFFERED, lambda session: self._run_buffered(session, request)
            )
        return await self._start(
            SourceKind.STREAMED, lambda session: self._run_streamed(session, request)
        )

    async def play_buffered(self, request: SynthesisRequest) -> PlaybackOutcome:
        """Fetch a complete payload, then play it as a unit.

        Raises:
            ValidationError: If the request is malformed (nothing is sent)
        """
        self._client.validate(request)
        return await self._start(
            SourceKind.BUFFERED, lambda session: self._run_buffered(session, request)
        )

    async def play_local(self, text: str) -> PlaybackOutcome:
        """Speak text with the offline speaker.

        Raises:
            ValidationError: If the text is empty
        """
        if not text or not text.strip():
            raise ValidationError("Text to speak is empty")
        return await self._start(SourceKind.LOCAL, lambda session: self._run_local(session, text))

    async def stop(self) -> None:
        """Stop the active session and release its resources.

        Safe to call repeatedly and when nothing is playing.
        """
        task = self._task
        session = self._session
        if task is None or session is None:
            return

        if not task.done():
            if task is asyncio.current_task():
                raise RuntimeError("stop() called from inside the playback session")
            if not session.stop_requested:
                session.stop_requested = True
                logger.info(f"Stopping playback session {session.id}")
                task.cancel()
            await asyncio.wait({task})

        self._finalize(session)

    async def set_volume(self, volume: float) -> None:
        """Set volume, applied immediately to active output."""
        self._volume = clamp_volume(volume)
        if self._session is not None:
            self._session.volume = self._volume
        if self._sink is not None:
            await self._sink.set_volume(self._volume)
        logger.debug(f"Volume set to {self._volume:.2f}")

    async def set_rate(self, rate: float) -> None:
        """Set playback rate, applied immediately to active output."""
        self._rate = clamp_rate(rate)
        if self._session is not None:
            self._session.rate = self._rate
        if self._sink is not None:
            await self._sink.set_rate(self._rate)
        logger.debug(f"Rate set to {self._rate:.2f}")

    def _begin(self, source_kind: SourceKind) -> PlaybackSession:
        session = PlaybackSession(source_kind=source_kind, volume=self._volume, rate=self._rate)
        self._session = session
        self._move(session, PlaybackState.LOADING)
        return session

    def _move(self, session: PlaybackSession, new_state: PlaybackState) -> None:
        previous = session.transition(new_state)
        self._notifier.publish_state(
            StateChange(
                session_id=session.id,
                previous=previous,
                current=new_state,
                source_kind=session.source_kind,
            )
        )

    def _finalize(self, session: PlaybackSession) -> None:
        """Return a session to IDLE and forget it. Idempotent."""
        if session.state != PlaybackState.IDLE:
            self._move(session, PlaybackState.IDLE)
        if self._session is session:
            self._session = None
            self._sink = None
            self._task = None

    async def _start(self, source_kind: SourceKind, body: SessionBody) -> PlaybackOutcome:
        """Replace the active session with a new one and wait for it.

        Overlapping starts are serialized, so each one stops its predecessor
        and the last caller ends up owning playback.
        """
        async with self._start_lock:
            await self.stop()
            session = self._begin(source_kind)
            task = asyncio.create_task(body(session))
            self._task = task
        return await self._run_session(session, task)

    async def _run_session(
        self,
        session: PlaybackSession,
        task: "asyncio.Task[PlaybackOutcome]",
    ) -> PlaybackOutcome:
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if session.stop_requested and (current is None or current.cancelling() == 0):
                self._finalize(session)
                return PlaybackOutcome(session.id, session.source_kind, stopped=True)
            # The caller itself was cancelled
            if not task.done():
                await asyncio.wait({task})
            self._finalize(session)
            raise

    def _fail(self, session: PlaybackSession, error: KoeError) -> PlaybackOutcome:
        failure = PlaybackFailure.from_error(error)
        logger.warning(
            f"Playback session {session.id} ({session.source_kind.value}) failed: {error}"
        )
        self._move(session, PlaybackState.FAILED)
        return PlaybackOutcome(
            session.id,
            session.source_kind,
            failure=failure,
            ran_buffered=session.source_kind == SourceKind.BUFFERED,
        )

    def _complete(self, session: PlaybackSession) -> PlaybackOutcome:
        self._move(session, PlaybackState.ENDED)
        logger.debug(
            f"Playback session {session.id} ended after {session.bytes_received} bytes "
            f"in {session.chunks_applied} chunks"
        )
        return PlaybackOutcome(
            session.id,
            session.source_kind,
            completed=True,
            ran_buffered=session.source_kind == SourceKind.BUFFERED,
        )

    def _route_to_buffered(self, session: PlaybackSession, error: CapabilityError) -> None:
        """Continue a streamed session as a buffered one.

        Not a failure: the rest of the download is collected and played as a
        unit, and later sessions skip streaming.
        """
        logger.info(f"Incremental playback unavailable ({error}), buffering session {session.id}")
        self._streaming_capable = False
        session.source_kind = SourceKind.BUFFERED
        self._move(session, PlaybackState.BUFFERED_LOADING)

    async def _release(self, session: PlaybackSession, sink: PlaybackSink | None) -> None:
        if sink is not None:
            await sink.close()
        self._finalize(session)

    async def _apply(self, session: PlaybackSession, sink: PlaybackSink, chunk: bytes) -> None:
        """Append one byte range once the previous append has completed."""
        async with self._append_lock:
            await sink.append(chunk)
        session.chunks_applied += 1
        if session.state == PlaybackState.LOADING:
            self._move(session, PlaybackState.PLAYING)

    async def _run_streamed(
        self, session: PlaybackSession, request: SynthesisRequest
    ) -> PlaybackOutcome:
        sink: PlaybackSink | None = None
        buffering = False
        try:
            async with self._client.stream(request) as stream:
                content_type = stream.content_type
                # Held until the payload is known to be large enough, or for
                # the whole payload once the sink turns out to be buffered only
                held: list[bytes] = []
                async for chunk in stream.chunks():
                    session.bytes_received += len(chunk)
                    if sink is not None and not buffering:
                        await self._apply(session, sink, chunk)
                        continue
                    held.append(chunk)
                    if buffering or session.bytes_received < self._min_audio_bytes:
                        continue
                    sink = self._sink_factory()
                    self._sink = sink
                    try:
                        await sink.open(content_type, session.volume, session.rate)
                    except CapabilityError as e:
                        self._route_to_buffered(session, e)
                        buffering = True
                        continue
                    for pending in held:
                        await self._apply(session, sink, pending)
                    held.clear()

            if sink is None:
                raise PayloadError(
                    f"Audio payload too small: {session.bytes_received} bytes "
                    f"(minimum {self._min_audio_bytes})"
                )
            if buffering:
                await sink.play_whole(b"".join(held), content_type, session.volume, session.rate)
                session.chunks_applied = 1
                self._move(session, PlaybackState.PLAYING)
            else:
                async with self._append_lock:
                    await sink.end_of_stream()
            await sink.wait_done()
            return self._complete(session)
        except KoeError as e:
            return self._fail(session, e)
        finally:
            await self._release(session, sink)

    async def _run_buffered(
        self, session: PlaybackSession, request: SynthesisRequest
    ) -> PlaybackOutcome:
        sink: PlaybackSink | None = None
        try:
            self._move(session, PlaybackState.BUFFERED_LOADING)
            payload = await self._client.fetch(request)
            session.bytes_received = payload.size
            if payload.size < self._min_audio_bytes:
                raise PayloadError(
                    f"Audio payload too small: {payload.size} bytes "
                    f"(minimum {self._min_audio_bytes})"
                )
            sink = self._sink_factory()
            self._sink = sink
            await sink.play_whole(payload.data, payload.content_type, session.volume, session.rate)
            session.chunks_applied = 1
            self._move(session, PlaybackState.PLAYING)
            await sink.wait_done()
            return self._complete(session)
        except KoeError as e:
            return self._fail(session, e)
        finally:
            await self._release(session, sink)

    async def _run_local(self, session: PlaybackSession, text: str) -> PlaybackOutcome:
        speaker = self._speaker
        try:
            if speaker is None or not speaker.is_available:
                raise LocalSpeechError("No local speech synthesizer available")
            self._move(session, PlaybackState.PLAYING)
            await speaker.speak(text, rate=session.rate, volume=session.volume)
            return self._complete(session)
        except KoeError as e:
            return self._fail(session, e)
        finally:
            if speaker is not None and session.stop_requested:
                await speaker.stop()
            self._finalize(session)


__all__ = ["MIN_AUDIO_BYTES", "SinkFactory", "StreamingPlaybackEngine"]
