"""Voice chat application.

Wires the relay client, playback engine, fallback ladder, notifier and
voice capture loop together. Typed lines and recognized utterances go to
the relay's chat endpoint; replies are printed and spoken.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from .chat.client import RelayClient
from .errors import AuthError, KoeError, RequestError, ValidationError
from .playback.engine import StreamingPlaybackEngine
from .playback.fallback import FallbackLadder, LadderResult
from .playback.notifier import Notice, PlaybackStateNotifier
from .tts.request import Quality, SynthesisRequest
from .voice.capture_loop import CaptureMode, VoiceCaptureLoop

if TYPE_CHECKING:
    from .config import KoeConfig

logger = logging.getLogger(__name__)

Output = Callable[[str], None]


class VoiceChatApp:
    """Conversation loop over the relay with spoken replies."""

    def __init__(
        self,
        config: "KoeConfig",
        relay: RelayClient,
        engine: StreamingPlaybackEngine,
        ladder: FallbackLadder,
        notifier: PlaybackStateNotifier,
        capture_loop: VoiceCaptureLoop | None = None,
        output: Output = print,
    ) -> None:
        """Initialize application.

        Args:
            config: Koe configuration
            relay: Relay client
            engine: Playback engine
            ladder: Fallback ladder over the engine
            notifier: Playback notifier shared by engine and capture loop
            capture_loop: Voice input, None when no recognizer is available
            output: Where replies and notices are written
        """
        self._config = config
        self._relay = relay
        self._engine = engine
        self._ladder = ladder
        self._notifier = notifier
        self._capture_loop = capture_loop
        self._output = output
        self._voice_model_id = config.tts.voice_model_id
        self._quality = Quality.parse(config.tts.quality)
        self._reply_tasks: set[asyncio.Task[None]] = set()
        notifier.subscribe_notices(self._show_notice)

    @classmethod
    def from_config(
        cls,
        config: "KoeConfig",
        use_mocks: bool = False,
        output: Output = print,
    ) -> "VoiceChatApp":
        """Create application from configuration.

        Args:
            config: Koe configuration
            use_mocks: Use mock audio devices and voices
            output: Where replies and notices are written

        Returns:
            Configured VoiceChatApp instance
        """
        from .audio import create_playback_sink, detect_streaming_capability
        from .tts.local import create_local_speaker
        from .voice import create_recognizer

        relay = RelayClient(base_url=config.relay.base_url, timeout=config.relay.timeout)
        notifier = PlaybackStateNotifier()

        # Fails at startup when no player is installed
        create_playback_sink(config.playback, use_mock=use_mocks)
        streaming = True if use_mocks else detect_streaming_capability(config.playback)
        speaker = create_local_speaker(
            language=config.local_voice.language,
            voice=config.local_voice.voice,
            use_mock=use_mocks,
        )
        engine = StreamingPlaybackEngine(
            client=relay.speech_client(config.tts.max_text_length),
            sink_factory=lambda: create_playback_sink(config.playback, use_mock=use_mocks),
            notifier=notifier,
            speaker=speaker,
            streaming_capable=streaming,
            min_audio_bytes=config.tts.min_audio_bytes,
            volume=config.playback.volume,
            rate=config.playback.rate,
        )
        ladder = FallbackLadder(engine, notifier)

        app = cls(config, relay, engine, ladder, notifier, output=output)
        try:
            recognizer = create_recognizer(config.capture, config.stt, use_mock=use_mocks)
        except RuntimeError as e:
            logger.warning(f"Voice input unavailable: {e}")
        else:
            app._capture_loop = VoiceCaptureLoop(
                recognizer,
                notifier,
                on_utterance=app.submit,
                mode=CaptureMode(config.capture.mode),
                settle_delay_s=config.capture.settle_delay_s,
                no_speech_retry_s=config.capture.no_speech_retry_s,
            )
        return app

    @property
    def relay(self) -> RelayClient:
        """Relay client."""
        return self._relay

    @property
    def engine(self) -> StreamingPlaybackEngine:
        """Playback engine."""
        return self._engine

    @property
    def capture_loop(self) -> VoiceCaptureLoop | None:
        """Voice capture loop, if voice input is available."""
        return self._capture_loop

    @property
    def voice_model_id(self) -> str:
        """Voice used for synthesis."""
        return self._voice_model_id

    def _show_notice(self, notice: Notice) -> None:
        prefix = "!" if notice.is_persistent else "*"
        self._output(f"{prefix} {notice.message}")

    async def login(self, password: str) -> None:
        """Open a relay session.

        Raises:
            AuthError: If the password is rejected
        """
        await self._relay.login(password)

    async def ask(self, text: str) -> str | None:
        """Send text to the language model, print and speak the reply.

        Returns:
            Reply text, or None if the request failed
        """
        chat = self._config.chat
        try:
            reply = await self._relay.chat(
                text,
                provider=chat.provider,
                model=chat.model,
                max_length=chat.max_length,
                character_setting=chat.character_setting,
            )
        except AuthError as e:
            self._notifier.error(f"Session expired, please log in again ({e})")
            return None
        except (ValidationError, RequestError) as e:
            self._notifier.error(f"Chat failed: {e}")
            return None

        if not reply:
            logger.warning("Empty reply from language model")
            return reply
        self._output(f"koe> {reply}")
        await self.speak(reply)
        return reply

    async def speak(self, text: str) -> LadderResult | None:
        """Speak text, downgrading playback as needed.

        Returns:
            LadderResult, or None if the text was rejected
        """
        request = SynthesisRequest(
            text=text, voice_model_id=self._voice_model_id, quality=self._quality
        )
        try:
            return await self._ladder.speak(request)
        except ValidationError as e:
            self._notifier.error(f"Cannot speak: {e}")
            return None

    def submit(self, text: str) -> None:
        """Handle a recognized utterance without blocking the capture loop."""
        self._output(f"you> {text}")
        task = asyncio.create_task(self.ask(text))
        self._reply_tasks.add(task)
        task.add_done_callback(self._reply_done)

    def _reply_done(self, task: "asyncio.Task[str | None]") -> None:
        self._reply_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Reply failed: {task.exception()}")

    async def handle_command(self, line: str) -> bool:
        """Run an interactive command.

        Args:
            line: Input starting with "/"

        Returns:
            False when the application should quit
        """
        command, _, argument = line.strip().partition(" ")
        argument = argument.strip()

        if command == "/quit":
            return False
        if command == "/stop":
            await self._engine.stop()
        elif command == "/volume":
            value = _parse_number(argument)
            if value is None:
                self._output("usage: /volume 0-100")
            else:
                await self._engine.set_volume(value / 100 if value > 1 else value)
                self._output(f"volume {self._engine.volume:.2f}")
        elif command == "/rate":
            value = _parse_number(argument)
            if value is None:
                self._output("usage: /rate 0.5-2.0")
            else:
                await self._engine.set_rate(value)
                self._output(f"rate {self._engine.rate:.2f}")
        elif command == "/voice":
            if not argument:
                for model in await self._relay.list_voice_models():
                    marker = "*" if model.uuid == self._voice_model_id else " "
                    self._output(f"{marker} {model.uuid}  {model.name}")
            else:
                self._voice_model_id = argument
                self._output(f"voice {argument}")
        elif command == "/listen":
            if self._capture_loop is None:
                self._output("voice input is not available")
            else:
                await self._capture_loop.start()
        elif command == "/mode":
            try:
                mode = CaptureMode(argument)
            except ValueError:
                self._output("usage: /mode single-shot|continuous")
            else:
                if self._capture_loop is None:
                    self._output("voice input is not available")
                else:
                    self._capture_loop.set_mode(mode)
                    self._output(f"mode {mode.value}")
        else:
            self._output(f"unknown command: {command}")
        return True

    async def handle_line(self, line: str) -> bool:
        """Handle one line of user input.

        Returns:
            False when the application should quit
        """
        line = line.strip()
        if not line:
            return True
        if line.startswith("/"):
            return await self.handle_command(line)
        await self.ask(line)
        return True

    async def run(self, read_line: Callable[[], str] = input) -> None:
        """Read lines until /quit or end of input.

        Args:
            read_line: Blocking line reader, run in a worker thread
        """
        if self._capture_loop is not None and self._capture_loop.mode == CaptureMode.CONTINUOUS:
            await self._capture_loop.start()

        while True:
            try:
                line = await asyncio.to_thread(read_line)
            except EOFError:
                break
            try:
                if not await self.handle_line(line):
                    break
            except KoeError as e:
                self._notifier.error(str(e))

    async def aclose(self) -> None:
        """Stop playback and voice input and close the relay session."""
        for task in list(self._reply_tasks):
            task.cancel()
        if self._reply_tasks:
            await asyncio.wait(self._reply_tasks)
        if self._capture_loop is not None:
            await self._capture_loop.stop()
        await self._engine.stop()
        try:
            await self._relay.logout()
        except RequestError as e:
            logger.warning(f"Logout failed: {e}")
        await self._relay.aclose()


def _parse_number(text: str) -> float | None:
    try:
        return float(text)
    except ValueError:
        return None


__all__ = ["VoiceChatApp"]
