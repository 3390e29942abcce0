"""Integration tests for the voice chat application.

Wires the real relay client, playback engine, fallback ladder and capture
loop together over an in-process relay and mock audio devices.
"""

import json
from collections.abc import AsyncIterator

import httpx
import pytest
import pytest_asyncio
from conftest import RELAY_URL, VOICE_ID, SinkRecorder, wait_for

from koe.__main__ import main
from koe.app import VoiceChatApp
from koe.chat.client import RelayClient
from koe.config import KoeConfig
from koe.config.loader import load_config
from koe.playback.engine import StreamingPlaybackEngine
from koe.playback.fallback import FallbackLadder
from koe.playback.notifier import PlaybackStateNotifier
from koe.tts.mock import MockLocalSpeaker
from koe.voice.capture_loop import CaptureMode, CaptureState, VoiceCaptureLoop
from koe.voice.mock import MockRecognizer

AUDIO = b"\xff\xfb" * 1500


class InProcessRelay:
    """Relay answering chat and synthesis calls from canned data."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.reply = "元気ですよ"
        self.chat_status = 200
        self.tts_statuses: list[int] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/login":
            return httpx.Response(200, json={"status": "success", "token": "tok", "expiresIn": 1})
        if path == "/api/logout":
            return httpx.Response(200, json={"status": "success", "message": "Logged out"})
        if path == "/api/chat":
            if self.chat_status != 200:
                return httpx.Response(
                    self.chat_status, json={"status": "error", "message": "upstream down"}
                )
            return httpx.Response(200, json={"status": "success", "response": self.reply})
        if path == "/api/models":
            return httpx.Response(
                200,
                json=[
                    {"uuid": VOICE_ID, "name": "Default voice"},
                    {"uuid": "other-voice", "name": "Other"},
                ],
            )
        if path == "/api/tts":
            status = self.tts_statuses.pop(0) if self.tts_statuses else 200
            if status != 200:
                return httpx.Response(status, json={"status": "error", "message": "busy"})
            return httpx.Response(200, content=AUDIO, headers={"content-type": "audio/mpeg"})
        return httpx.Response(404, json={"status": "error", "message": "Not found"})

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def bodies(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


class AppHarness:
    """Application over the in-process relay with recorded output."""

    def __init__(self, sinks: SinkRecorder | None = None, config: KoeConfig | None = None) -> None:
        self.relay = InProcessRelay()
        self.output: list[str] = []
        self.sinks = sinks or SinkRecorder()
        self.speaker = MockLocalSpeaker()
        self.notifier = PlaybackStateNotifier()
        http = httpx.AsyncClient(
            base_url=RELAY_URL, transport=httpx.MockTransport(self.relay.handler)
        )
        client = RelayClient(http=http)
        self.engine = StreamingPlaybackEngine(
            client=client.speech_client(),
            sink_factory=self.sinks,
            notifier=self.notifier,
            speaker=self.speaker,
        )
        self.app = VoiceChatApp(
            config or KoeConfig(),
            client,
            self.engine,
            FallbackLadder(self.engine, self.notifier),
            self.notifier,
            output=self.output.append,
        )

    async def logged_in(self) -> "AppHarness":
        await self.app.login("secret")
        return self


@pytest_asyncio.fixture
async def harness() -> AsyncIterator[AppHarness]:
    harness = await AppHarness().logged_in()
    yield harness
    await harness.app.aclose()


class TestAsk:
    """Tests for a typed question and its spoken reply."""

    @pytest.mark.asyncio
    async def test_reply_printed_and_streamed(self, harness: AppHarness) -> None:
        """Test the reply is shown, synthesized and played in full."""
        reply = await harness.app.ask("元気?")

        assert reply == "元気ですよ"
        assert harness.output == ["koe> 元気ですよ"]
        assert harness.relay.bodies("/api/chat")[0] == {
            "message": "元気?",
            "provider": "groq",
            "maxLength": 100,
        }
        assert harness.relay.bodies("/api/tts")[0] == {
            "text": "元気ですよ",
            "modelId": VOICE_ID,
            "quality": "medium",
        }
        assert harness.sinks.last.received == AUDIO
        assert harness.speaker.spoken_texts == []

    @pytest.mark.asyncio
    async def test_falls_back_to_local_voice(self, harness: AppHarness) -> None:
        """Test synthesis outages end in the local voice with notices."""
        harness.relay.tts_statuses = [503, 503]

        await harness.app.ask("元気?")

        assert harness.speaker.spoken_texts == ["元気ですよ"]
        assert harness.output == [
            "koe> 元気ですよ",
            "* Switched from streaming audio to buffered audio",
            "* Switched from buffered audio to local voice",
        ]

    @pytest.mark.asyncio
    async def test_chat_failure(self, harness: AppHarness) -> None:
        """Test a relay failure is a persistent notice and nothing is spoken."""
        harness.relay.chat_status = 500

        assert await harness.app.ask("元気?") is None

        assert harness.output == ["! Chat failed: upstream down"]
        assert "/api/tts" not in harness.relay.paths()
        assert harness.notifier.current_error is not None

    @pytest.mark.asyncio
    async def test_session_expired(self, harness: AppHarness) -> None:
        """Test an expired session asks the user to log in again."""
        harness.relay.chat_status = 401

        await harness.app.ask("元気?")

        assert harness.output[0].startswith("! Session expired")

    @pytest.mark.asyncio
    async def test_empty_reply_not_spoken(self, harness: AppHarness) -> None:
        """Test an empty reply is neither printed nor spoken."""
        harness.relay.reply = ""

        assert await harness.app.ask("...") == ""
        assert harness.output == []
        assert "/api/tts" not in harness.relay.paths()

    @pytest.mark.asyncio
    async def test_unspeakable_text(self, harness: AppHarness) -> None:
        """Test text the synthesizer would reject is reported."""
        assert await harness.app.speak("x" * 5001) is None
        assert harness.output[0].startswith("! Cannot speak")


class TestCommands:
    """Tests for interactive commands."""

    @pytest.mark.asyncio
    async def test_volume_and_rate(self, harness: AppHarness) -> None:
        """Test volume percentages and rates are applied to the engine."""
        await harness.app.handle_line("/volume 50")
        await harness.app.handle_line("/rate 1.5")

        assert harness.engine.volume == 0.5
        assert harness.engine.rate == 1.5
        assert harness.output == ["volume 0.50", "rate 1.50"]

    @pytest.mark.asyncio
    async def test_bad_numbers(self, harness: AppHarness) -> None:
        """Test usage hints for malformed arguments."""
        await harness.app.handle_line("/volume loud")
        await harness.app.handle_line("/rate")

        assert harness.output == ["usage: /volume 0-100", "usage: /rate 0.5-2.0"]

    @pytest.mark.asyncio
    async def test_voice_list_and_select(self, harness: AppHarness) -> None:
        """Test listing voices marks the current one and selection changes it."""
        await harness.app.handle_line("/voice")
        await harness.app.handle_line("/voice other-voice")
        await harness.app.speak("テスト")

        assert harness.output[:2] == [f"* {VOICE_ID}  Default voice", "  other-voice  Other"]
        assert harness.app.voice_model_id == "other-voice"
        assert harness.relay.bodies("/api/tts")[-1]["modelId"] == "other-voice"

    @pytest.mark.asyncio
    async def test_listen_without_voice_input(self, harness: AppHarness) -> None:
        """Test /listen when no recognizer is available."""
        await harness.app.handle_line("/listen")
        assert harness.output == ["voice input is not available"]

    @pytest.mark.asyncio
    async def test_unknown_and_quit(self, harness: AppHarness) -> None:
        """Test unknown commands and /quit."""
        assert await harness.app.handle_line("/dance")
        assert harness.output == ["unknown command: /dance"]
        assert not await harness.app.handle_line("/quit")

    @pytest.mark.asyncio
    async def test_blank_line_ignored(self, harness: AppHarness) -> None:
        """Test blank input does nothing."""
        assert await harness.app.handle_line("   ")
        assert harness.relay.paths() == ["/api/login"]

    @pytest.mark.asyncio
    async def test_run_until_end_of_input(self, harness: AppHarness) -> None:
        """Test the read loop handles lines until input runs out."""
        lines = ["元気?", "/volume 20"]

        def read_line() -> str:
            if not lines:
                raise EOFError
            return lines.pop(0)

        await harness.app.run(read_line)

        assert harness.output == ["koe> 元気ですよ", "volume 0.20"]


class TestVoiceInput:
    """Tests for spoken questions with the capture loop."""

    @pytest.mark.asyncio
    async def test_utterance_answered_without_hearing_itself(self) -> None:
        """Test capture pauses while the reply plays and resumes after it."""
        harness = await AppHarness(sinks=SinkRecorder(hold_playback=True)).logged_in()
        recognizer = MockRecognizer(["元気?"])
        loop = VoiceCaptureLoop(
            recognizer,
            harness.notifier,
            on_utterance=lambda text: harness.app.submit(text),
            mode=CaptureMode.CONTINUOUS,
            settle_delay_s=0.05,
            no_speech_retry_s=0.01,
        )
        harness.app._capture_loop = loop

        await loop.start()
        await wait_for(lambda: bool(harness.sinks.sinks) and bool(harness.sinks.last.appended))

        assert loop.state == CaptureState.SUSPENDED_FOR_PLAYBACK
        assert not recognizer.is_listening
        assert harness.output == ["you> 元気?", "koe> 元気ですよ"]

        harness.sinks.last.finish()
        await wait_for(lambda: loop.state == CaptureState.LISTENING and recognizer.is_listening)

        assert recognizer.start_count == 3
        await wait_for(lambda: not harness.app._reply_tasks)
        await harness.app.aclose()
        assert loop.state == CaptureState.IDLE

    @pytest.mark.asyncio
    async def test_listen_command(self) -> None:
        """Test /listen takes one utterance in single-shot mode."""
        harness = await AppHarness().logged_in()
        recognizer = MockRecognizer(["こんにちは"])
        loop = VoiceCaptureLoop(
            recognizer,
            harness.notifier,
            on_utterance=lambda text: harness.app.submit(text),
            mode=CaptureMode.SINGLE_SHOT,
            settle_delay_s=0.05,
        )
        harness.app._capture_loop = loop

        await harness.app.handle_line("/listen")
        await wait_for(lambda: "koe> 元気ですよ" in harness.output)

        assert harness.output[0] == "you> こんにちは"
        await wait_for(lambda: not harness.app._reply_tasks)
        await harness.app.aclose()

    @pytest.mark.asyncio
    async def test_mode_command(self, harness: AppHarness) -> None:
        """Test switching the capture mode."""
        loop = VoiceCaptureLoop(MockRecognizer(), harness.notifier, on_utterance=print)
        harness.app._capture_loop = loop

        await harness.app.handle_line("/mode single-shot")
        await harness.app.handle_line("/mode sometimes")

        assert loop.mode == CaptureMode.SINGLE_SHOT
        assert harness.output == ["mode single-shot", "usage: /mode single-shot|continuous"]


class TestFromConfig:
    """Tests for building the application from configuration."""

    @pytest.mark.asyncio
    async def test_mock_wiring(self) -> None:
        """Test the test profile builds a complete application with mocks."""
        config = load_config(profile="test")

        app = VoiceChatApp.from_config(config, use_mocks=True, output=lambda line: None)

        assert app.engine.streaming_capable
        assert app.capture_loop is not None
        assert app.capture_loop.mode == CaptureMode.SINGLE_SHOT
        assert not app.relay.is_authenticated
        await app.aclose()


class TestMain:
    """Tests for the command line entry point."""

    def test_dry_run(self) -> None:
        """Test configuration loads and the program exits cleanly."""
        assert main(["--profile", "test", "--dry-run"]) == 0

    def test_missing_config_file(self, tmp_path) -> None:
        """Test a missing config file is reported."""
        assert main(["--config", str(tmp_path / "missing.yaml"), "--dry-run"]) == 1

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test --version prints and exits."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert "Koe v" in capsys.readouterr().out
