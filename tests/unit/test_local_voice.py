"""Unit tests for local offline speech."""

from unittest import mock

import pytest

from koe.errors import LocalSpeechError
from koe.tts.local import EspeakSpeaker, MacOSSpeaker, create_local_speaker, parse_say_voices
from koe.tts.mock import MockLocalSpeaker

SAY_VOICES = """\
Alex                en_US    # Most people recognize me by my voice.
Kyoko               ja_JP    # こんにちは、私の名前はKyokoです。
Eddy (Japanese (Japan)) ja_JP    # こんにちは、私の名前はEddyです。
Thomas              fr_FR    # Bonjour, je m'appelle Thomas.
"""


class FakeProcess:
    """Stands in for an asyncio subprocess."""

    def __init__(self, returncode: int = 0, stderr: bytes = b"") -> None:
        self.returncode: int | None = None
        self._final = returncode
        self._stderr = stderr
        self.terminated = False

    async def communicate(self) -> tuple[bytes, bytes]:
        self.returncode = self._final
        return b"", self._stderr

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15

    async def wait(self) -> int:
        return self.returncode if self.returncode is not None else self._final


def which(*names: str):
    return lambda name: f"/usr/bin/{name}" if name in names else None


class TestParseSayVoices:
    """Tests for `say -v ?` parsing."""

    def test_parse(self) -> None:
        """Test names with spaces and locales are split correctly."""
        voices = parse_say_voices(SAY_VOICES)

        assert voices == [
            ("Alex", "en_US"),
            ("Kyoko", "ja_JP"),
            ("Eddy (Japanese (Japan))", "ja_JP"),
            ("Thomas", "fr_FR"),
        ]

    def test_blank_lines(self) -> None:
        """Test blank and malformed lines are skipped."""
        assert parse_say_voices("\n   \nonlyname\n") == []


class TestMacOSSpeaker:
    """Tests for the `say` speaker."""

    @pytest.mark.asyncio
    async def test_voice_chosen_by_language(self) -> None:
        """Test the first voice matching the language is used."""
        with mock.patch("koe.tts.local.shutil.which", side_effect=which("say")):
            speaker = MacOSSpeaker(language="ja")

        process = FakeProcess()
        with mock.patch.object(
            speaker, "list_voices", return_value=parse_say_voices(SAY_VOICES)
        ), mock.patch(
            "asyncio.create_subprocess_exec", return_value=process
        ) as create:
            await speaker.speak("こんにちは", rate=2.0, volume=0.5)

        args = create.call_args.args
        assert args[:5] == ("say", "-r", "350", "-v", "Kyoko")
        assert args[5] == "[[volm 0.50]] こんにちは"

    @pytest.mark.asyncio
    async def test_explicit_voice(self) -> None:
        """Test an explicit voice skips the lookup."""
        with mock.patch("koe.tts.local.shutil.which", side_effect=which("say")):
            speaker = MacOSSpeaker(voice="Eddy")

        with mock.patch.object(speaker, "list_voices") as list_voices, mock.patch(
            "asyncio.create_subprocess_exec", return_value=FakeProcess()
        ) as create:
            await speaker.speak("hi")

        list_voices.assert_not_called()
        assert "Eddy" in create.call_args.args

    @pytest.mark.asyncio
    async def test_command_failure(self) -> None:
        """Test a failing `say` raises LocalSpeechError."""
        with mock.patch("koe.tts.local.shutil.which", side_effect=which("say")):
            speaker = MacOSSpeaker(voice="Kyoko")

        with mock.patch(
            "asyncio.create_subprocess_exec",
            return_value=FakeProcess(returncode=1, stderr=b"voice not found"),
        ):
            with pytest.raises(LocalSpeechError, match="voice not found"):
                await speaker.speak("hi")

    @pytest.mark.asyncio
    async def test_unavailable(self) -> None:
        """Test speaking without `say` installed."""
        with mock.patch("koe.tts.local.shutil.which", side_effect=which()):
            speaker = MacOSSpeaker()

        assert not speaker.is_available
        assert await speaker.list_voices() == []
        with pytest.raises(LocalSpeechError):
            await speaker.speak("hi")


class TestEspeakSpeaker:
    """Tests for the espeak-ng speaker."""

    @pytest.mark.asyncio
    async def test_command(self) -> None:
        """Test language, speed and amplitude flags."""
        with mock.patch("koe.tts.local.shutil.which", side_effect=which("espeak-ng")):
            speaker = EspeakSpeaker(language="ja")

        with mock.patch(
            "asyncio.create_subprocess_exec", return_value=FakeProcess()
        ) as create:
            await speaker.speak("こんにちは", rate=0.5, volume=0.8)

        assert create.call_args.args == (
            "espeak-ng", "-v", "ja", "-s", "87", "-a", "80", "こんにちは",
        )

    @pytest.mark.asyncio
    async def test_stop_when_silent(self) -> None:
        """Test stop with nothing running."""
        with mock.patch("koe.tts.local.shutil.which", side_effect=which("espeak-ng")):
            speaker = EspeakSpeaker()
        await speaker.stop()


class TestCreateLocalSpeaker:
    """Tests for create_local_speaker."""

    def test_mock(self) -> None:
        """Test use_mock returns the mock speaker."""
        assert isinstance(create_local_speaker(use_mock=True), MockLocalSpeaker)

    def test_prefers_say(self) -> None:
        """Test `say` is used where installed."""
        with mock.patch("koe.tts.local.shutil.which", side_effect=which("say", "espeak-ng")):
            assert isinstance(create_local_speaker(), MacOSSpeaker)

    def test_espeak_on_linux(self) -> None:
        """Test espeak-ng is used without `say`."""
        with mock.patch("koe.tts.local.shutil.which", side_effect=which("espeak-ng")):
            speaker = create_local_speaker()
        assert isinstance(speaker, EspeakSpeaker)
        assert speaker.is_available

    def test_nothing_installed(self) -> None:
        """Test an unavailable speaker is returned rather than an error."""
        with mock.patch("koe.tts.local.shutil.which", side_effect=which()):
            speaker = create_local_speaker()
        assert not speaker.is_available
