"""Unit tests for speech-to-text module."""

from types import SimpleNamespace
from unittest import mock

import pytest

from koe.config import STTConfig
from koe.stt import TranscriptionResult, create_transcriber
from koe.stt.mock import MockTranscriber
from koe.stt.whisper import WhisperTranscriber


def fake_model(texts: list[str], language: str = "ja") -> mock.MagicMock:
    """WhisperModel stand-in returning fixed segments."""
    model = mock.MagicMock()
    segments = [SimpleNamespace(text=text) for text in texts]
    info = SimpleNamespace(language=language, language_probability=0.8)
    model.transcribe.return_value = (iter(segments), info)
    return model


class TestTranscriptionResult:
    """Tests for TranscriptionResult dataclass."""

    def test_create_result(self) -> None:
        """Test creating a transcription result."""
        result = TranscriptionResult(text="こんにちは", confidence=0.95, language="ja", duration_ms=1500)
        assert result.text == "こんにちは"
        assert result.duration_ms == 1500


class TestMockTranscriber:
    """Tests for MockTranscriber."""

    def test_queued_then_default(self) -> None:
        """Test queued responses come first, then the default."""
        transcriber = MockTranscriber()
        transcriber.set_response("default")
        transcriber.queue_responses("one", "two")

        texts = [transcriber.transcribe(bytes(32000), 16000).text for _ in range(3)]

        assert texts == ["one", "two", "default"]
        assert transcriber.call_count == 3

    def test_duration(self) -> None:
        """Test duration is computed from 16-bit mono bytes."""
        result = MockTranscriber().transcribe(bytes(32000), sample_rate=16000)
        assert result.duration_ms == 1000

    def test_error(self) -> None:
        """Test a configured error is raised until a response is set."""
        transcriber = MockTranscriber()
        transcriber.set_error("model crashed")

        with pytest.raises(RuntimeError, match="model crashed"):
            transcriber.transcribe(b"", 16000)
        transcriber.set_response("ok")
        assert transcriber.transcribe(b"", 16000).text == "ok"

    def test_factory_mock(self) -> None:
        """Test create_transcriber honours use_mock."""
        assert isinstance(create_transcriber(use_mock=True), MockTranscriber)


class TestWhisperTranscriber:
    """Tests for the faster-whisper transcriber with the model patched out."""

    def make(self, model: mock.MagicMock, **options: str) -> WhisperTranscriber:
        with mock.patch("koe.stt.whisper.FASTER_WHISPER_AVAILABLE", True):
            transcriber = WhisperTranscriber(**options)
        transcriber._model = model
        return transcriber

    def test_japanese_segments_joined_without_spaces(self) -> None:
        """Test unspaced languages are joined directly."""
        transcriber = self.make(fake_model([" こんにちは ", "元気?"]))

        result = transcriber.transcribe(bytes(3200), 16000)

        assert result.text == "こんにちは元気?"
        assert result.confidence == 0.8

    def test_spaced_language(self) -> None:
        """Test other languages are joined with spaces."""
        transcriber = self.make(fake_model(["hello", "there"], language="en"), language="auto")

        result = transcriber.transcribe(bytes(3200), 16000)

        assert result.text == "hello there"
        assert transcriber._model.transcribe.call_args.kwargs["language"] is None

    def test_resampled_to_16k(self) -> None:
        """Test audio at another rate is resampled before transcription."""
        transcriber = self.make(fake_model(["x"]))

        transcriber.transcribe(bytes(4800 * 2), 48000)

        audio = transcriber._model.transcribe.call_args.args[0]
        assert len(audio) == 1600

    def test_model_loaded_lazily(self) -> None:
        """Test construction does not load the model."""
        with mock.patch("koe.stt.whisper.FASTER_WHISPER_AVAILABLE", True), mock.patch(
            "koe.stt.whisper.WhisperModel"
        ) as model_class:
            transcriber = create_transcriber(STTConfig(model="tiny"))
            assert not transcriber.is_loaded

            model_class.return_value = fake_model(["はい"])
            assert transcriber.transcribe(bytes(3200), 16000).text == "はい"

        assert transcriber.is_loaded
        model_class.assert_called_once_with("tiny", device="cpu", compute_type="int8")

    def test_unavailable(self) -> None:
        """Test a clear error without faster-whisper."""
        with mock.patch("koe.stt.whisper.FASTER_WHISPER_AVAILABLE", False):
            with pytest.raises(RuntimeError, match="faster-whisper"):
                create_transcriber(STTConfig())
