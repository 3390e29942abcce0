"""Unit tests for synthesis requests to the relay."""

import httpx
import pytest
from conftest import RELAY_URL, VOICE_ID, FakeSpeechEndpoint, audio_chunks, make_request

from koe.errors import PayloadError, TransportError, ValidationError
from koe.tts.request import Quality, SpeechRequestClient, SynthesisRequest, error_from_response


class TestQuality:
    """Tests for quality presets."""

    def test_presets(self) -> None:
        """Test sample rate and bitrate per preset."""
        assert (Quality.LOW.sample_rate, Quality.LOW.bitrate_kbps) == (24000, 128)
        assert (Quality.MEDIUM.sample_rate, Quality.MEDIUM.bitrate_kbps) == (44100, 192)
        assert (Quality.HIGH.sample_rate, Quality.HIGH.bitrate_kbps) == (48000, 320)

    def test_parse(self) -> None:
        """Test parsing names case-insensitively."""
        assert Quality.parse("HIGH") == Quality.HIGH
        assert Quality.parse(Quality.LOW) == Quality.LOW

    def test_parse_unknown(self) -> None:
        """Test unknown names are validation errors."""
        with pytest.raises(ValidationError):
            Quality.parse("ultra")


class TestSynthesisRequest:
    """Tests for request validation and payloads."""

    def test_payload(self) -> None:
        """Test the relay body keys."""
        request = SynthesisRequest("テスト", VOICE_ID, Quality.HIGH)
        assert request.to_payload() == {"text": "テスト", "modelId": VOICE_ID, "quality": "high"}

    def test_custom_limit(self) -> None:
        """Test a client-specific text limit."""
        with pytest.raises(ValidationError):
            make_request("abcdef").validate(max_text_length=5)
        make_request("abcde").validate(max_text_length=5)


class TestErrorFromResponse:
    """Tests for relay error parsing."""

    def test_relay_error_body(self) -> None:
        """Test message and details are taken from the body."""
        response = httpx.Response(
            503, json={"status": "error", "message": "AIVIS API error", "details": "busy"}
        )
        error = error_from_response(response)

        assert str(error) == "AIVIS API error"
        assert error.status == 503
        assert error.detail == "busy"

    def test_plain_text_body(self) -> None:
        """Test non-JSON bodies are kept as detail."""
        error = error_from_response(httpx.Response(502, text="Bad Gateway"))

        assert error.status == 502
        assert error.detail == "Bad Gateway"


class TestSpeechRequestClient:
    """Tests for streaming and buffered requests."""

    @pytest.mark.asyncio
    async def test_stream(
        self, speech_client: SpeechRequestClient, endpoint: FakeSpeechEndpoint
    ) -> None:
        """Test byte ranges arrive separately and in order."""
        chunks = audio_chunks(3, 100)
        endpoint.queue_audio(chunks, content_type="audio/mpeg")

        async with speech_client.stream(make_request()) as stream:
            received = [chunk async for chunk in stream.chunks()]

        assert stream.content_type == "audio/mpeg"
        assert received == chunks

    @pytest.mark.asyncio
    async def test_stream_error_status(
        self, speech_client: SpeechRequestClient, endpoint: FakeSpeechEndpoint
    ) -> None:
        """Test an error status raises before any bytes are read."""
        endpoint.queue_error(429, "Too many API requests, please wait a moment")

        with pytest.raises(TransportError) as exc_info:
            async with speech_client.stream(make_request()):
                pass

        assert exc_info.value.status == 429

    @pytest.mark.asyncio
    async def test_stream_error_body_reset(
        self, speech_client: SpeechRequestClient, endpoint: FakeSpeechEndpoint
    ) -> None:
        """Test a connection reset while reading an error body keeps the status."""
        endpoint.queue_unreadable_error(503)

        with pytest.raises(TransportError) as exc_info:
            async with speech_client.stream(make_request()):
                pass

        assert exc_info.value.status == 503
        assert isinstance(exc_info.value.__cause__, httpx.ReadError)

    @pytest.mark.asyncio
    async def test_stream_json_body(
        self, speech_client: SpeechRequestClient, endpoint: FakeSpeechEndpoint
    ) -> None:
        """Test a JSON success body is not audio."""
        endpoint.queue_json({"status": "ok"})

        with pytest.raises(PayloadError):
            async with speech_client.stream(make_request()):
                pass

    @pytest.mark.asyncio
    async def test_fetch(
        self, speech_client: SpeechRequestClient, endpoint: FakeSpeechEndpoint
    ) -> None:
        """Test a complete payload is downloaded."""
        endpoint.queue_audio(audio_chunks(2, 700), content_type="audio/wav")

        payload = await speech_client.fetch(make_request())

        assert payload.size == 1400
        assert payload.content_type == "audio/wav"

    @pytest.mark.asyncio
    async def test_fetch_network_error(
        self, speech_client: SpeechRequestClient, endpoint: FakeSpeechEndpoint
    ) -> None:
        """Test connection failures are transport errors."""
        endpoint.queue_network_error()

        with pytest.raises(TransportError):
            await speech_client.fetch(make_request())

    @pytest.mark.asyncio
    async def test_invalid_request_not_sent(
        self, speech_client: SpeechRequestClient, endpoint: FakeSpeechEndpoint
    ) -> None:
        """Test validation happens before any network call."""
        with pytest.raises(ValidationError):
            await speech_client.fetch(make_request(""))
        with pytest.raises(ValidationError):
            async with speech_client.stream(make_request("x", "")):
                pass

        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_session_token_sent(self, endpoint: FakeSpeechEndpoint) -> None:
        """Test the shared client's authorization header is used."""
        http = httpx.AsyncClient(
            base_url=RELAY_URL,
            transport=httpx.MockTransport(endpoint.handler),
            headers={"Authorization": "Bearer abc"},
        )
        endpoint.queue_audio(audio_chunks(1, 1000))

        await SpeechRequestClient(http).fetch(make_request())
        await http.aclose()

        assert endpoint.requests[0].headers["authorization"] == "Bearer abc"
