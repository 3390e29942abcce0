"""Speech synthesis requests to the koe relay.

The client only validates and transports; whether audio is consumed as a
stream or as one buffer is decided by the playback engine.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum

import httpx

from ..errors import PayloadError, TransportError, ValidationError

logger = logging.getLogger(__name__)

TTS_PATH = "/api/tts"
MAX_TEXT_LENGTH = 5000
DEFAULT_CONTENT_TYPE = "audio/mpeg"


class Quality(Enum):
    """Synthesis quality presets."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def sample_rate(self) -> int:
        """Output sampling rate requested from the provider."""
        return {Quality.LOW: 24000, Quality.MEDIUM: 44100, Quality.HIGH: 48000}[self]

    @property
    def bitrate_kbps(self) -> int:
        """Output bitrate requested from the provider."""
        return {Quality.LOW: 128, Quality.MEDIUM: 192, Quality.HIGH: 320}[self]

    @classmethod
    def parse(cls, value: "str | Quality") -> "Quality":
        """Parse a quality name.

        Raises:
            ValidationError: If the name is unknown
        """
        if isinstance(value, Quality):
            return value
        try:
            return cls(value.lower())
        except ValueError as e:
            raise ValidationError(f"Unknown quality: {value!r}") from e


@dataclass(frozen=True)
class SynthesisRequest:
    """Text to synthesize with the chosen voice.

    Volume and rate are playback parameters and are not part of a request.
    """

    text: str
    voice_model_id: str
    quality: Quality = Quality.MEDIUM

    def validate(self, max_text_length: int = MAX_TEXT_LENGTH) -> None:
        """Check the request before any network I/O.

        Raises:
            ValidationError: If text is empty or too long, or no voice is set
        """
        if not self.text or not self.text.strip():
            raise ValidationError("Text to synthesize is empty")
        if len(self.text) > max_text_length:
            raise ValidationError(
                f"Text is {len(self.text)} characters, limit is {max_text_length}"
            )
        if not self.voice_model_id or not self.voice_model_id.strip():
            raise ValidationError("Voice model id is empty")

    def to_payload(self) -> dict[str, str]:
        """Build the relay request body."""
        return {
            "text": self.text,
            "modelId": self.voice_model_id,
            "quality": self.quality.value,
        }


@dataclass
class AudioPayload:
    """Complete synthesized audio."""

    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        """Payload size in bytes."""
        return len(self.data)


class AudioStream:
    """Open streaming response from the relay."""

    def __init__(self, response: httpx.Response) -> None:
        """Wrap an open streaming response.

        Args:
            response: Response opened with ``stream=True``
        """
        self._response = response
        self.content_type = _audio_content_type(response)

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield byte ranges in arrival order.

        Raises:
            TransportError: If the connection fails mid-stream
        """
        try:
            async for chunk in self._response.aiter_bytes():
                if chunk:
                    yield chunk
        except httpx.HTTPError as e:
            raise TransportError(f"Audio stream interrupted: {e}") from e


def _audio_content_type(response: httpx.Response) -> str:
    content_type = response.headers.get("content-type", DEFAULT_CONTENT_TYPE)
    if "application/json" in content_type:
        raise PayloadError(
            "Relay returned JSON instead of audio", status=response.status_code
        )
    return content_type


def error_from_response(response: httpx.Response) -> TransportError:
    """Build a TransportError from a relay error response.

    The relay answers errors with ``{status: "error", message, details?}``;
    anything else is kept as raw text.
    """
    message = f"Relay returned HTTP {response.status_code}"
    detail: str | None = None
    try:
        body = response.json()
    except ValueError:
        detail = response.text or None
    else:
        if isinstance(body, dict):
            message = str(body.get("message") or message)
            raw_detail = body.get("details")
            detail = str(raw_detail) if raw_detail else None
    return TransportError(message, status=response.status_code, detail=detail)


class SpeechRequestClient:
    """Issues synthesis requests to the relay's ``/api/tts`` endpoint."""

    def __init__(self, http: httpx.AsyncClient, max_text_length: int = MAX_TEXT_LENGTH) -> None:
        """Initialize speech request client.

        Args:
            http: Client with the relay base URL and session token set
            max_text_length: Longest text accepted before any request
        """
        self._http = http
        self._max_text_length = max_text_length

    def validate(self, request: SynthesisRequest) -> None:
        """Validate a request with this client's limits.

        Raises:
            ValidationError: If the request is malformed
        """
        request.validate(self._max_text_length)

    @asynccontextmanager
    async def stream(self, request: SynthesisRequest) -> AsyncIterator[AudioStream]:
        """Open a streaming synthesis response.

        Args:
            request: Synthesis request

        Yields:
            AudioStream to read byte ranges from

        Raises:
            ValidationError: If the request is malformed (no request is sent)
            TransportError: On network failure or an error status
            PayloadError: If the relay answered with something other than audio
        """
        self.validate(request)
        http_request = self._http.build_request("POST", TTS_PATH, json=request.to_payload())
        try:
            response = await self._http.send(http_request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"TTS request failed: {e}") from e

        try:
            if response.is_error:
                try:
                    await response.aread()
                except httpx.HTTPError as e:
                    raise TransportError(
                        f"Relay returned HTTP {response.status_code}, error body unreadable: {e}",
                        status=response.status_code,
                    ) from e
                raise error_from_response(response)
            logger.debug(
                f"TTS stream opened: {response.status_code} "
                f"{response.headers.get('content-type', '?')}"
            )
            yield AudioStream(response)
        finally:
            await response.aclose()

    async def fetch(self, request: SynthesisRequest) -> AudioPayload:
        """Download a complete synthesis result.

        Args:
            request: Synthesis request

        Returns:
            AudioPayload with the whole audio body

        Raises:
            ValidationError: If the request is malformed (no request is sent)
            TransportError: On network failure or an error status
            PayloadError: If the relay answered with something other than audio
        """
        self.validate(request)
        try:
            response = await self._http.post(TTS_PATH, json=request.to_payload())
        except httpx.HTTPError as e:
            raise TransportError(f"TTS request failed: {e}") from e

        if response.is_error:
            raise error_from_response(response)

        payload = AudioPayload(data=response.content, content_type=_audio_content_type(response))
        logger.debug(f"TTS payload received: {payload.size} bytes ({payload.content_type})")
        return payload


__all__ = [
    "AudioPayload",
    "AudioStream",
    "MAX_TEXT_LENGTH",
    "Quality",
    "SpeechRequestClient",
    "SynthesisRequest",
    "error_from_response",
]
