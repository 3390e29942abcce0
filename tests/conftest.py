"""Shared fixtures: a scripted relay speech endpoint and recording sinks."""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from koe.audio.mock import MockPlaybackSink
from koe.playback.engine import StreamingPlaybackEngine
from koe.playback.notifier import Notice, PlaybackStateNotifier, StateChange
from koe.playback.session import PlaybackState
from koe.tts.mock import MockLocalSpeaker
from koe.tts.request import Quality, SpeechRequestClient, SynthesisRequest

RELAY_URL = "http://relay.test"
VOICE_ID = "a59cb814-0083-4369-8542-f51a29e72af7"

Reply = Callable[[httpx.Request], httpx.Response]


async def _chunked(chunks: list[bytes], delay: float, error: Exception | None) -> AsyncIterator[bytes]:
    for chunk in chunks:
        if delay:
            await asyncio.sleep(delay)
        yield chunk
    if error is not None:
        raise error


class FakeSpeechEndpoint:
    """Scripted ``/api/tts``; each request takes the next queued reply."""

    def __init__(self) -> None:
        self._replies: list[Reply] = []
        self.requests: list[httpx.Request] = []

    @property
    def payloads(self) -> list[dict[str, Any]]:
        """JSON bodies of the requests received."""
        return [json.loads(request.content) for request in self.requests]

    def queue_audio(
        self,
        chunks: list[bytes],
        content_type: str = "audio/mpeg",
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        """Answer with audio sent as separate byte ranges."""

        def reply(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={"content-type": content_type},
                content=_chunked(chunks, delay, error),
            )

        self._replies.append(reply)

    def queue_error(self, status: int, message: str, details: str | None = None) -> None:
        """Answer with the relay's error body."""
        body: dict[str, Any] = {"status": "error", "message": message}
        if details is not None:
            body["details"] = details

        def reply(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json=body)

        self._replies.append(reply)

    def queue_unreadable_error(self, status: int) -> None:
        """Answer with an error status whose body download is reset."""

        def reply(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                status,
                headers={"content-type": "application/json"},
                content=_chunked([], 0.0, httpx.ReadError("connection reset")),
            )

        self._replies.append(reply)

    def queue_json(self, body: dict[str, Any]) -> None:
        """Answer 200 with a JSON body instead of audio."""
        self._replies.append(lambda request: httpx.Response(200, json=body))

    def queue_network_error(self) -> None:
        """Fail the connection."""

        def reply(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        self._replies.append(reply)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._replies:
            return httpx.Response(500, json={"status": "error", "message": "nothing queued"})
        return self._replies.pop(0)(request)


class SinkRecorder:
    """Sink factory that keeps every sink it creates."""

    def __init__(self, **sink_options: Any) -> None:
        self.sink_options = sink_options
        self.sinks: list[MockPlaybackSink] = []

    @property
    def last(self) -> MockPlaybackSink:
        return self.sinks[-1]

    def __call__(self) -> MockPlaybackSink:
        sink = MockPlaybackSink(**self.sink_options)
        self.sinks.append(sink)
        return sink


class EventLog:
    """Collects state changes and notices from a notifier."""

    def __init__(self, notifier: PlaybackStateNotifier) -> None:
        self.changes: list[StateChange] = []
        self.notices: list[Notice] = []
        notifier.subscribe_state(self.changes.append)
        notifier.subscribe_notices(self.notices.append)

    @property
    def states(self) -> list[PlaybackState]:
        return [change.current for change in self.changes]

    @property
    def messages(self) -> list[str]:
        return [notice.message for notice in self.notices]


def audio_chunks(count: int = 3, size: int = 1200) -> list[bytes]:
    """Distinct byte ranges so ordering mistakes show up."""
    return [bytes([index + 1]) * size for index in range(count)]


def make_request(text: str = "こんにちは", voice_model_id: str = VOICE_ID) -> SynthesisRequest:
    return SynthesisRequest(text=text, voice_model_id=voice_model_id, quality=Quality.MEDIUM)


async def wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


@pytest.fixture
def endpoint() -> FakeSpeechEndpoint:
    return FakeSpeechEndpoint()


@pytest.fixture
def http(endpoint: FakeSpeechEndpoint) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=RELAY_URL, transport=httpx.MockTransport(endpoint.handler))


@pytest.fixture
def speech_client(http: httpx.AsyncClient) -> SpeechRequestClient:
    return SpeechRequestClient(http)


@pytest.fixture
def notifier() -> PlaybackStateNotifier:
    return PlaybackStateNotifier()


@pytest.fixture
def events(notifier: PlaybackStateNotifier) -> EventLog:
    return EventLog(notifier)


@pytest.fixture
def sinks() -> SinkRecorder:
    return SinkRecorder()


@pytest.fixture
def speaker() -> MockLocalSpeaker:
    return MockLocalSpeaker()


@pytest.fixture
def engine(
    speech_client: SpeechRequestClient,
    sinks: SinkRecorder,
    notifier: PlaybackStateNotifier,
    speaker: MockLocalSpeaker,
) -> StreamingPlaybackEngine:
    return StreamingPlaybackEngine(
        client=speech_client,
        sink_factory=sinks,
        notifier=notifier,
        speaker=speaker,
    )
