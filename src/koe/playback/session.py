"""Playback session state machine.

A PlaybackSession is one attempt to make a reply audible. Only the engine
creates and mutates sessions.
"""

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum

from ..errors import KoeError, PayloadError, TransportError

RATE_MIN = 0.5
RATE_MAX = 2.0


class PlaybackState(Enum):
    """Playback session states."""

    IDLE = "idle"
    LOADING = "loading"  # Request issued, waiting for bytes
    BUFFERED_LOADING = "buffered-loading"  # Fetching the whole payload first
    PLAYING = "playing"
    ENDED = "ended"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        """Return True while the session holds the audio output."""
        return self in ACTIVE_STATES


ACTIVE_STATES = frozenset(
    {PlaybackState.LOADING, PlaybackState.BUFFERED_LOADING, PlaybackState.PLAYING}
)


class SourceKind(Enum):
    """Where the audio of a session comes from."""

    STREAMED = "streamed"
    BUFFERED = "buffered"
    LOCAL = "local-synthesis"


# Allowed transitions; IDLE is reachable from every state on stop
TRANSITIONS: dict[PlaybackState, frozenset[PlaybackState]] = {
    PlaybackState.IDLE: frozenset({PlaybackState.LOADING}),
    PlaybackState.LOADING: frozenset(
        {
            PlaybackState.PLAYING,
            PlaybackState.BUFFERED_LOADING,
            PlaybackState.FAILED,
            PlaybackState.IDLE,
        }
    ),
    PlaybackState.BUFFERED_LOADING: frozenset(
        {PlaybackState.PLAYING, PlaybackState.FAILED, PlaybackState.IDLE}
    ),
    PlaybackState.PLAYING: frozenset(
        {PlaybackState.ENDED, PlaybackState.FAILED, PlaybackState.IDLE}
    ),
    PlaybackState.ENDED: frozenset({PlaybackState.IDLE}),
    PlaybackState.FAILED: frozenset({PlaybackState.IDLE}),
}


class InvalidTransitionError(KoeError):
    """Raised when a session is moved along an edge the table does not allow."""

    pass


def clamp_volume(volume: float) -> float:
    """Clamp volume to 0.0-1.0."""
    return max(0.0, min(1.0, volume))


def clamp_rate(rate: float) -> float:
    """Clamp playback rate to 0.5-2.0."""
    return max(RATE_MIN, min(RATE_MAX, rate))


class FailureKind(Enum):
    """Classification of a failed playback attempt."""

    TRANSPORT = "transport"
    PAYLOAD = "payload"
    LOCAL = "local"


@dataclass(frozen=True)
class PlaybackFailure:
    """Classified reason a session failed."""

    kind: FailureKind
    message: str
    status: int | None = None

    @classmethod
    def from_error(cls, error: Exception) -> "PlaybackFailure":
        """Classify an exception raised during playback."""
        if isinstance(error, TransportError):
            return cls(FailureKind.TRANSPORT, str(error), error.status)
        if isinstance(error, PayloadError):
            return cls(FailureKind.PAYLOAD, str(error), error.status)
        return cls(FailureKind.LOCAL, str(error))


_session_ids = itertools.count(1)


@dataclass
class PlaybackSession:
    """State of one playback attempt."""

    source_kind: SourceKind
    volume: float = 1.0
    rate: float = 1.0
    state: PlaybackState = PlaybackState.IDLE
    started_at: float = field(default_factory=time.monotonic)
    ended_at: float | None = None
    stop_requested: bool = False
    bytes_received: int = 0
    chunks_applied: int = 0
    id: int = field(default_factory=lambda: next(_session_ids))

    def __post_init__(self) -> None:
        self.volume = clamp_volume(self.volume)
        self.rate = clamp_rate(self.rate)

    def transition(self, new_state: PlaybackState) -> PlaybackState:
        """Move to a new state.

        Args:
            new_state: Target state

        Returns:
            The previous state

        Raises:
            InvalidTransitionError: If the edge is not in TRANSITIONS
        """
        previous = self.state
        if new_state not in TRANSITIONS[previous]:
            raise InvalidTransitionError(
                f"Session {self.id}: {previous.value} -> {new_state.value} not allowed"
            )
        self.state = new_state
        if new_state in (PlaybackState.ENDED, PlaybackState.FAILED, PlaybackState.IDLE):
            if self.ended_at is None:
                self.ended_at = time.monotonic()
        return previous


@dataclass(frozen=True)
class PlaybackOutcome:
    """Result of a playback attempt.

    Exactly one of ``completed``, ``stopped`` or ``failure`` describes how
    the attempt ended.
    """

    session_id: int
    source_kind: SourceKind
    completed: bool = False
    stopped: bool = False
    failure: PlaybackFailure | None = None
    ran_buffered: bool = False

    @property
    def failed(self) -> bool:
        """Return True if the attempt failed."""
        return self.failure is not None


__all__ = [
    "ACTIVE_STATES",
    "FailureKind",
    "InvalidTransitionError",
    "PlaybackFailure",
    "PlaybackOutcome",
    "PlaybackSession",
    "PlaybackState",
    "RATE_MAX",
    "RATE_MIN",
    "SourceKind",
    "TRANSITIONS",
    "clamp_rate",
    "clamp_volume",
]
