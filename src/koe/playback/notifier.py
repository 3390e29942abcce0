"""Playback state notifications.

Broadcasts session state transitions and user-visible notices to the UI
and to the voice capture loop. Listeners are plain callables invoked
synchronously on the event loop, so they run before the engine reaches its
next suspension point.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .session import PlaybackState, SourceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateChange:
    """A playback session moved between states."""

    session_id: int
    previous: PlaybackState
    current: PlaybackState
    source_kind: SourceKind


class NoticeLevel(Enum):
    """How long a notice stays visible."""

    INFO = "info"  # Transient
    ERROR = "error"  # Persistent until dismissed or superseded


@dataclass(frozen=True)
class Notice:
    """User-visible message."""

    level: NoticeLevel
    message: str
    previous_source: SourceKind | None = None
    new_source: SourceKind | None = None

    @property
    def is_persistent(self) -> bool:
        """Return True for notices that stay until dismissed."""
        return self.level == NoticeLevel.ERROR


SOURCE_LABELS = {
    SourceKind.STREAMED: "streaming audio",
    SourceKind.BUFFERED: "buffered audio",
    SourceKind.LOCAL: "local voice",
}

StateListener = Callable[[StateChange], None]
NoticeListener = Callable[[Notice], None]


class PlaybackStateNotifier:
    """Fan-out of playback events to subscribers."""

    def __init__(self) -> None:
        """Initialize notifier with no subscribers."""
        self._state_listeners: list[StateListener] = []
        self._notice_listeners: list[NoticeListener] = []
        self._current_error: Notice | None = None

    @property
    def current_error(self) -> Notice | None:
        """Persistent error notice still on display, if any."""
        return self._current_error

    def subscribe_state(self, listener: StateListener) -> None:
        """Register a state transition listener."""
        self._state_listeners.append(listener)

    def subscribe_notices(self, listener: NoticeListener) -> None:
        """Register a notice listener."""
        self._notice_listeners.append(listener)

    def unsubscribe_state(self, listener: StateListener) -> None:
        """Remove a state transition listener."""
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    def publish_state(self, change: StateChange) -> None:
        """Deliver a state change to every listener.

        A new session starting supersedes any persistent error notice.
        """
        logger.debug(
            f"Session {change.session_id} ({change.source_kind.value}): "
            f"{change.previous.value} -> {change.current.value}"
        )
        if change.current == PlaybackState.LOADING:
            self._current_error = None
        for listener in list(self._state_listeners):
            listener(change)

    def notify(self, notice: Notice) -> None:
        """Deliver a notice to every listener."""
        if notice.is_persistent:
            self._current_error = notice
        for listener in list(self._notice_listeners):
            listener(notice)

    def source_switched(self, previous: SourceKind, new: SourceKind) -> Notice:
        """Announce a fallback downgrade.

        Returns:
            The transient notice that was sent
        """
        notice = Notice(
            level=NoticeLevel.INFO,
            message=f"Switched from {SOURCE_LABELS[previous]} to {SOURCE_LABELS[new]}",
            previous_source=previous,
            new_source=new,
        )
        logger.warning(notice.message)
        self.notify(notice)
        return notice

    def error(self, message: str) -> Notice:
        """Show a persistent error.

        Returns:
            The persistent notice that was sent
        """
        notice = Notice(level=NoticeLevel.ERROR, message=message)
        logger.error(message)
        self.notify(notice)
        return notice

    def dismiss(self) -> None:
        """Dismiss the persistent error notice."""
        self._current_error = None


__all__ = [
    "Notice",
    "NoticeLevel",
    "NoticeListener",
    "PlaybackStateNotifier",
    "SOURCE_LABELS",
    "StateChange",
    "StateListener",
]
