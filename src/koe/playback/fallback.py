"""Fallback ladder for speech playback.

Tries streaming first, then a single buffered fetch, then the local
offline voice. Every downgrade is announced; a failure of the local voice
is final and shown as a persistent error.
"""

import logging
from dataclasses import dataclass, field

from ..tts.request import SynthesisRequest
from .engine import StreamingPlaybackEngine
from .notifier import PlaybackStateNotifier
from .session import PlaybackOutcome, SourceKind

logger = logging.getLogger(__name__)


@dataclass
class LadderResult:
    """Every attempt made for one reply, in order."""

    outcomes: list[PlaybackOutcome] = field(default_factory=list)

    @property
    def final(self) -> PlaybackOutcome | None:
        """The last attempt."""
        return self.outcomes[-1] if self.outcomes else None

    @property
    def completed(self) -> bool:
        """Return True if some attempt played to the end."""
        return self.final is not None and self.final.completed

    @property
    def stopped(self) -> bool:
        """Return True if the ladder ended because playback was stopped."""
        return self.final is not None and self.final.stopped

    @property
    def failed(self) -> bool:
        """Return True if every attempt failed."""
        return self.final is not None and self.final.failed

    @property
    def sources(self) -> list[SourceKind]:
        """Source kind of each attempt."""
        return [outcome.source_kind for outcome in self.outcomes]


class FallbackLadder:
    """Sequential playback policy over classified failures."""

    def __init__(
        self,
        engine: StreamingPlaybackEngine,
        notifier: PlaybackStateNotifier | None = None,
    ) -> None:
        """Initialize fallback ladder.

        Args:
            engine: Playback engine running each attempt
            notifier: Receives downgrade notices (the engine's if None)
        """
        self._engine = engine
        self._notifier = notifier or engine.notifier

    async def speak(self, request: SynthesisRequest) -> LadderResult:
        """Make a reply audible, downgrading on failure.

        Args:
            request: Synthesis request for the reply text

        Returns:
            LadderResult with every attempt

        Raises:
            ValidationError: If the request is malformed; nothing is played
        """
        result = LadderResult()

        outcome = await self._engine.play_streamed(request)
        result.outcomes.append(outcome)
        if not outcome.failed:
            return result
        previous = outcome.source_kind

        # Streaming unavailable means step one already fetched the whole payload
        if not outcome.ran_buffered:
            self._notifier.source_switched(previous, SourceKind.BUFFERED)
            outcome = await self._engine.play_buffered(request)
            result.outcomes.append(outcome)
            if not outcome.failed:
                return result
            previous = outcome.source_kind

        self._notifier.source_switched(previous, SourceKind.LOCAL)
        outcome = await self._engine.play_local(request.text)
        result.outcomes.append(outcome)
        if outcome.failed and outcome.failure is not None:
            self._notifier.error(f"Speech playback failed: {outcome.failure.message}")
        return result


__all__ = ["FallbackLadder", "LadderResult"]
