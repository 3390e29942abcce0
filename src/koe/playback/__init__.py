"""Speech playback for Koe.

Usage:
    notifier = PlaybackStateNotifier()
    engine = StreamingPlaybackEngine(client, sink_factory, notifier, speaker,
                                     streaming_capable=True)
    ladder = FallbackLadder(engine)
    result = await ladder.speak(SynthesisRequest(text, voice_model_id))
"""

from .engine import StreamingPlaybackEngine
from .fallback import FallbackLadder, LadderResult
from .notifier import Notice, NoticeLevel, PlaybackStateNotifier, StateChange
from .session import (
    FailureKind,
    PlaybackFailure,
    PlaybackOutcome,
    PlaybackSession,
    PlaybackState,
    SourceKind,
)

__all__ = [
    "FailureKind",
    "FallbackLadder",
    "LadderResult",
    "Notice",
    "NoticeLevel",
    "PlaybackFailure",
    "PlaybackOutcome",
    "PlaybackSession",
    "PlaybackState",
    "PlaybackStateNotifier",
    "SourceKind",
    "StateChange",
    "StreamingPlaybackEngine",
]
