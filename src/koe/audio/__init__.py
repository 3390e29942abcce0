"""Audio module for Koe.

Provides microphone capture and playback sinks with platform detection and
backend selection.

Usage:
    # Resolve streaming support once at startup
    streaming = detect_streaming_capability(config.playback)

    # One sink per playback session
    sink = create_playback_sink(config.playback)

    # For testing, use mock implementations
    from koe.audio.mock import MockAudioCapture, MockPlaybackSink
"""

import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from ..config.profiles import detect_platform
from .capture import AudioCapture, AudioFrame
from .sink import PlaybackSink

if TYPE_CHECKING:
    from ..config import CaptureConfig, PlaybackConfig

logger = logging.getLogger(__name__)


def _is_mpv(player: str) -> bool:
    return Path(player).name == "mpv"


def detect_streaming_capability(config: "PlaybackConfig | None" = None) -> bool:
    """Check whether incremental playback is possible.

    Streaming needs mpv on the PATH and must not be disabled in config.

    Args:
        config: Playback configuration (uses defaults if None)

    Returns:
        True if audio can be played while it downloads
    """
    streaming = True
    player = "mpv"
    if config is not None:
        streaming = config.streaming
        player = config.player

    if not streaming:
        logger.info("Streaming playback disabled by configuration")
        return False
    if not _is_mpv(player) or shutil.which(player) is None:
        logger.info(f"Streaming playback unavailable: mpv not found (player={player})")
        return False
    return True


def create_playback_sink(
    config: "PlaybackConfig | None" = None,
    use_mock: bool = False,
) -> PlaybackSink:
    """Create a playback sink for the current platform.

    Prefers mpv, then afplay on macOS, then ffplay.

    Args:
        config: Playback configuration (uses defaults if None)
        use_mock: If True, return mock implementation for testing

    Returns:
        PlaybackSink implementation

    Raises:
        RuntimeError: If no supported player is installed
    """
    if use_mock:
        from .mock import MockPlaybackSink

        return MockPlaybackSink()

    from .backends.player import FILE_PLAYERS, FilePlayerSink, MpvSink

    player = config.player if config is not None else "mpv"
    if _is_mpv(player) and shutil.which(player) is not None:
        return MpvSink(player)
    if player in FILE_PLAYERS and shutil.which(player) is not None:
        return FilePlayerSink(player)

    # Configured player missing, try the others
    for candidate in detect_platform().player_candidates:
        if shutil.which(candidate) is None:
            continue
        logger.info(f"Player {player} not found, using {candidate}")
        if _is_mpv(candidate):
            return MpvSink(candidate)
        return FilePlayerSink(candidate)

    raise RuntimeError("No audio player found. Install mpv (recommended) or ffmpeg.")


def create_audio_capture(
    config: "CaptureConfig | None" = None,
    use_mock: bool = False,
) -> AudioCapture:
    """Create microphone capture instance.

    Args:
        config: Capture configuration (uses defaults if None)
        use_mock: If True, return mock implementation for testing

    Returns:
        AudioCapture implementation

    Raises:
        RuntimeError: If PyAudio is not installed
    """
    device_name = "default"
    sample_rate = 16000
    channels = 1
    chunk_size = 1024

    if config is not None:
        device_name = config.input_device
        sample_rate = config.sample_rate
        channels = config.channels
        chunk_size = config.chunk_size

    if use_mock:
        from .mock import MockAudioCapture

        return MockAudioCapture(
            sample_rate=sample_rate,
            channels=channels,
            chunk_size=chunk_size,
        )

    from .backends.pyaudio_capture import PyAudioCapture

    return PyAudioCapture(
        device_name=device_name,
        sample_rate=sample_rate,
        channels=channels,
        chunk_size=chunk_size,
    )


__all__ = [
    "AudioCapture",
    "AudioFrame",
    "PlaybackSink",
    "create_audio_capture",
    "create_playback_sink",
    "detect_streaming_capability",
]
