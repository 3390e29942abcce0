"""Configuration module for Koe.

This module provides configuration dataclasses, loading and profile management.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass
class RelayConfig:
    """Connection to the koe relay server."""

    base_url: str = "http://localhost:3001"
    timeout: float = 30.0
    password_env: str = "KOE_PASSWORD"


@dataclass
class TTSConfig:
    """Speech synthesis request configuration."""

    voice_model_id: str = "a59cb814-0083-4369-8542-f51a29e72af7"
    quality: str = "medium"
    max_text_length: int = 5000
    min_audio_bytes: int = 1000


@dataclass
class PlaybackConfig:
    """Audio output configuration."""

    volume: float = 1.0
    rate: float = 1.0
    streaming: bool = True
    player: str = "mpv"


@dataclass
class CaptureConfig:
    """Voice input loop configuration."""

    mode: str = "single-shot"
    input_device: str = "default"
    sample_rate: int = 16000
    channels: int = 1
    chunk_size: int = 1024
    settle_delay_s: float = 2.0
    no_speech_retry_s: float = 1.0
    no_speech_timeout_s: float = 8.0
    silence_timeout_ms: int = 1200
    energy_threshold: float = 500.0


@dataclass
class STTConfig:
    """Speech-to-text configuration."""

    model: str = "small"
    device: str = "cpu"
    compute_type: str = "int8"
    language: str = "ja"


@dataclass
class ChatConfig:
    """Language model selection forwarded to the relay."""

    provider: str = "groq"
    model: str | None = None
    max_length: int = 100
    character_setting: str = ""


@dataclass
class LocalVoiceConfig:
    """Offline fallback voice configuration."""

    language: str = "ja"
    voice: str | None = None


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"


@dataclass
class ServerConfig:
    """Relay server configuration."""

    host: str = "127.0.0.1"
    port: int = 3001
    session_duration_s: int = 3 * 24 * 60 * 60
    general_rate_limit: int = 100
    general_rate_window_s: int = 15 * 60
    api_rate_limit: int = 20
    api_rate_window_s: int = 60
    allowed_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3001", "http://127.0.0.1:3001"]
    )
    tts_api_url: str = "https://api.aivis-project.com/v1/tts/synthesize"
    buffer_tts: bool = False
    upstream_timeout: float = 60.0


@dataclass
class TestingConfig:
    """Testing configuration."""

    mock_audio_enabled: bool = False


@dataclass
class KoeConfig:
    """Main Koe configuration."""

    relay: RelayConfig = field(default_factory=RelayConfig)
    tts: TTSConfig = field(default_factory=TTSConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    stt: STTConfig = field(default_factory=STTConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    local_voice: LocalVoiceConfig = field(default_factory=LocalVoiceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    testing: TestingConfig = field(default_factory=TestingConfig)


class ConfigLoader(Protocol):
    """Protocol for configuration loading."""

    def load(self, path: Path) -> KoeConfig:
        """Load configuration from file path."""
        ...

    def load_profile(self, profile: str) -> KoeConfig:
        """Load configuration by profile name (dev, prod, test)."""
        ...

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        ...


__all__ = [
    "CaptureConfig",
    "ChatConfig",
    "ConfigLoader",
    "KoeConfig",
    "LocalVoiceConfig",
    "LoggingConfig",
    "PlaybackConfig",
    "RelayConfig",
    "STTConfig",
    "ServerConfig",
    "TTSConfig",
    "TestingConfig",
]
