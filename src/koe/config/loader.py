"""YAML configuration loader with inheritance support.

Supports:
- Loading YAML config files
- Config inheritance via 'extends' key
- Deep merging of nested config
"""

from pathlib import Path
from typing import Any

import yaml

from . import (
    CaptureConfig,
    ChatConfig,
    KoeConfig,
    LocalVoiceConfig,
    LoggingConfig,
    PlaybackConfig,
    RelayConfig,
    ServerConfig,
    STTConfig,
    TestingConfig,
    TTSConfig,
)
from .profiles import Profile, detect_profile


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Values from override take precedence. Nested dicts are merged recursively.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_with_inheritance(path: Path) -> dict[str, Any]:
    """Load YAML file with inheritance support.

    If the file contains an 'extends' key, the base config is loaded first
    and merged with the current config.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if "extends" in config:
        base_name = config.pop("extends")
        base_config = load_yaml_with_inheritance(path.parent / base_name)
        config = deep_merge(base_config, config)

    return config


def dict_to_config(data: dict[str, Any]) -> KoeConfig:
    """Convert raw dict to typed KoeConfig dataclass."""
    koe_data = data.get("koe", {}) or {}

    # YAML sections left empty load as None
    def safe_get(key: str) -> dict[str, Any]:
        value = koe_data.get(key, {})
        return value if value is not None else {}

    return KoeConfig(
        relay=RelayConfig(**safe_get("relay")),
        tts=TTSConfig(**safe_get("tts")),
        playback=PlaybackConfig(**safe_get("playback")),
        capture=CaptureConfig(**safe_get("capture")),
        stt=STTConfig(**safe_get("stt")),
        chat=ChatConfig(**safe_get("chat")),
        local_voice=LocalVoiceConfig(**safe_get("local_voice")),
        logging=LoggingConfig(**safe_get("logging")),
        server=ServerConfig(**safe_get("server")),
        testing=TestingConfig(**safe_get("testing")),
    )


class YAMLConfigLoader:
    """YAML configuration loader implementation."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize loader with optional config directory.

        Args:
            config_dir: Directory containing config files.
                        Defaults to 'config' relative to project root.
        """
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent.parent / "config"
        self._config_dir = config_dir

    def load(self, path: Path) -> KoeConfig:
        """Load configuration from file path.

        Args:
            path: Path to YAML config file

        Returns:
            Parsed KoeConfig
        """
        return dict_to_config(load_yaml_with_inheritance(path))

    def load_profile(self, profile: str | Profile) -> KoeConfig:
        """Load configuration by profile name.

        Args:
            profile: Profile or its name (e.g., 'dev', 'prod')

        Returns:
            Parsed KoeConfig for the profile

        Raises:
            ValueError: If the profile name is unknown
        """
        if not isinstance(profile, Profile):
            profile = Profile(profile.lower())
        return self.load(self._config_dir / profile.filename)

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        return self._config_dir


def load_config(path: str | Path | None = None, profile: str | None = None) -> KoeConfig:
    """Load Koe configuration.

    Args:
        path: Direct path to config file (takes precedence)
        profile: Profile name ('dev', 'prod', 'test') if path not given,
            taken from KOE_PROFILE when None

    Returns:
        Parsed KoeConfig

    Examples:
        >>> config = load_config(profile="dev")
        >>> config = load_config(path="/path/to/config.yaml")
    """
    loader = YAMLConfigLoader()

    if path is not None:
        return loader.load(Path(path))
    elif profile is not None:
        return loader.load_profile(profile)
    else:
        return loader.load_profile(detect_profile())


__all__ = [
    "YAMLConfigLoader",
    "deep_merge",
    "dict_to_config",
    "load_config",
    "load_yaml_with_inheritance",
]
