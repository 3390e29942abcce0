"""Configuration profiles and host platform.

The profile picks which YAML file under ``config/`` is loaded; the platform
decides which audio players are worth trying when the configured one is
missing.
"""

import os
import platform
from enum import Enum

PROFILE_ENV = "KOE_PROFILE"


class Profile(Enum):
    """Configuration profiles, one YAML file each."""

    DEV = "dev"
    PROD = "prod"
    TEST = "test"

    @property
    def filename(self) -> str:
        """YAML file holding this profile."""
        return f"{self.value}.yaml"


class Platform(Enum):
    """Host platforms with different audio tooling."""

    MACOS = "macos"
    LINUX = "linux"
    OTHER = "other"

    @property
    def player_candidates(self) -> tuple[str, ...]:
        """Players to try, best first, when the configured one is missing.

        mpv is the only one that plays while downloading.
        """
        if self is Platform.MACOS:
            return ("mpv", "afplay", "ffplay")
        return ("mpv", "ffplay")


def detect_platform() -> Platform:
    """Detect the host platform."""
    system = platform.system()
    if system == "Darwin":
        return Platform.MACOS
    if system == "Linux":
        return Platform.LINUX
    return Platform.OTHER


def detect_profile() -> Profile:
    """Profile named by ``KOE_PROFILE``, dev when unset or unknown."""
    name = os.environ.get(PROFILE_ENV, "").strip().lower()
    try:
        return Profile(name)
    except ValueError:
        return Profile.DEV


__all__ = ["PROFILE_ENV", "Platform", "Profile", "detect_platform", "detect_profile"]
