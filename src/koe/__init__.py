"""Koe - voice chat client with streaming speech playback.

Koe provides spoken conversation with a relayed language model:
- Typed or spoken input (faster-whisper recognizer)
- Replies from Gemini, OpenAI or Groq through the koe relay server
- AivisSpeech synthesis streamed and played while it downloads
- Local offline voice when the synthesis service is unavailable

Usage:
    python -m koe --profile dev
    python -m koe --serve
"""

__version__ = "0.3.0"
__author__ = "Koe Project"

from .config import KoeConfig
from .config.loader import load_config

__all__ = [
    "KoeConfig",
    "__version__",
    "load_config",
]
