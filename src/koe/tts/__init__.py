"""Speech synthesis for Koe.

Remote synthesis requests go through the relay (``request``); offline
speech uses the platform speech command (``local``).
"""

from .local import LocalSpeaker, create_local_speaker
from .request import AudioPayload, AudioStream, Quality, SpeechRequestClient, SynthesisRequest

__all__ = [
    "AudioPayload",
    "AudioStream",
    "LocalSpeaker",
    "Quality",
    "SpeechRequestClient",
    "SynthesisRequest",
    "create_local_speaker",
]
