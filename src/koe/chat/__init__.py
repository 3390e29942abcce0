"""Relay chat client for Koe."""

from .client import PROVIDERS, RelayClient, VoiceModel

__all__ = ["PROVIDERS", "RelayClient", "VoiceModel"]
