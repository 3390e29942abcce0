"""Relay server for Koe.

Usage:
    python -m koe --serve
"""

from .app import RelaySecrets, create_app

__all__ = ["RelaySecrets", "create_app"]
