"""Error types for Koe.

Custom exceptions for speech requests, playback and voice capture.
"""

from enum import Enum


class KoeError(Exception):
    """Base exception for Koe errors."""

    pass


class ValidationError(KoeError):
    """Raised when input is malformed or oversized.

    Detected before any network call and never retried.
    """

    pass


class RequestError(KoeError):
    """Raised when a relay request does not produce usable data."""

    def __init__(self, message: str, status: int | None = None, detail: str | None = None) -> None:
        """Initialize request error.

        Args:
            message: Error message.
            status: HTTP status code if available.
            detail: Extra detail returned by the relay or upstream.
        """
        super().__init__(message)
        self.status = status
        self.detail = detail


class TransportError(RequestError):
    """Raised on network failure or a non-success relay status."""

    pass


class PayloadError(RequestError):
    """Raised when an audio payload is empty, undersized or undecodable."""

    pass


class AuthError(RequestError):
    """Raised when the relay rejects the password or session token."""

    pass


class CapabilityError(KoeError):
    """Raised when incremental playback is unavailable.

    Used only to route a request to buffered playback.
    """

    pass


class RecognizerErrorKind(Enum):
    """Categories of speech recognizer failure."""

    NO_SPEECH = "no-speech"
    PERMISSION_DENIED = "permission-denied"
    DEVICE = "device"
    NETWORK = "network"
    OTHER = "other"


class RecognizerError(KoeError):
    """Raised when the speech recognizer fails."""

    def __init__(self, message: str, kind: RecognizerErrorKind = RecognizerErrorKind.OTHER) -> None:
        """Initialize recognizer error.

        Args:
            message: Error message.
            kind: Failure category.
        """
        super().__init__(message)
        self.kind = kind

    @property
    def is_transient(self) -> bool:
        """Return True if the recognizer can simply be restarted."""
        return self.kind == RecognizerErrorKind.NO_SPEECH


class LocalSpeechError(KoeError):
    """Raised when the offline speech synthesizer fails."""

    pass


__all__ = [
    "AuthError",
    "CapabilityError",
    "KoeError",
    "LocalSpeechError",
    "PayloadError",
    "RecognizerError",
    "RecognizerErrorKind",
    "RequestError",
    "TransportError",
    "ValidationError",
]
