"""In-memory login sessions for the relay.

Tokens are random 32-byte hex strings. Every authenticated request pushes
the expiry forward; expired tokens are dropped when next looked at.
"""

import logging
import secrets
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

SESSION_DURATION_S = 3 * 24 * 60 * 60


class SessionStore:
    """Token to expiry map."""

    def __init__(
        self,
        duration_s: float = SESSION_DURATION_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize session store.

        Args:
            duration_s: Session lifetime after the last use
            clock: Time source in seconds
        """
        self._duration_s = duration_s
        self._clock = clock
        self._expiry: dict[str, float] = {}

    @property
    def duration_s(self) -> float:
        """Session lifetime in seconds."""
        return self._duration_s

    def __len__(self) -> int:
        return len(self._expiry)

    def create(self) -> str:
        """Open a new session.

        Returns:
            Session token
        """
        self.purge_expired()
        token = secrets.token_hex(32)
        self._expiry[token] = self._clock() + self._duration_s
        logger.info(f"Session opened ({len(self._expiry)} active)")
        return token

    def touch(self, token: str) -> bool:
        """Validate a token and extend its session.

        Returns:
            True if the token belongs to a live session
        """
        expiry = self._expiry.get(token)
        if expiry is None:
            return False
        now = self._clock()
        if expiry <= now:
            del self._expiry[token]
            logger.debug("Session expired")
            return False
        self._expiry[token] = now + self._duration_s
        return True

    def revoke(self, token: str) -> bool:
        """Close a session.

        Returns:
            True if a session was closed
        """
        return self._expiry.pop(token, None) is not None

    def purge_expired(self) -> int:
        """Drop every expired session.

        Returns:
            Number of sessions dropped
        """
        now = self._clock()
        expired = [token for token, expiry in self._expiry.items() if expiry <= now]
        for token in expired:
            del self._expiry[token]
        return len(expired)


__all__ = ["SESSION_DURATION_S", "SessionStore"]
