"""Sliding-window request limits per client address."""

import time
from collections import deque
from collections.abc import Callable


class RateLimiter:
    """Allows at most ``limit`` requests per ``window_s`` for each key."""

    def __init__(
        self,
        limit: int,
        window_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = limit
        self._window_s = window_s
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}

    def hit(self, key: str) -> bool:
        """Record a request.

        Returns:
            False if the key is over its limit (the request is not counted)
        """
        now = self._clock()
        hits = self._hits.setdefault(key, deque())
        while hits and hits[0] <= now - self._window_s:
            hits.popleft()
        if len(hits) >= self._limit:
            return False
        hits.append(now)
        return True

    def reset(self) -> None:
        """Forget every recorded request."""
        self._hits.clear()


__all__ = ["RateLimiter"]
