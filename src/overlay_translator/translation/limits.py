"""
Request throttling for the remote fallback: a token bucket and the
registry of texts with an outstanding remote call.
"""

from __future__ import annotations

import itertools
import threading
import time
from typing import Callable

DEFAULT_BUCKET_CAPACITY = 4
DEFAULT_REFILL_INTERVAL = 0.3


class TokenBucket:
    """Token-bucket rate limiter.

    Holds up to ``capacity`` tokens; one token is added for every whole
    ``refill_interval`` seconds elapsed since the last refill, and the
    leftover fraction is carried to the next refill. Acquisition never
    waits: a caller without a token simply gives up for this cycle.

    Example:
        >>> bucket = TokenBucket(capacity=2, refill_interval=1.0)
        >>> bucket.try_acquire(), bucket.try_acquire(), bucket.try_acquire()
        (True, True, False)
    """

    def __init__(
        self,
        capacity: int = DEFAULT_BUCKET_CAPACITY,
        refill_interval: float = DEFAULT_REFILL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("bucket capacity must be at least 1")
        if refill_interval <= 0:
            raise ValueError("refill interval must be positive")
        self.capacity = capacity
        self.refill_interval = refill_interval
        self._clock = clock
        self._tokens = capacity
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed < self.refill_interval:
            return
        added = int(elapsed // self.refill_interval)
        self._tokens = min(self.capacity, self._tokens + added)
        self._last_refill = now - (elapsed % self.refill_interval)

    def try_acquire(self) -> bool:
        """Take one token if available."""
        with self._lock:
            self._refill()
            if self._tokens > 0:
                self._tokens -= 1
                return True
            return False

    @property
    def tokens(self) -> int:
        with self._lock:
            self._refill()
            return self._tokens


class InFlightRegistry:
    """Source texts whose remote translation is outstanding.

    Each entry carries the token handed out by :meth:`try_add`. A call that
    outlives a :meth:`clear` can only remove its own entry, never one added
    for the same text after the clear.
    """

    def __init__(self) -> None:
        self._texts: dict[str, int] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def try_add(self, text: str) -> int | None:
        """Mark ``text`` as in flight.

        Returns:
            Token owning the entry, or None if ``text`` already was in flight
        """
        with self._lock:
            if text in self._texts:
                return None
            token = next(self._tokens)
            self._texts[text] = token
            return token

    def discard(self, text: str, token: int | None = None) -> None:
        """Remove ``text``; with ``token``, only if that token still owns it."""
        with self._lock:
            if token is None or self._texts.get(text) == token:
                self._texts.pop(text, None)

    def clear(self) -> None:
        with self._lock:
            self._texts.clear()

    def __contains__(self, text: object) -> bool:
        with self._lock:
            return text in self._texts

    def __len__(self) -> int:
        with self._lock:
            return len(self._texts)
