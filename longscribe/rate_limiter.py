"""
Reservoir rate limiter for outbound calls.

At most ``max_concurrent`` calls may be outstanding, and at most
``max_concurrent`` calls may *start* within one refill window; the reservoir
is topped back up to full every ``refill_interval`` seconds.
"""

import contextlib
import logging
import threading
import time
from typing import Callable, Iterator

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(
        self,
        max_concurrent: int,
        refill_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.refill_interval = refill_interval
        self._clock = clock
        self._cond = threading.Condition()
        self._reservoir = max_concurrent
        self._running = 0
        self._peak = 0
        self._next_refill = clock() + refill_interval

    @property
    def running(self) -> int:
        with self._cond:
            return self._running

    @property
    def peak(self) -> int:
        """Highest number of calls that were ever in flight together."""
        with self._cond:
            return self._peak

    def _refill(self) -> None:
        now = self._clock()
        if now >= self._next_refill:
            self._reservoir = self.max_concurrent
            self._next_refill = now + self.refill_interval

    def acquire(self) -> None:
        """Block until a call may start."""
        with self._cond:
            while True:
                self._refill()
                if self._running < self.max_concurrent and self._reservoir > 0:
                    self._reservoir -= 1
                    self._running += 1
                    self._peak = max(self._peak, self._running)
                    return
                if self._reservoir <= 0:
                    timeout = max(self._next_refill - self._clock(), 0.001)
                else:
                    timeout = None
                self._cond.wait(timeout)

    def release(self) -> None:
        with self._cond:
            if self._running <= 0:
                raise RuntimeError("release() called without a matching acquire()")
            self._running -= 1
            self._cond.notify_all()

    @contextlib.contextmanager
    def slot(self) -> Iterator[None]:
        self.acquire()
        try:
            yield
        finally:
            self.release()
