"""Simple in-memory IP rate limiter."""
from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Dict


class RateLimiter:
    """Tracks requests per client IP within a sliding window.

    ``admit`` never yields to the event loop, so the prune-and-append step
    for a client cannot interleave with another request and needs no lock.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window = window_seconds
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}

    def admit(self, client_ip: str) -> bool:
        now = self._clock()
        q = self._requests.setdefault(client_ip, deque())
        while q and q[0] <= now - self.window:
            q.popleft()
        if len(q) >= self.limit:
            return False
        q.append(now)
        return True

    def sweep(self) -> int:
        """Forget clients with no request inside the window; return how many."""

        cutoff = self._clock() - self.window
        idle = [ip for ip, q in self._requests.items() if not q or q[-1] <= cutoff]
        for ip in idle:
            del self._requests[ip]
        return len(idle)

    def __len__(self) -> int:
        return len(self._requests)
