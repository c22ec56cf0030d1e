"""Sliding-window rate limiting with pluggable timestamp storage."""

import time
from collections import defaultdict
from typing import Callable, Dict, List, Protocol, Sequence

from ..core.exceptions import RateLimited


class TimestampStore(Protocol):
    def load_request_timestamps(self, key: str) -> List[float]: ...

    def save_request_timestamps(self, key: str, timestamps: Sequence[float]) -> None: ...


class InMemoryTimestampStore:
    """Process-local store; enough for per-IP webhook throttling"""

    def __init__(self) -> None:
        self._requests: Dict[str, List[float]] = defaultdict(list)

    def load_request_timestamps(self, key: str) -> List[float]:
        return list(self._requests[key])

    def save_request_timestamps(self, key: str, timestamps: Sequence[float]) -> None:
        self._requests[key] = list(timestamps)

    def __len__(self) -> int:
        return len(self._requests)


class SlidingWindowRateLimiter:
    """At most `max_requests` per `window_seconds` per key"""

    def __init__(
        self,
        store: TimestampStore,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock

    def check(self, key: str) -> None:
        """
        Record one request for `key`.

        Raises:
            RateLimited: the key already used its quota in the current window
        """
        now = self.clock()
        recent = [
            ts for ts in self.store.load_request_timestamps(key)
            if now - ts < self.window_seconds
        ]

        if len(recent) >= self.max_requests:
            retry_after = max(0.0, self.window_seconds - (now - min(recent)))
            raise RateLimited(
                f"Too many requests. Please wait {int(self.window_seconds)} seconds.",
                retry_after=retry_after,
            )

        recent.append(now)
        self.store.save_request_timestamps(key, recent)

    def is_allowed(self, key: str) -> bool:
        try:
            self.check(key)
        except RateLimited:
            return False
        return True
