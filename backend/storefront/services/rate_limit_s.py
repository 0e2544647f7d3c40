from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Protocol


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after_seconds: int = 0


class RateLimiter(Protocol):
    def take(self, bucket: str) -> RateLimitDecision: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _prune(queue: deque[datetime], *, now: datetime, window: timedelta) -> None:
    cutoff = now - window
    while queue and queue[0] <= cutoff:
        queue.popleft()


class SlidingWindowRateLimiter:
    """Allows ``max_requests`` hits per bucket within any ``window``."""

    def __init__(self, max_requests: int, window: timedelta, *, clock=_utc_now) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be greater than 0")
        if window <= timedelta(0):
            raise ValueError("window must be greater than 0")
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._lock = Lock()
        self._hits: dict[str, deque[datetime]] = defaultdict(deque)

    def take(self, bucket: str) -> RateLimitDecision:
        normalized_bucket = str(bucket or "").strip() or "unknown"
        now = self._clock()

        with self._lock:
            queue = self._hits[normalized_bucket]
            _prune(queue, now=now, window=self.window)
            if len(queue) >= self.max_requests:
                retry_after = (queue[0] + self.window - now).total_seconds()
                return RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    retry_after_seconds=max(1, int(retry_after + 0.999)),
                )
            queue.append(now)
            return RateLimitDecision(
                allowed=True,
                remaining=self.max_requests - len(queue),
            )

    def clear(self) -> None:
        with self._lock:
            self._hits.clear()
