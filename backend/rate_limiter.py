import threading
import time
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from errors import RateLimitExceeded

PRUNE_THRESHOLD = 10_000


@dataclass
class RateBucket:
    count: int
    reset_at: float


class RateLimiter:
    """Per-address fixed window that opens on the first request after expiry.

    Process-local and reset on restart. It bounds abuse of transaction building,
    it does not prevent duplicate votes or attendance.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: dict[str, RateBucket] = {}
        self._lock = threading.Lock()

    def admit(self, address: str) -> None:
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(address)
            if bucket is None or now >= bucket.reset_at:
                if len(self._buckets) >= PRUNE_THRESHOLD:
                    self._prune(now)
                bucket = RateBucket(count=0, reset_at=now + self.window_seconds)
                self._buckets[address] = bucket
            bucket.count += 1
            count = bucket.count

        if count > self.max_requests:
            logger.warning("Rate limit exceeded for {} ({} requests in window)", address, count)
            raise RateLimitExceeded(
                f"Rate limit exceeded: max {self.max_requests} transactions per "
                f"{int(self.window_seconds)} seconds"
            )

    def bucket(self, address: str) -> RateBucket | None:
        with self._lock:
            bucket = self._buckets.get(address)
            return RateBucket(bucket.count, bucket.reset_at) if bucket else None

    def _prune(self, now: float) -> None:
        expired = [addr for addr, b in self._buckets.items() if now >= b.reset_at]
        for addr in expired:
            del self._buckets[addr]
