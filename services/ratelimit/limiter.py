"""Fixed-window rate limiting for outbound side-effect endpoints.

Each limiter instance guards one endpoint class (AI extraction, email
sending) and keeps one entry per caller key. The table is bounded: entries
whose window has elapsed are purged before anything else is evicted, and
when the table is still full the least recently used caller is dropped.
"""

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from prometheus_client import Counter

logger = logging.getLogger(__name__)

UNKNOWN_CALLER = "unknown"

rate_limit_rejections_total = Counter(
    "rate_limit_rejections_total",
    "Requests rejected by a rate limiter",
    ["limiter"],
)


@dataclass
class RateLimitEntry:
    """Per-caller counter for the current window."""

    count: int
    window_start: float


class FixedWindowRateLimiter:
    """Per-key fixed window counter.

    Thread-safe; the clock is injectable so tests can drive time directly.
    """

    def __init__(
        self,
        name: str,
        limit: int,
        window_seconds: float,
        max_keys: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize limiter.

        Args:
            name: Limiter identifier used for logs and metrics
            limit: Requests allowed per key per window
            window_seconds: Window length in seconds
            max_keys: Upper bound on tracked keys
            clock: Time source returning seconds
        """
        if max_keys < 1:
            raise ValueError("max_keys must be at least 1")
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self.max_keys = max_keys
        self._clock = clock
        self._entries: OrderedDict[str, RateLimitEntry] = OrderedDict()
        self._lock = threading.Lock()

    def check_and_consume(self, key: str, now: float | None = None) -> bool:
        """Consume one request for ``key`` if the quota allows it.

        Args:
            key: Caller identity
            now: Current time; defaults to the limiter clock

        Returns:
            True if the request is allowed, False if the quota is exhausted
        """
        if now is None:
            now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._make_room(now)
                entry = RateLimitEntry(count=0, window_start=now)
                self._entries[key] = entry
            else:
                self._entries.move_to_end(key)

            if now - entry.window_start > self.window_seconds:
                entry.count = 0
                entry.window_start = now

            if entry.count >= self.limit:
                rate_limit_rejections_total.labels(limiter=self.name).inc()
                logger.info(f"Rate limit '{self.name}' exceeded for key {key}")
                return False

            entry.count += 1
            return True

    def get_entry(self, key: str) -> RateLimitEntry | None:
        """Return a copy of the entry tracked for ``key``, if any."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return RateLimitEntry(count=entry.count, window_start=entry.window_start)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _make_room(self, now: float) -> None:
        # Caller holds the lock.
        if len(self._entries) < self.max_keys:
            return

        expired = [
            key
            for key, entry in self._entries.items()
            if now - entry.window_start > self.window_seconds
        ]
        for key in expired:
            del self._entries[key]

        while len(self._entries) >= self.max_keys:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Rate limiter '{self.name}' evicted key {evicted}")


def client_key(headers: Mapping[str, str], prefix: str) -> str:
    """Derive the rate limit key for a request.

    Uses the first address in X-Forwarded-For, then X-Real-IP. Callers that
    present neither share the ``unknown`` bucket.

    Args:
        headers: Request headers (case-insensitive mapping)
        prefix: Endpoint class prefix, e.g. ``email_rate_limit``

    Returns:
        Key of the form ``<prefix>:<address>``
    """
    forwarded = headers.get("x-forwarded-for") or ""
    address = forwarded.split(",")[0].strip()
    if not address:
        address = (headers.get("x-real-ip") or "").strip()
    return f"{prefix}:{address or UNKNOWN_CALLER}"
