"""Async token-bucket limiter for provider request pacing."""

from __future__ import annotations

import asyncio
import time

from data.exceptions import RunInitializationError


def parse_rate_limit(raw: str | None, default: int = 5000) -> int:
    """Parse a requests-per-minute setting.

    Unset, empty, and non-positive values fall back to ``default``; anything
    that is not an integer is a configuration error.
    """

    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise RunInitializationError(
            "could not convert rateLimit configuration parameter to an integer",
            context={"rateLimit": raw},
        ) from exc
    return value if value > 0 else default


class AsyncRateLimiter:
    """Token bucket refilled continuously; ``acquire`` suspends until a token is free.

    Waiting is a plain ``asyncio.sleep`` so cancelling the caller aborts the
    wait immediately.
    """

    def __init__(self, rate_per_second: float, burst: int = 1) -> None:
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be > 0")
        if burst < 1:
            raise ValueError("burst must be >= 1")
        self._rate = rate_per_second
        self._burst = float(burst)
        self._tokens = float(burst)
        self._last = time.monotonic()
        self._lock = asyncio.Lock()

    @classmethod
    def per_minute(cls, requests_per_minute: int, burst: int = 1) -> AsyncRateLimiter:
        # rpm spread over a 61 second window
        return cls(rate_per_second=requests_per_minute / 61.0, burst=burst)

    @property
    def rate(self) -> float:
        return self._rate

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""

        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                await asyncio.sleep((1.0 - self._tokens) / self._rate)

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = max(0.0, now - self._last)
        self._last = now
        self._tokens = min(self._burst, self._tokens + elapsed * self._rate)
