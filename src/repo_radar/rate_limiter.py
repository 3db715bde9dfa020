"""Quota-aware throttling for the metrics provider.

Mirrors the upstream quota (remaining requests and reset instant) from
response headers and, before each request, suspends the caller until
shortly after the reset instant when the remaining quota has dropped
below a low-water mark.

One ``RateLimitState`` is owned by each fetcher instance. Concurrent
requests read and write it without locking: it is an approximate
throttle, and a stale mirror only risks an upstream 403/429 that the
caller already treats as "no data this round".
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_DEFAULT_LOW_WATER_MARK = 100
_DEFAULT_RESET_BUFFER = 2.0  # seconds past the reset instant before resuming
_DEFAULT_REMAINING = 5000  # GitHub's authenticated hourly quota

_REMAINING_HEADER = "x-ratelimit-remaining"
_RESET_HEADER = "x-ratelimit-reset"


class RateLimitState:
    """Local mirror of an upstream rate-limit window.

    Attributes:
        remaining: Requests left in the current window (best effort).
        reset_at: Epoch seconds at which the upstream window resets.
        low_water_mark: Throttle when ``remaining`` falls below this.
        reset_buffer: Extra seconds to wait past ``reset_at``.
        default_remaining: Value assumed when a response has no quota header.
    """

    def __init__(
        self,
        remaining: int = _DEFAULT_REMAINING,
        reset_at: float = 0.0,
        low_water_mark: int = _DEFAULT_LOW_WATER_MARK,
        reset_buffer: float = _DEFAULT_RESET_BUFFER,
        default_remaining: int = _DEFAULT_REMAINING,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.remaining = remaining
        self.reset_at = reset_at
        self.low_water_mark = low_water_mark
        self.reset_buffer = reset_buffer
        self.default_remaining = default_remaining
        self._clock = clock

    def wait_seconds(self) -> float:
        """Return how long the next request should wait (0.0 if it may proceed)."""
        if self.remaining >= self.low_water_mark:
            return 0.0
        now = self._clock()
        if self.reset_at <= now:
            return 0.0
        return self.reset_at - now + self.reset_buffer

    async def acquire(self) -> None:
        """Suspend until the quota has refilled, if it is nearly exhausted."""
        delay = self.wait_seconds()
        if delay > 0:
            logger.info(
                "rate_limit_throttle",
                remaining=self.remaining,
                reset_at=self.reset_at,
                sleep_seconds=round(delay, 1),
            )
            await asyncio.sleep(delay)

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Refresh the mirror from response headers, defaulting when absent."""
        self.remaining = _parse_int(
            headers.get(_REMAINING_HEADER), self.default_remaining
        )
        self.reset_at = float(_parse_int(headers.get(_RESET_HEADER), 0))

    def stats(self) -> dict[str, Any]:
        return {
            "remaining": self.remaining,
            "reset_at": self.reset_at,
            "throttling": self.wait_seconds() > 0,
        }


def _parse_int(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default
