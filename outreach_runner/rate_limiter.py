"""Sliding-window call limiter backed by a fixed ring buffer."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from utils.log_utils import tprint
from utils.settings_store import deep_log, is_deep_logging

MIN_WAIT_MS = 100
WAIT_MARGIN_MS = 100


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class RateLimiter:
    """Allow at most ``max_requests`` calls in any ``window_ms`` interval.

    Timestamps live in a preallocated buffer of ``max_requests`` slots, so
    memory stays constant no matter how many calls are recorded. ``count``
    tracks how many of the most recent slots are still inside the window.
    """

    def __init__(
        self,
        max_requests: int = 60,
        window_ms: int = 60_000,
        *,
        max_wait_ms: int = 5_000,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.max_wait_ms = max_wait_ms
        self._clock = clock or _monotonic_ms
        self._sleep = sleep or asyncio.sleep
        self._timestamps: list[float] = [0.0] * max_requests
        self._head = 0
        self._count = 0

    @classmethod
    def from_settings(cls, settings: dict, **kwargs: Any) -> "RateLimiter":
        return cls(
            int(settings.get("rate_limit_max_requests", 60)),
            int(settings.get("rate_limit_window_ms", 60_000)),
            max_wait_ms=int(settings.get("rate_limit_max_wait_ms", 5_000)),
            **kwargs,
        )

    @property
    def head(self) -> int:
        return self._head

    @property
    def count(self) -> int:
        return self._count

    @property
    def buffer_size(self) -> int:
        return len(self._timestamps)

    def _live_timestamps(self, now: float) -> list[float]:
        """Return in-window timestamps, oldest first."""
        live: list[float] = []
        for offset in range(self._count, 0, -1):
            ts = self._timestamps[(self._head - offset) % self.max_requests]
            if now - ts < self.window_ms:
                live.append(ts)
        return live

    def _cleanup(self, now: float) -> list[float]:
        # The clock is monotonic, so expired entries are always the oldest ones.
        live = self._live_timestamps(now)
        if len(live) < self._count:
            self._count = len(live)
        return live

    def can_proceed(self) -> bool:
        return len(self._cleanup(self._clock())) < self.max_requests

    def record(self) -> None:
        self._timestamps[self._head] = self._clock()
        self._head = (self._head + 1) % self.max_requests
        self._count = min(self._count + 1, self.max_requests)

    async def wait_for_slot(self) -> None:
        """Suspend until a call would be allowed; each wait is capped at max_wait_ms."""
        while True:
            now = self._clock()
            live = self._cleanup(now)
            if len(live) < self.max_requests:
                return
            oldest = live[0]
            wait_ms = max(MIN_WAIT_MS, oldest + self.window_ms - now + WAIT_MARGIN_MS)
            wait_ms = min(wait_ms, self.max_wait_ms)
            tprint(f"[RATE_LIMIT] Window full, waiting {wait_ms / 1000:.1f}s")
            await self._sleep(wait_ms / 1000.0)

    async def acquire(self) -> None:
        await self.wait_for_slot()
        self.record()
        if is_deep_logging():
            deep_log(f"[DEEP][RATE_LIMIT] Slot taken ({self._count}/{self.max_requests})")

    def status(self) -> dict[str, int]:
        now = self._clock()
        live = self._cleanup(now)
        resets_in = 0
        if live:
            resets_in = max(0, int(live[0] + self.window_ms - now))
        return {
            "used": len(live),
            "remaining": self.max_requests - len(live),
            "resets_in_ms": resets_in,
        }
