"""Rate limiter enforcing minimum spacing between requests to one provider."""

import asyncio
import threading
import time
from typing import Any, Callable, Optional


class RateLimiter:
    """Next-available-slot limiter owned by a single adapter instance.

    Keeps one watermark: the time the most recently reserved request is
    allowed to go out. Each caller reserves ``max(now, watermark + spacing)``
    and moves the watermark there before sleeping, so concurrent callers get
    distinct, strictly increasing slots.
    """

    def __init__(
        self,
        min_spacing: float = 1.0,
        now: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], Any] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            min_spacing: Minimum seconds between two dispatches (default: 1.0)
            now: Clock function for time operations (default: time.monotonic)
            sleeper: Async sleep function (default: asyncio.sleep)
        """
        if min_spacing < 0:
            raise ValueError(f"min_spacing must not be negative, got: {min_spacing}")
        self.min_spacing = min_spacing
        self._now = now
        self._sleep = sleeper
        self._watermark: Optional[float] = None
        # Guards the compute-and-advance only; never held across an await
        self._lock = threading.Lock()

    @property
    def watermark(self) -> Optional[float]:
        """Time of the latest reserved slot (read-only)."""
        return self._watermark

    def reserve_slot(self) -> float:
        """Atomically reserve the next dispatch slot.

        Returns:
            Seconds the caller must wait before dispatching (0 if immediate)
        """
        with self._lock:
            current = self._now()
            if self._watermark is None:
                target = current
            else:
                target = max(current, self._watermark + self.min_spacing)
            self._watermark = target
        return max(0.0, target - current)

    async def acquire(self) -> float:
        """Reserve a slot and wait until it arrives.

        Returns:
            Seconds waited
        """
        delay = self.reserve_slot()
        if delay > 0:
            await self._sleep(delay)
        return delay
