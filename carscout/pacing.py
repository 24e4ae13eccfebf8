"""
Human-like pacing between externally observable actions.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


async def random_sleep(max_seconds: float = 8.0, min_seconds: float = 2.0) -> float:
    """Sleep for a uniformly random number of seconds in [min, max]."""
    delay = random.uniform(min_seconds, max_seconds)
    await asyncio.sleep(delay)
    return delay


class Pacer:
    """Bounded random delay generator owned by one source run."""

    def __init__(
        self,
        min_seconds: float = 2.0,
        max_seconds: float = 8.0,
        enabled: bool = True,
        sleep: Optional[Sleeper] = None,
        rng: Optional[random.Random] = None,
    ):
        if min_seconds < 0 or max_seconds < min_seconds:
            raise ValueError(f"Invalid pacing bounds: {min_seconds}..{max_seconds}")
        self.min_seconds = min_seconds
        self.max_seconds = max_seconds
        self.enabled = enabled
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self.total_slept = 0.0

    def next_delay(self, min_seconds: Optional[float] = None, max_seconds: Optional[float] = None) -> float:
        lo = self.min_seconds if min_seconds is None else min_seconds
        hi = self.max_seconds if max_seconds is None else max_seconds
        return self._rng.uniform(lo, hi)

    async def pause(self, min_seconds: Optional[float] = None, max_seconds: Optional[float] = None) -> float:
        """Sleep a random delay; returns the delay slept (0 when disabled)."""
        if not self.enabled:
            return 0.0
        delay = self.next_delay(min_seconds, max_seconds)
        await self.wait(delay)
        return delay

    async def wait(self, seconds: float):
        """Sleep a fixed delay, e.g. a retry backoff."""
        if not self.enabled or seconds <= 0:
            return
        logger.debug(f"Sleeping {seconds:.2f}s")
        self.total_slept += seconds
        await self._sleep(seconds)
