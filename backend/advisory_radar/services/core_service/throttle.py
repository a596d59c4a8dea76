# backend/advisory_radar/services/core_service/throttle.py
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


class CallScheduler:
    """
    Runs external calls with bounded concurrency and a minimum spacing
    between consecutive calls.

    The pipeline uses concurrency=1 everywhere: one in-flight call per
    provider, each call starting no earlier than `min_interval` seconds
    after the previous one finished. `sleep` and `clock` are injectable so
    tests can observe the pacing without waiting.
    """

    def __init__(
        self,
        min_interval: float = 0.0,
        *,
        concurrency: int = 1,
        name: str = "scheduler",
        sleep: Optional[SleepFn] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.min_interval = max(0.0, min_interval)
        self.name = name
        self._sleep = sleep or asyncio.sleep
        self._clock = clock
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._next_allowed: Optional[float] = None

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        async with self._semaphore:
            if self._next_allowed is not None:
                wait = self._next_allowed - self._clock()
                if wait > 0:
                    logger.debug("%s: waiting %.2fs before next call", self.name, wait)
                    await self._sleep(wait)
            try:
                return await fn()
            finally:
                self._next_allowed = self._clock() + self.min_interval

    async def pause(self, seconds: float) -> None:
        """Explicit pause outside a call (batch boundaries, backoff)."""
        if seconds > 0:
            await self._sleep(seconds)
