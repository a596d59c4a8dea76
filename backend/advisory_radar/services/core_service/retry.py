# backend/advisory_radar/services/core_service/retry.py
from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


def is_transient_error(e: Exception) -> bool:
    """Timeouts, connection drops and 5xx responses are worth another try."""
    if isinstance(e, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(e, httpx.HTTPStatusError):
        return e.response.status_code >= 500
    name = type(e).__name__.lower()
    return any(k in name for k in ["timeout", "connect", "network"])


async def async_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 0.6,
    max_delay: float = 4.0,
    jitter: float = 0.25,
    retry_if: Callable[[Exception], bool] = is_transient_error,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    last_exc: Optional[Exception] = None

    for i in range(attempts):
        try:
            return await fn()
        except Exception as e:
            last_exc = e
            if i == attempts - 1 or not retry_if(e):
                raise

            # exponential backoff + jitter
            delay = min(max_delay, base_delay * (2 ** i))
            delay = delay * (1.0 + random.uniform(-jitter, jitter))
            await sleep(max(0.0, delay))

    raise last_exc or RuntimeError("async_retry failed without exception")
