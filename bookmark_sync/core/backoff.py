"""Exponential backoff with jitter shared by the lock and the Karakeep client."""

from __future__ import annotations

import asyncio
import random


def backoff_delay(
    attempt: int,
    backoff_base: float = 0.1,
    max_delay: float = 30.0,
    jitter: float = 0.25,
) -> float:
    """Return ``min(max_delay, backoff_base * 2^attempt)`` scaled by ``1 + uniform(0, jitter)``."""
    base_delay = min(max_delay, max(0.0, backoff_base * (2**attempt)))
    return base_delay * (1.0 + random.uniform(0.0, jitter))


async def sleep_backoff(
    attempt: int,
    backoff_base: float = 0.1,
    max_delay: float = 30.0,
    jitter: float = 0.25,
) -> float:
    """Sleep for :func:`backoff_delay` seconds and return the delay used."""
    delay = backoff_delay(attempt, backoff_base, max_delay, jitter)
    await asyncio.sleep(delay)
    return delay
