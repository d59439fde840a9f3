"""
Delay primitive used between polling cycles and between page requests.
"""

import asyncio
import math

from .exceptions import InvalidDurationError


async def wait(milliseconds: float) -> None:
    """
    Suspend the calling coroutine for the given number of milliseconds.

    Args:
        milliseconds: Non-negative duration

    Raises:
        InvalidDurationError: If the duration is not a usable number
    """
    if (
        isinstance(milliseconds, bool)
        or not isinstance(milliseconds, (int, float))
        or math.isnan(milliseconds)
    ):
        raise InvalidDurationError("milliseconds not a number", milliseconds)
    if milliseconds < 0:
        raise InvalidDurationError("milliseconds must not be negative", milliseconds)

    await asyncio.sleep(milliseconds / 1000)
