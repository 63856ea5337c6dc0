"""Pacing for tag-apply calls.

EC2 throttles mutating API calls per account. The throttle keeps a pause
after every successful ``CreateTags`` call so a large cluster does not burst
the whole pass at once. Volumes that need no change never reach the
throttle, so they are never delayed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class ApplyThrottle:
    """Enforces a pause between a successful apply and the next one.

    ``acquire()`` waits until ``min_interval_seconds`` have elapsed since the
    last ``record_apply()``. The pause is measured from the end of the
    previous apply, so a slow call still leaves a full pause. Failed applies
    are not recorded and do not delay anything.

    This class is NOT thread-safe. It is used from a single coroutine.
    """

    def __init__(
        self,
        min_interval_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must not be negative")
        self._min_interval = min_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_apply: float | None = None

    @property
    def min_interval_seconds(self) -> float:
        return self._min_interval

    async def acquire(self) -> float:
        """Wait until the next apply is allowed.

        Returns:
            Seconds spent waiting.
        """
        if self._last_apply is None:
            return 0.0
        remaining = self._last_apply + self._min_interval - self._clock()
        if remaining <= 0:
            return 0.0
        logger.debug("Pacing tag apply", extra={"wait_seconds": round(remaining, 3)})
        await self._sleep(remaining)
        return remaining

    def record_apply(self) -> None:
        """Mark the end of a successful apply."""
        self._last_apply = self._clock()

    def reset(self) -> None:
        """Forget the previous apply so the next one goes out immediately."""
        self._last_apply = None
