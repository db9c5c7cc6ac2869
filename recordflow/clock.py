"""
Timer and cancellation primitives shared by the long-lived pipeline tasks.

Every task (generator ticker, coordinator consumption loop, sync loop) owns a
single `CancelToken`. Cancelling it is idempotent and wakes any pending
`sleep()` immediately, so stop requests are observed at the next suspension
point instead of after a full interval.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import AsyncIterator

from recordflow.domain.errors import Cancelled


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class CancelToken:
    """Idempotent, awaitable cancellation signal."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep for `seconds` unless cancelled first.

        Returns True when the token was cancelled before or during the wait.
        """
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(seconds, 0.0))
        except asyncio.TimeoutError:
            return False
        return True

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled("operation cancelled")


class Ticker:
    """
    Periodic wake-up source.

    Yields 1, 2, 3, ... once per `interval` seconds until the token is
    cancelled. The first tick fires one interval after iteration starts.
    """

    def __init__(self, interval: float, token: CancelToken) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.token = token

    async def __aiter__(self) -> AsyncIterator[int]:
        count = 0
        while not await self.token.sleep(self.interval):
            count += 1
            yield count


__all__ = ["CancelToken", "Ticker", "utcnow"]
