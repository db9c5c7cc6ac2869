"""
Synthetic record generator.

`RecordGenerator` emits one `Record` per tick for the current owner into a
single-consumer FIFO queue. `records()` drains that queue and completes once
`stop()` has been called, so a consumer's `async for` loop ends on its own.

    generator = RecordGenerator(interval=1.0)
    generator.start(owner_id)
    async for record in generator.records():
        ...
"""

from __future__ import annotations

import asyncio
import random
from typing import AsyncIterator, Callable, Optional, Set, Union

from recordflow.clock import CancelToken, Ticker, utcnow
from recordflow.config import get_settings
from recordflow.domain.models import Record
from recordflow.utils.logging import get_logger

log = get_logger(__name__)

# Queue terminator; put by stop() behind any buffered records.
_END = object()


class RecordGenerator:
    """
    Timed producer of synthetic records for one owner at a time.

    Parameters
    ----------
    interval : float | None
        Seconds between ticks. Defaults to settings.generator_interval_seconds.
    value_min, value_max : int | None
        Inclusive bounds of the random value. Default to settings (0-100).
    rng : random.Random | None
        Source of randomness; inject a seeded instance for reproducible runs.
    clock : callable | None
        Returns the timestamp stamped on each record.
    """

    def __init__(
        self,
        interval: Optional[float] = None,
        value_min: Optional[int] = None,
        value_max: Optional[int] = None,
        rng: Optional[random.Random] = None,
        clock: Callable = utcnow,
    ) -> None:
        settings = get_settings()
        self.interval = interval if interval is not None else settings.generator_interval_seconds
        self.value_min = value_min if value_min is not None else settings.generator_value_min
        self.value_max = value_max if value_max is not None else settings.generator_value_max
        if self.value_min > self.value_max:
            raise ValueError("value_min must not exceed value_max")
        self._rng = rng or random.Random()
        self._clock = clock

        self._running = False
        self._owner_id: Optional[str] = None
        self._token: Optional[CancelToken] = None
        self._task: Optional[asyncio.Task] = None
        # Stopped ticker tasks still winding down; awaited by aclose().
        self._retired: Set[asyncio.Task] = set()
        self._queue: Optional[asyncio.Queue[Union[Record, object]]] = None
        self.emitted = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    def _current_queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    def start(self, owner_id: str) -> None:
        """Begin emitting records for `owner_id`. No-op while already running."""
        if self._running:
            return
        self._running = True
        self._owner_id = owner_id
        self._current_queue()
        self._token = CancelToken()
        self._task = asyncio.create_task(self._run(self._token), name="record-generator")
        log.info("[GENERATOR START]", extra={"owner_id": owner_id, "interval": self.interval})

    def stop(self) -> None:
        """
        Halt emission and terminate the sequence.

        Never blocks: the terminator is put on an unbounded queue. Calling
        stop() before start() or twice is a no-op.
        """
        if not self._running:
            return
        self._running = False
        if self._token is not None:
            self._token.cancel()
        if self._task is not None:
            self._retired.add(self._task)
            self._task.add_done_callback(self._retired.discard)
        self._token = None
        self._task = None
        if self._queue is not None:
            self._queue.put_nowait(_END)
        # The next start()/records() pair gets a fresh sequence.
        self._queue = None
        log.info("[GENERATOR STOP]", extra={"owner_id": self._owner_id, "emitted": self.emitted})

    async def aclose(self) -> None:
        """stop(), then wait for the ticker task to finish its wind-down."""
        self.stop()
        if self._retired:
            await asyncio.gather(*list(self._retired), return_exceptions=True)

    def tick(self) -> Optional[Record]:
        """Synthesize one record and enqueue it. Returns None when not running."""
        if not self._running or self._owner_id is None:
            return None
        record = Record(
            owner_id=self._owner_id,
            value=self._rng.randint(self.value_min, self.value_max),
            created_at=self._clock(),
        )
        self._current_queue().put_nowait(record)
        self.emitted += 1
        return record

    def records(self) -> AsyncIterator[Record]:
        """
        Iterate records in generation order until stop() is called.

        The sequence is bound when this is called, so a stop() that happens
        before the consumer's first step still ends its iteration. Unicast:
        exactly one consumer is expected to iterate at a time.
        """
        return self._drain(self._current_queue())

    @staticmethod
    async def _drain(queue: asyncio.Queue) -> AsyncIterator[Record]:
        while True:
            item = await queue.get()
            if item is _END:
                return
            yield item  # type: ignore[misc]

    async def _run(self, token: CancelToken) -> None:
        async for _ in Ticker(self.interval, token):
            self.tick()


__all__ = ["RecordGenerator"]
