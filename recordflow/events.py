"""
Observable signals emitted by the pipeline.

The presentation layer subscribes to `PipelineEvents.annotation_updated`
(payload: the new annotation text) and `PipelineEvents.sync_completed`
(payload: number of records synced). Handlers may be plain callables or
coroutine functions; coroutine handlers are scheduled as tasks so a slow
observer never stalls the emitting loop. Handler exceptions are logged and
never reach the emitter.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Generic, List, Set, TypeVar

from recordflow.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

Handler = Callable[[Any], Any]


class Signal(Generic[T]):
    """A named, in-process signal with any number of receivers."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: List[Handler] = []
        self._pending: Set[asyncio.Task] = set()

    @property
    def receivers(self) -> int:
        return len(self._handlers)

    def connect(self, handler: Handler) -> Handler:
        """Register `handler`; returns it so this can be used as a decorator."""
        if handler not in self._handlers:
            self._handlers.append(handler)
        return handler

    def disconnect(self, handler: Handler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def emit(self, payload: T) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._reap)
            except Exception:  # noqa: BLE001 - observers must not break the pipeline
                log.exception(f"[SIGNAL HANDLER FAILED] {self.name}", extra={"signal": self.name})

    def _reap(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                f"[SIGNAL HANDLER FAILED] {self.name}",
                exc_info=exc,
                extra={"signal": self.name},
            )

    async def drain(self) -> None:
        """Wait for scheduled coroutine handlers to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class PipelineEvents:
    """The two signals the core exposes to observers."""

    def __init__(self) -> None:
        self.annotation_updated: Signal[str] = Signal("annotation_updated")
        self.sync_completed: Signal[int] = Signal("sync_completed")


__all__ = ["PipelineEvents", "Signal"]
