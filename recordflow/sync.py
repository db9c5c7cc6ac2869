"""
Periodic reconciliation of unsynced records against a remote target.

Each cycle fetches the unsynced records, offers them one by one to an
`Uploader`, marks every accepted record as synced in a single batch, and
emits `sync_completed`. A failing cycle is logged and abandoned; the loop
sleeps its normal interval and tries again.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from recordflow.clock import CancelToken, utcnow
from recordflow.config import get_settings
from recordflow.domain.models import Record
from recordflow.events import PipelineEvents
from recordflow.storage.abstract import RecordStore
from recordflow.utils.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class Uploader(Protocol):
    """Delivers one record to the remote target."""

    async def upload(self, record: Record) -> bool:
        """Return True once the remote target accepted the record."""
        ...


class NoopUploader:
    """Placeholder remote target: accepts everything, sends nothing."""

    async def upload(self, record: Record) -> bool:
        log.debug("[UPLOAD] noop", extra={"record_id": record.id})
        return True


class SyncTask:
    """
    Independent periodic sync loop.

    Parameters
    ----------
    store : RecordStore
        Source of unsynced records and sink for the synced flag.
    uploader : Uploader | None
        Remote transport. Defaults to NoopUploader.
    interval : float | None
        Seconds between cycles. Defaults to settings.sync_interval_seconds.
    events : PipelineEvents | None
        Where `sync_completed` is emitted.
    """

    def __init__(
        self,
        store: RecordStore,
        uploader: Optional[Uploader] = None,
        interval: Optional[float] = None,
        events: Optional[PipelineEvents] = None,
    ) -> None:
        self.store = store
        self.uploader = uploader or NoopUploader()
        self.interval = interval if interval is not None else get_settings().sync_interval_seconds
        self.events = events or PipelineEvents()

        self._token: Optional[CancelToken] = None
        self._task: Optional[asyncio.Task] = None
        self.cycle_count = 0
        self.last_synced_count: Optional[int] = None
        self.last_synced_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Launch the loop. No-op while it is already running."""
        if self.running:
            return
        self._token = CancelToken()
        self._task = asyncio.create_task(self._loop(self._token), name="sync-task")
        log.info("[SYNC START]", extra={"interval": self.interval})

    async def stop(self) -> None:
        """
        Cancel the loop and wait for it to wind down.

        A pending sleep ends immediately; an in-flight cycle finishes the
        record it is uploading and commits what was accepted so far.
        """
        if self._task is None:
            return
        task, token = self._task, self._token
        self._task, self._token = None, None
        if token is not None:
            token.cancel()
        await asyncio.gather(task, return_exceptions=True)
        log.info("[SYNC STOP]", extra={"cycles": self.cycle_count})

    async def run_cycle(self, token: Optional[CancelToken] = None) -> int:
        """
        Run one sync cycle and return the number of records marked synced.

        Storage errors from fetch_unsynced / mark_synced propagate to the
        caller; upload failures only skip the affected record.
        """
        unsynced = await self.store.fetch_unsynced()
        if not unsynced:
            return 0

        accepted: List[str] = []
        for record in unsynced:
            if token is not None and token.cancelled:
                log.info(
                    "[SYNC] cancelled mid-cycle",
                    extra={"accepted": len(accepted), "pending": len(unsynced)},
                )
                break
            try:
                ok = await self.uploader.upload(record)
            except Exception:  # noqa: BLE001 - one bad record must not sink the cycle
                log.exception("[SYNC] upload failed", extra={"record_id": record.id})
                continue
            if ok:
                accepted.append(record.id)
            else:
                log.warning("[SYNC] upload rejected", extra={"record_id": record.id})

        synced = await self.store.mark_synced(accepted) if accepted else 0
        self.last_synced_count = synced
        self.last_synced_at = utcnow()
        log.info(
            "[SYNC COMPLETE]",
            extra={"synced": synced, "unsynced_seen": len(unsynced)},
        )
        self.events.sync_completed.emit(synced)
        return synced

    async def _loop(self, token: CancelToken) -> None:
        while not token.cancelled:
            try:
                await self.run_cycle(token)
                self.last_error = None
            except Exception as exc:  # noqa: BLE001 - a failed cycle must not end the loop
                self.last_error = str(exc)
                log.exception("[SYNC FAILED]", extra={"cycle": self.cycle_count + 1})
            self.cycle_count += 1
            if await token.sleep(self.interval):
                break


__all__ = ["NoopUploader", "SyncTask", "Uploader"]
