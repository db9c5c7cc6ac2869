"""
Pipeline coordinator: owns the consumption loop and the pipeline lifecycle.

Usage:
    coordinator = PipelineCoordinator(store=store, enrichment=OllamaClient())
    await coordinator.start(owner_id)
    ...
    await coordinator.stop()
    print(coordinator.status())

While running, every generated record is persisted in arrival order, one at a
time. Every record advances a tick counter; once the counter passes the
threshold (60 by default, i.e. on the 61st record) it resets and the
enrichment service is asked for a new annotation. Enrichment runs inline in
the consumption loop, so a slow call delays ingestion by at most the
enrichment timeout; the generator keeps buffering meanwhile.

Failures are contained here: a failed insert drops that record, a failed
enrichment substitutes the fallback annotation. Neither stops the loop.
"""

from __future__ import annotations

import asyncio
import random
from collections import deque
from contextlib import aclosing
from typing import AsyncIterator, Deque, List, Optional

from recordflow.clock import CancelToken
from recordflow.config import Settings, get_settings
from recordflow.domain.errors import Cancelled
from recordflow.domain.models import PipelineState, PipelineStatus, Record
from recordflow.enrichment import EnrichmentClient, ModelName, OllamaClient
from recordflow.events import PipelineEvents
from recordflow.generator import RecordGenerator
from recordflow.storage.abstract import RecordStore
from recordflow.sync import SyncTask
from recordflow.utils.logging import get_logger

log = get_logger(__name__)

INITIAL_ANNOTATION = "Waiting for minute mark..."
PROMPT_TEMPLATE = "The number is {value}. Write a funny status message (max 10 words)."


class PipelineCoordinator:
    """
    Idle/Running state machine around generator, store, enrichment and sync.

    Parameters
    ----------
    store : RecordStore
        Opened record store; the coordinator never opens or closes it.
    generator : RecordGenerator | None
        Record source. Defaults to a generator built from settings.
    enrichment : EnrichmentClient | None
        Text-generation client. Defaults to an OllamaClient from settings.
    sync_task : SyncTask | None
        Periodic sync loop started and stopped alongside the coordinator.
    events : PipelineEvents | None
        Signals for observers; shared with the default sync task.
    settings : Settings | None
        Threshold, model, timeout and fallback come from here.
    rng : random.Random | None
        Source of the random number in enrichment prompts.
    stop_timeout : float
        How long stop() waits for the consumption loop before cancelling it.
    """

    def __init__(
        self,
        store: RecordStore,
        generator: Optional[RecordGenerator] = None,
        enrichment: Optional[EnrichmentClient] = None,
        sync_task: Optional[SyncTask] = None,
        events: Optional[PipelineEvents] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        stop_timeout: float = 5.0,
    ) -> None:
        settings = settings or get_settings()
        self.store = store
        self.events = events or (sync_task.events if sync_task is not None else PipelineEvents())
        self.generator = generator or RecordGenerator()
        self.enrichment = enrichment or OllamaClient()
        self.sync_task = sync_task or SyncTask(store, events=self.events)

        self.threshold = settings.enrichment_threshold
        self.model: ModelName = settings.enrichment_model
        self.enrichment_timeout = settings.enrichment_timeout_seconds
        self.fallback_annotation = settings.enrichment_fallback
        self.stop_timeout = stop_timeout
        self._rng = rng or random.Random()

        self._lifecycle = asyncio.Lock()
        self._state = PipelineState.IDLE
        self._owner_id: Optional[str] = None
        self._token: Optional[CancelToken] = None
        self._task: Optional[asyncio.Task] = None

        # Mutated only by the consumption task.
        self._ticks = 0
        self._latest_annotation = INITIAL_ANNOTATION
        self._recent: Deque[Record] = deque(maxlen=settings.recent_window)
        self.processed = 0
        self.persisted = 0
        self.dropped = 0
        self.enrichments = 0
        self.last_error: Optional[str] = None

    # Observable state

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def latest_annotation(self) -> str:
        return self._latest_annotation

    @property
    def ticks(self) -> int:
        return self._ticks

    @property
    def recent(self) -> List[Record]:
        return list(self._recent)

    def status(self) -> PipelineStatus:
        return PipelineStatus(
            state=self._state,
            owner_id=self._owner_id,
            processed=self.processed,
            persisted=self.persisted,
            dropped=self.dropped,
            ticks=self._ticks,
            enrichments=self.enrichments,
            latest_annotation=self._latest_annotation,
            last_error=self.last_error or self.sync_task.last_error,
            last_sync_count=self.sync_task.last_synced_count,
            last_sync_at=self.sync_task.last_synced_at,
        )

    # Lifecycle

    async def start(self, owner_id: str) -> None:
        """Idle -> Running. No-op when already running; a failed pipeline is torn down first."""
        async with self._lifecycle:
            if self._state is PipelineState.RUNNING:
                return
            if self._state is PipelineState.FAILED:
                await self._teardown()
            self._owner_id = owner_id
            self._token = CancelToken()
            self.generator.start(owner_id)
            stream = self.generator.records()
            self._task = asyncio.create_task(
                self._consume(stream, self._token), name="pipeline-consumer"
            )
            self.sync_task.start()
            self._state = PipelineState.RUNNING
            log.info("[PIPELINE START]", extra={"owner_id": owner_id})

    async def stop(self) -> None:
        """Running/Failed -> Idle. Safe to call when idle or before start()."""
        async with self._lifecycle:
            if self._state is PipelineState.IDLE:
                return
            await self._teardown()

    async def _teardown(self) -> None:
        task, token = self._task, self._token
        self._task, self._token = None, None
        if token is not None:
            token.cancel()
        await self.generator.aclose()
        await self.sync_task.stop()
        if task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                log.warning("[PIPELINE STOP] consumer did not drain, cancelling")
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._state = PipelineState.IDLE
        log.info(
            "[PIPELINE STOP]",
            extra={
                "owner_id": self._owner_id,
                "processed": self.processed,
                "dropped": self.dropped,
            },
        )

    # Consumption loop

    async def _consume(self, stream: AsyncIterator[Record], token: CancelToken) -> None:
        try:
            async with aclosing(stream):
                async for record in stream:
                    if token.cancelled:
                        break
                    await self._handle(record, token)
        except Cancelled:
            log.debug("[PIPELINE] consumption cancelled mid-enrichment")
        except Exception as exc:  # noqa: BLE001 - surface unexpected failures as status
            self.last_error = str(exc)
            log.exception("[PIPELINE FAILED] consumption loop ended unexpectedly; call stop()")
            if not token.cancelled:
                # Nothing drains the queue any more.
                self.generator.stop()
                self._state = PipelineState.FAILED

    async def _handle(self, record: Record, token: CancelToken) -> None:
        self.processed += 1
        self._recent.append(record)
        try:
            await self.store.insert(record)
            self.persisted += 1
        except Exception as exc:  # noqa: BLE001 - at-most-once: drop and keep going
            self.dropped += 1
            self.last_error = f"insert failed: {exc}"
            log.warning(
                "[PIPELINE] insert failed, record dropped",
                extra={"record_id": record.id, "error": str(exc)},
            )
        await self._tick(record, token)

    async def _tick(self, record: Record, token: CancelToken) -> None:
        self._ticks += 1
        if self._ticks <= self.threshold:
            return
        self._ticks = 0
        await self._enrich(record, token)

    async def _enrich(self, record: Record, token: CancelToken) -> None:
        prompt = PROMPT_TEMPLATE.format(value=self._rng.randint(0, 100))
        self.enrichments += 1
        log.info("[ENRICHMENT START]", extra={"record_id": record.id, "model": str(self.model)})
        try:
            text = await self.enrichment.generate(
                self.model, prompt, timeout=self.enrichment_timeout, cancel=token
            )
        except Cancelled:
            raise
        except Exception as exc:  # noqa: BLE001 - enrichment failures fall back, never propagate
            self.last_error = f"enrichment failed: {exc}"
            log.warning("[ENRICHMENT FAILED]", extra={"error": str(exc)})
            annotation = self.fallback_annotation
        else:
            annotation = text
            try:
                await self.store.update_ai_text(record.id, text)
            except Exception as exc:  # noqa: BLE001 - annotation write is best effort
                log.warning(
                    "[ENRICHMENT] could not attach annotation",
                    extra={"record_id": record.id, "error": str(exc)},
                )
        self._latest_annotation = annotation
        self.events.annotation_updated.emit(annotation)


__all__ = ["INITIAL_ANNOTATION", "PROMPT_TEMPLATE", "PipelineCoordinator"]
