"""Batch watchdog - flags in-flight batches that stopped making progress.

Every cycle the watchdog lists the batches still processing and compares
their ``last_activity_at`` with the stall threshold. A stale batch gets its
running stage set to ``error`` and the batch set to ``stalled``, which is the
terminal status polling consumers wait for. Nothing is cancelled: a stage
that is merely slow may keep writing afterwards (last writer wins).
"""

import asyncio
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog

from clarity.models import Batch, BatchStatus, StageStatus, utcnow
from clarity.pipeline.models import FaultKind, StageDescriptor
from clarity.storage.base import RecordStore

logger = structlog.get_logger(__name__)


@dataclass
class StalledBatch:
    """A batch the watchdog forced into the stalled state."""

    batch_id: int | str
    stage: Optional[str]
    idle_seconds: float
    message: str
    fault: FaultKind = FaultKind.STALL


class BatchWatchdog:
    """Periodic stall detector with an explicit start/stop lifecycle."""

    def __init__(
        self,
        store: RecordStore,
        descriptors: Iterable[StageDescriptor] = (),
        stall_threshold_seconds: float = 300.0,
        interval_seconds: float = 60.0,
        clock=utcnow,
    ):
        self.store = store
        self.descriptors = list(descriptors)
        self.stall_threshold_seconds = stall_threshold_seconds
        self.interval_seconds = interval_seconds
        self._clock = clock
        # Created on start so the event belongs to the running loop
        self._stopping: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start the monitoring loop on the running event loop."""
        if self.running:
            return self._task
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self.run(), name="batch-watchdog")
        logger.info(
            "watchdog_started",
            interval_seconds=self.interval_seconds,
            stall_threshold_seconds=self.stall_threshold_seconds,
        )
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("watchdog_stopped")

    async def run(self) -> None:
        """Scan until stopped. A failed scan is logged and retried next cycle."""
        if self._stopping is None:
            self._stopping = asyncio.Event()
        while not self._stopping.is_set():
            try:
                await self.scan_once()
            except Exception as e:
                logger.exception("watchdog_scan_failed", error=str(e))

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    # =========================================================================
    # Scanning
    # =========================================================================

    async def scan_once(self) -> list[StalledBatch]:
        """Check every active batch once; return the ones flagged stalled."""
        now = self._clock()
        batches = await self.store.list_active_batches()
        stalled: list[StalledBatch] = []

        for batch in batches:
            idle = batch.idle_seconds(now)
            if idle <= self.stall_threshold_seconds:
                continue
            try:
                stalled.append(await self._mark_stalled(batch, idle, now))
            except Exception as e:
                logger.error("watchdog_mark_failed", batch_id=batch.id, error=str(e))

        logger.debug("watchdog_scan_complete", active=len(batches), stalled=len(stalled))
        return stalled

    def _running_stage_fields(self, batch: Batch) -> list[str]:
        fields = [
            d.status_field
            for d in self.descriptors
            if d.name == batch.current_stage
            or batch.stage_status(d.status_field) is StageStatus.PROCESSING
        ]
        if not fields and batch.current_stage:
            fields.append(StageDescriptor(name=batch.current_stage, order=0).status_field)
        return fields

    async def _mark_stalled(self, batch: Batch, idle: float, now) -> StalledBatch:
        message = f"Stalled: no activity for {int(idle)}s"
        fields = {field: StageStatus.ERROR for field in self._running_stage_fields(batch)}
        fields.update({
            "status": BatchStatus.STALLED,
            "current_step": "Stalled",
            "progress_message": message,
            "completed_at": now,
        })
        await self.store.update_batch(batch.id, fields)

        logger.warning(
            "batch_stalled",
            batch_id=batch.id,
            stage=batch.current_stage,
            idle_seconds=round(idle, 1),
            threshold_seconds=self.stall_threshold_seconds,
        )
        return StalledBatch(
            batch_id=batch.id,
            stage=batch.current_stage,
            idle_seconds=idle,
            message=message,
        )
