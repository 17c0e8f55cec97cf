"""
Pipeline Supervisor

Owns the long-lived background tasks of a process:
- one worker that runs submitted batches through the orchestrator, one at a time
- the stall watchdog

Both are started and stopped explicitly; dependencies are injected so tests
can build isolated instances around an in-memory store.
"""

import asyncio
from typing import Optional

import structlog

from clarity.config import Settings
from clarity.matching.base import Classifier, ExternalLookup, Matcher
from clarity.matching.classifier import KeywordClassifier
from clarity.models import Batch, BatchStatus
from clarity.pipeline.models import BatchOutcome
from clarity.pipeline.orchestrator import PipelineError, PipelineOrchestrator
from clarity.pipeline.stages import (
    ClassificationStage,
    ExternalLookupStage,
    SupplierMatchStage,
)
from clarity.pipeline.watchdog import BatchWatchdog
from clarity.storage.base import RecordStore

logger = structlog.get_logger(__name__)


class PipelineSupervisor:
    """Process-level owner of the batch worker and the watchdog."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        watchdog: Optional[BatchWatchdog] = None,
        max_outcomes: int = 1000,
    ):
        self.orchestrator = orchestrator
        self.watchdog = watchdog
        self.max_outcomes = max_outcomes
        # Most recent outcome per batch, oldest evicted first
        self.outcomes: dict[int | str, BatchOutcome] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._work(), name="batch-worker")
        if self.watchdog is not None:
            self.watchdog.start()
        logger.info("supervisor_started", watchdog=self.watchdog is not None)

    async def stop(self, drain: bool = True) -> None:
        """Stop the worker (after finishing queued batches if ``drain``) and the watchdog."""
        if self._worker is not None:
            if drain:
                await self._queue.join()
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        if self.watchdog is not None:
            await self.watchdog.stop()
        logger.info("supervisor_stopped")

    async def submit(self, batch_id: int | str) -> None:
        """Queue a batch for processing.

        The batch is put back to ``pending`` first, so waiters polling a
        resubmitted batch do not see the previous run's terminal status.

        Raises:
            PipelineError: If the supervisor has not been started.
            BatchNotFoundError: If the store does not know the batch.
        """
        if not self.running:
            raise PipelineError("Supervisor is not running; call start() first")
        await self.orchestrator.store.update_batch(batch_id, {
            "status": BatchStatus.PENDING,
            "completed_at": None,
            "progress_message": "Queued for enrichment",
        })
        await self._queue.put(batch_id)
        logger.info("batch_submitted", batch_id=batch_id, queued=self._queue.qsize())

    async def _work(self) -> None:
        while True:
            batch_id = await self._queue.get()
            try:
                self._record_outcome(batch_id, await self.orchestrator.run(batch_id))
            except Exception as e:
                # Store unreachable or unknown batch; the watchdog catches the leftovers
                logger.exception("batch_run_crashed", batch_id=batch_id, error=str(e))
            finally:
                self._queue.task_done()

    def _record_outcome(self, batch_id: int | str, outcome: BatchOutcome) -> None:
        self.outcomes.pop(batch_id, None)
        self.outcomes[batch_id] = outcome
        while len(self.outcomes) > self.max_outcomes:
            self.outcomes.pop(next(iter(self.outcomes)))

    async def __aenter__(self) -> "PipelineSupervisor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop(drain=exc_type is None)


async def wait_for_batch(
    store: RecordStore,
    batch_id: int | str,
    poll_interval: float = 1.0,
    timeout: Optional[float] = None,
) -> Batch:
    """Poll until the batch reaches a terminal status (completed, failed, stalled).

    Raises:
        asyncio.TimeoutError: If ``timeout`` seconds pass first.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None

    while True:
        batch = await store.get_batch(batch_id)
        if BatchStatus(batch.status).is_terminal:
            return batch
        if deadline is not None and loop.time() >= deadline:
            raise asyncio.TimeoutError(
                f"Batch {batch_id} still {BatchStatus(batch.status).value} after {timeout}s"
            )
        await asyncio.sleep(poll_interval)


def build_orchestrator(
    settings: Settings,
    store: RecordStore,
    matcher: Matcher,
    classifier: Optional[Classifier] = None,
    lookup: Optional[ExternalLookup] = None,
) -> PipelineOrchestrator:
    """Assemble the default classification → supplier match → lookup pipeline."""
    stages = [
        ClassificationStage(store, classifier or KeywordClassifier()),
        SupplierMatchStage(store, matcher),
        ExternalLookupStage(store, lookup),
    ]
    return PipelineOrchestrator(store, stages, settings)


def build_supervisor(
    settings: Settings,
    store: RecordStore,
    matcher: Matcher,
    classifier: Optional[Classifier] = None,
    lookup: Optional[ExternalLookup] = None,
) -> PipelineSupervisor:
    orchestrator = build_orchestrator(settings, store, matcher, classifier, lookup)
    watchdog = BatchWatchdog(
        store,
        descriptors=orchestrator.descriptors,
        stall_threshold_seconds=settings.stall_threshold_seconds,
        interval_seconds=settings.watchdog_interval_seconds,
    )
    return PipelineSupervisor(orchestrator, watchdog)
