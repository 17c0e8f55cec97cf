"""Stage contract and the chunked reference implementation.

Every stage exposes ``execute(batch_id, options) -> StageOutcome``. The
chunked stage runs the same lifecycle for all record-level enrichments:

    processing → (skipped | run chunks → completed) | error

Progress and messages are written to the batch row so status consumers and
the watchdog see every transition.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Sequence

import structlog

from clarity.config import StageOptions
from clarity.models import PayeeRecord, StageStatus, utcnow
from clarity.pipeline.models import (
    FaultKind,
    RecordOutcome,
    RunSummary,
    StageDescriptor,
    StageOutcome,
    percent,
)
from clarity.pipeline.runner import run_chunked
from clarity.storage.base import RecordStore

logger = structlog.get_logger(__name__)


class Stage(ABC):
    """One named, ordered unit of enrichment work over a batch."""

    descriptor: StageDescriptor

    @property
    def name(self) -> str:
        return self.descriptor.name

    @abstractmethod
    async def execute(
        self,
        batch_id: int | str,
        options: Optional[StageOptions] = None,
    ) -> StageOutcome:
        """Run the stage for one batch and report how it ended."""


class ChunkedStage(Stage):
    """Record-by-record stage driven by the chunked concurrency runner.

    Subclasses set the class-level defaults and implement ``process_record``;
    ``select_records`` can be narrowed to the records the stage applies to.
    """

    default_name: str = ""
    default_order: int = 0
    default_label: Optional[str] = None

    # Message vocabulary, e.g. "Matched 40/120"
    verb: str = "Processed"
    completion_suffix: str = "payees"

    def __init__(
        self,
        store: RecordStore,
        descriptor: Optional[StageDescriptor] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.store = store
        self.descriptor = descriptor or StageDescriptor(
            name=self.default_name,
            order=self.default_order,
            label=self.default_label,
        )
        self._sleep = sleep

    # =========================================================================
    # Hooks
    # =========================================================================

    async def select_records(self, batch_id: int | str) -> Sequence[PayeeRecord]:
        """Records this stage should process (all records by default)."""
        return await self.store.get_batch_records(batch_id)

    @abstractmethod
    async def process_record(self, record: PayeeRecord) -> RecordOutcome:
        """Enrich one record; write its fields in a single update."""

    @property
    def step_label(self) -> str:
        return self.descriptor.display_name

    def progress_message(self, processed: int, succeeded: int, progress: int) -> str:
        return (
            f"{self.descriptor.display_name}: {self.verb} "
            f"{succeeded}/{processed} ({progress}%)..."
        )

    def completion_message(self, summary: RunSummary) -> str:
        message = f"{self.verb} {summary.succeeded}/{summary.processed} {self.completion_suffix}"
        if summary.unprocessed:
            message += (
                f" ({summary.unprocessed} of {summary.total} records not processed:"
                f" {len(summary.chunk_faults)} chunk(s) failed)"
            )
        return message

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def execute(
        self,
        batch_id: int | str,
        options: Optional[StageOptions] = None,
    ) -> StageOutcome:
        options = options or StageOptions()
        d = self.descriptor
        log = logger.bind(stage=d.name, batch_id=batch_id)

        try:
            await self.store.update_batch(batch_id, {
                d.status_field: StageStatus.PROCESSING,
                d.progress_field: 0,
                "current_step": self.step_label,
                "progress_message": f"{self.step_label}: starting...",
            })

            records = await self.select_records(batch_id)
            if not records:
                message = f"{d.display_name}: no eligible records"
                log.info("stage_skipped", reason="no_eligible_records")
                await self.store.update_batch(batch_id, {
                    d.status_field: StageStatus.SKIPPED,
                    d.completed_field: utcnow(),
                    "progress_message": message,
                })
                return StageOutcome(stage=d.name, status=StageStatus.SKIPPED, message=message)

            log.info("stage_start", records=len(records))

            async def on_progress(processed: int, succeeded: int, total: int) -> None:
                progress = percent(processed, total)
                await self.store.update_batch(batch_id, {
                    d.progress_field: progress,
                    "progress_message": self.progress_message(processed, succeeded, progress),
                })

            run_kwargs = {"sleep": self._sleep} if self._sleep else {}
            summary = await run_chunked(
                records,
                self.process_record,
                options,
                on_progress=on_progress,
                **run_kwargs,
            )

            message = self.completion_message(summary)
            await self.store.update_batch(batch_id, {
                d.status_field: StageStatus.COMPLETED,
                d.completed_field: utcnow(),
                "current_step": f"{d.display_name} complete",
                "progress_message": message,
            })

            log.info(
                "stage_complete",
                processed=summary.processed,
                succeeded=summary.succeeded,
                failed=summary.failed,
                unprocessed=summary.unprocessed,
            )
            return StageOutcome(
                stage=d.name,
                status=StageStatus.COMPLETED,
                message=message,
                summary=summary,
            )

        except Exception as e:
            log.exception("stage_failed", error=str(e))
            message = f"Error: {e}"
            try:
                await self.store.update_batch(batch_id, {
                    d.status_field: StageStatus.ERROR,
                    "current_step": f"{d.display_name} failed",
                    "progress_message": message,
                })
            except Exception as write_error:
                log.error("stage_error_status_write_failed", error=str(write_error))

            return StageOutcome(
                stage=d.name,
                status=StageStatus.ERROR,
                message=message,
                fault=FaultKind.STAGE,
            )
