"""Pipeline orchestrator - runs the enabled stages of a batch in order.

Stage N+1 never starts before stage N has returned. Each transition is
written to the record store before the stage runs, which is also what keeps
the batch's ``last_activity_at`` fresh for the watchdog.

A failed stage is fatal to the batch by default: later stages are not run
and the batch is marked failed. With ``continue_on_stage_error`` the
remaining stages still run and the batch ends ``completed_with_errors``.
Retrying a failed batch is a resubmission, not something done here.
"""

from typing import Iterable, Optional

import structlog

from clarity.config import Settings, StageOptions
from clarity.models import BatchStatus, StageStatus, utcnow
from clarity.pipeline.models import BatchOutcome, FaultKind, StageOutcome
from clarity.pipeline.stages.base import Stage
from clarity.storage.base import RecordStore

logger = structlog.get_logger(__name__)


class PipelineError(Exception):
    """Error in how the pipeline was assembled or invoked."""
    pass


class PipelineOrchestrator:
    """Owns the ordered list of stages and drives one batch at a time."""

    def __init__(
        self,
        store: RecordStore,
        stages: Iterable[Stage],
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or Settings()

        stages = list(stages)
        names = [s.name for s in stages]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise PipelineError(f"Duplicate stage names: {sorted(duplicates)}")

        disabled = set(self.settings.disabled_stages)
        # sorted() is stable, so equal orders keep declaration order
        self.stages: list[Stage] = sorted(
            (s for s in stages if s.descriptor.enabled and s.name not in disabled),
            key=lambda s: s.descriptor.order,
        )

    @property
    def descriptors(self):
        return [s.descriptor for s in self.stages]

    def options_for(self, stage: Stage) -> StageOptions:
        return self.settings.options_for(stage.name)

    async def run(self, batch_id: int | str) -> BatchOutcome:
        """Run every enabled stage for ``batch_id``.

        Raises:
            BatchNotFoundError: If the store does not know the batch.
        """
        log = logger.bind(batch_id=batch_id)
        batch = await self.store.get_batch(batch_id)
        log.info(
            "pipeline_start",
            total_records=batch.total_records,
            stages=[s.name for s in self.stages],
        )

        await self.store.update_batch(batch_id, {
            "status": BatchStatus.PROCESSING,
            "completed_at": None,
            "progress_message": "Queued for enrichment",
        })

        outcome = BatchOutcome(batch_id=batch_id, status=BatchStatus.PROCESSING)

        for stage in self.stages:
            stage_outcome = await self._run_stage(batch_id, stage)
            outcome.stages.append(stage_outcome)

            if stage_outcome.failed and not self.settings.continue_on_stage_error:
                outcome.status = BatchStatus.FAILED
                outcome.message = stage_outcome.message
                await self.store.update_batch(batch_id, {
                    "status": BatchStatus.FAILED,
                    "current_stage": None,
                    "current_step": f"{stage.descriptor.display_name} failed",
                    "progress_message": stage_outcome.message,
                    "completed_at": utcnow(),
                })
                log.error(
                    "pipeline_failed",
                    stage=stage.name,
                    error=stage_outcome.message,
                    skipped_stages=[s.name for s in self.stages[len(outcome.stages):]],
                )
                return outcome

        if outcome.failed_stages:
            outcome.status = BatchStatus.COMPLETED_WITH_ERRORS
            outcome.message = f"Completed with errors in: {', '.join(outcome.failed_stages)}"
        else:
            outcome.status = BatchStatus.COMPLETED
            outcome.message = _final_message(outcome.stages)

        await self.store.update_batch(batch_id, {
            "status": outcome.status,
            "current_stage": None,
            "current_step": "Enrichment complete",
            "progress_message": outcome.message,
            "completed_at": utcnow(),
        })
        log.info("pipeline_complete", status=outcome.status.value, failed_stages=outcome.failed_stages)
        return outcome

    async def _run_stage(self, batch_id: int | str, stage: Stage) -> StageOutcome:
        d = stage.descriptor
        await self.store.update_batch(batch_id, {
            d.status_field: StageStatus.PROCESSING,
            d.progress_field: 0,
            "current_stage": d.name,
            "current_step": d.display_name,
        })

        try:
            return await stage.execute(batch_id, self.options_for(stage))
        except Exception as e:
            # Stages report failures as outcomes; this is a stage bug
            logger.exception("stage_raised", stage=d.name, batch_id=batch_id, error=str(e))
            message = f"Error: {e}"
            await self.store.update_batch(batch_id, {
                d.status_field: StageStatus.ERROR,
                "progress_message": message,
            })
            return StageOutcome(
                stage=d.name,
                status=StageStatus.ERROR,
                message=message,
                fault=FaultKind.STAGE,
            )


def _final_message(stages: list[StageOutcome]) -> str:
    """Message of the last stage that did work, else a generic one."""
    for stage in reversed(stages):
        if stage.status is StageStatus.COMPLETED and stage.message:
            return stage.message
    return "Enrichment complete"
