"""Batch enrichment pipeline engine.

Stages run in order per batch; each stage processes records in sequential
chunks with bounded concurrency inside a chunk. Failures are contained at
the narrowest level (record → chunk → stage), and a watchdog flags batches
that stop making progress.

Usage:
    from clarity.pipeline import build_supervisor, wait_for_batch

    async with build_supervisor(settings, store, matcher) as supervisor:
        await supervisor.submit(batch_id)
        batch = await wait_for_batch(store, batch_id)
"""

from clarity.pipeline.models import (
    BatchOutcome,
    ChunkResult,
    FaultKind,
    RecordOutcome,
    RunSummary,
    StageDescriptor,
    StageOutcome,
    percent,
)
from clarity.pipeline.runner import partition, run_chunked
from clarity.pipeline.stages import (
    ChunkedStage,
    ClassificationStage,
    ExternalLookupStage,
    Stage,
    SupplierMatchStage,
)
from clarity.pipeline.orchestrator import PipelineError, PipelineOrchestrator
from clarity.pipeline.watchdog import BatchWatchdog, StalledBatch
from clarity.pipeline.supervisor import (
    PipelineSupervisor,
    build_orchestrator,
    build_supervisor,
    wait_for_batch,
)

__all__ = [
    # Outcomes
    "FaultKind",
    "RecordOutcome",
    "ChunkResult",
    "RunSummary",
    "StageOutcome",
    "BatchOutcome",
    "StageDescriptor",
    "percent",
    # Runner
    "run_chunked",
    "partition",
    # Stages
    "Stage",
    "ChunkedStage",
    "ClassificationStage",
    "SupplierMatchStage",
    "ExternalLookupStage",
    # Orchestration
    "PipelineOrchestrator",
    "PipelineError",
    "BatchWatchdog",
    "StalledBatch",
    "PipelineSupervisor",
    "build_orchestrator",
    "build_supervisor",
    "wait_for_batch",
]
