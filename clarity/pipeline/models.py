"""Contracts between the runner, stages and the orchestrator.

Outcome flow:
1. Record operation   → RecordOutcome
2. Chunk              → ChunkResult
3. Chunked run        → RunSummary
4. Stage              → StageOutcome
5. Batch              → BatchOutcome

Each layer carries an optional FaultKind so failures are reported upward as
values. Exceptions are left for conditions nobody anticipated.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from clarity.models import BatchStatus, StageStatus


class FaultKind(str, Enum):
    """Where a failure was contained."""

    RECORD = "record"   # matcher/classifier error for one record
    CHUNK = "chunk"     # chunk orchestration raised, chunk not counted
    STAGE = "stage"     # exception escaped the stage, batch fails
    STALL = "stall"     # no activity observed by the watchdog


@dataclass(frozen=True)
class StageDescriptor:
    """Static metadata for one stage; immutable once the pipeline is built."""

    name: str
    order: int
    enabled: bool = True
    label: Optional[str] = None

    @property
    def status_field(self) -> str:
        return f"{self.name}_status"

    @property
    def progress_field(self) -> str:
        return f"{self.name}_progress"

    @property
    def completed_field(self) -> str:
        return f"{self.name}_completed_at"

    @property
    def display_name(self) -> str:
        return self.label or self.name.replace("_", " ").capitalize()


@dataclass
class RecordOutcome:
    """Result of one record operation."""

    record_id: int | str
    succeeded: bool = False
    fault: Optional[FaultKind] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.fault is not None


@dataclass
class ChunkResult:
    """Per-chunk aggregate; never persisted."""

    index: int
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    fault: Optional[FaultKind] = None
    error: Optional[str] = None


@dataclass
class RunSummary:
    """Totals for one chunked run over a stage's records."""

    total: int
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    chunks: list[ChunkResult] = field(default_factory=list)

    @property
    def chunk_faults(self) -> list[ChunkResult]:
        return [c for c in self.chunks if c.fault is FaultKind.CHUNK]

    @property
    def unprocessed(self) -> int:
        return self.total - self.processed

    @property
    def progress(self) -> int:
        return percent(self.processed, self.total)


@dataclass
class StageOutcome:
    """What a stage reports back to the orchestrator."""

    stage: str
    status: StageStatus
    message: str = ""
    summary: Optional[RunSummary] = None
    fault: Optional[FaultKind] = None

    @property
    def failed(self) -> bool:
        return self.status is StageStatus.ERROR


@dataclass
class BatchOutcome:
    """Aggregate of every stage outcome for a batch run."""

    batch_id: int | str
    status: BatchStatus
    stages: list[StageOutcome] = field(default_factory=list)
    message: str = ""

    @property
    def failed_stages(self) -> list[str]:
        return [s.stage for s in self.stages if s.failed]


def percent(processed: int, total: int) -> int:
    """Integer progress percentage, rounded half away from zero."""
    if total <= 0:
        return 100
    return min(100, int(processed * 100 / total + 0.5))
