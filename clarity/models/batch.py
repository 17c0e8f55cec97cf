"""Batch model - one uploaded group of payee records."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import BatchStatus, StageStatus


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo, so everything stays naive)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Batch(BaseModel):
    """Batch-level status and progress as persisted in the record store.

    Per-stage state lives in flat fields named by each stage descriptor
    (``<stage>_status``, ``<stage>_progress``, ``<stage>_completed_at``).
    The built-in stages are declared below; extra stage fields are allowed
    so custom stages can be plugged in without a schema change.
    """

    model_config = ConfigDict(extra="allow")

    id: int | str = Field(description="Opaque batch id assigned by the store")
    filename: Optional[str] = Field(None, description="Original upload filename")
    total_records: int = Field(default=0, ge=0)

    status: BatchStatus = Field(default=BatchStatus.PENDING)
    current_stage: Optional[str] = Field(
        None, description="Name of the stage currently in flight"
    )
    current_step: Optional[str] = Field(None, description="Human-readable step label")
    progress_message: Optional[str] = Field(None)

    # Stage 1: Classification
    classification_status: StageStatus = StageStatus.PENDING
    classification_progress: int = Field(default=0, ge=0, le=100)
    classification_completed_at: Optional[datetime] = None

    # Stage 2: Supplier matching
    supplier_match_status: StageStatus = StageStatus.PENDING
    supplier_match_progress: int = Field(default=0, ge=0, le=100)
    supplier_match_completed_at: Optional[datetime] = None

    # Stage 3: External lookup
    external_lookup_status: StageStatus = StageStatus.PENDING
    external_lookup_progress: int = Field(default=0, ge=0, le=100)
    external_lookup_completed_at: Optional[datetime] = None

    # Liveness
    created_at: datetime = Field(default_factory=utcnow)
    last_activity_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def field(self, name: str, default: Any = None) -> Any:
        """Read a descriptor-named field (declared or extra)."""
        return getattr(self, name, default)

    def stage_status(self, status_field: str) -> StageStatus:
        value = self.field(status_field)
        if value is None:
            return StageStatus.PENDING
        return StageStatus(value)

    def idle_seconds(self, now: datetime) -> float:
        """Seconds since the last recorded activity (falls back to creation time)."""
        reference = self.last_activity_at or self.created_at
        return max(0.0, (now - reference).total_seconds())
