"""Enumeration types for batches and payee records."""

from enum import Enum


class StageStatus(str, Enum):
    """Status of a single pipeline stage for one batch."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StageStatus.COMPLETED, StageStatus.SKIPPED, StageStatus.ERROR)


class BatchStatus(str, Enum):
    """Overall status of an uploaded batch."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    STALLED = "stalled"

    @property
    def is_terminal(self) -> bool:
        return self not in (BatchStatus.PENDING, BatchStatus.PROCESSING)


class PayeeType(str, Enum):
    """Classification of a payee."""

    BUSINESS = "Business"
    INDIVIDUAL = "Individual"
    GOVERNMENT = "Government"
    UNKNOWN = "Unknown"


class ClassificationStatus(str, Enum):
    """Classification state flag on a payee record."""

    PENDING = "pending"
    CLASSIFIED = "classified"
    FAILED = "failed"


class LookupStatus(str, Enum):
    """Result of an external lookup for a payee record."""

    FOUND = "found"
    NOT_FOUND = "not_found"
