"""Pydantic data models for batches and payee records."""

from .enums import (
    BatchStatus,
    ClassificationStatus,
    LookupStatus,
    PayeeType,
    StageStatus,
)
from .batch import Batch, utcnow
from .records import PayeeRecord

__all__ = [
    # Enums
    "BatchStatus",
    "StageStatus",
    "PayeeType",
    "ClassificationStatus",
    "LookupStatus",
    # Models
    "Batch",
    "PayeeRecord",
    "utcnow",
]
