"""Record stores and the reference supplier cache."""

from .base import BatchNotFoundError, RecordNotFoundError, RecordStore
from .memory import InMemoryRecordStore
from .sql import SqlRecordStore

__all__ = [
    "RecordStore",
    "BatchNotFoundError",
    "RecordNotFoundError",
    "InMemoryRecordStore",
    "SqlRecordStore",
]
