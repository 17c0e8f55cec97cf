"""In-process record store.

Used by tests and local dry runs. Objects handed out are copies, so callers
observe the same isolation they would get from a database.
"""

from itertools import count
from typing import Any, Iterable, Optional

from clarity.models import Batch, BatchStatus, PayeeRecord, utcnow

from .base import BatchNotFoundError, RecordNotFoundError


class InMemoryRecordStore:
    """Dict-backed RecordStore."""

    def __init__(self, clock=utcnow):
        self._clock = clock
        self._batches: dict[int | str, Batch] = {}
        self._records: dict[int | str, PayeeRecord] = {}
        self._ids = count(1)
        # (batch_id, fields) for every update_batch call, in order
        self.batch_writes: list[tuple[int | str, dict[str, Any]]] = []

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    def create_batch(
        self,
        records: Iterable[dict[str, Any]],
        filename: Optional[str] = None,
        batch_id: Optional[int | str] = None,
    ) -> Batch:
        """Create a batch and its records from plain dicts.

        Raises:
            ValueError: If the batch id or a record id is already in use.
        """
        batch_id = batch_id if batch_id is not None else next(self._ids)
        if batch_id in self._batches:
            raise ValueError(f"Batch id already in use: {batch_id}")

        new_records: dict[int | str, PayeeRecord] = {}
        for n, data in enumerate(records, start=1):
            record_id = data.get("id", f"{batch_id}-{n}")
            if record_id in self._records or record_id in new_records:
                raise ValueError(f"Record id already in use: {record_id}")
            new_records[record_id] = PayeeRecord(
                **{**data, "id": record_id, "batch_id": batch_id}
            )

        self._records.update(new_records)
        batch = Batch(id=batch_id, filename=filename, total_records=len(new_records))
        self._batches[batch_id] = batch
        return batch.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # RecordStore
    # -------------------------------------------------------------------------

    async def get_batch(self, batch_id: int | str) -> Batch:
        return self._require_batch(batch_id).model_copy(deep=True)

    async def get_batch_records(self, batch_id: int | str) -> list[PayeeRecord]:
        self._require_batch(batch_id)
        return [
            r.model_copy(deep=True)
            for r in self._records.values()
            if r.batch_id == batch_id
        ]

    async def update_record(self, record_id: int | str, fields: dict[str, Any]) -> None:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record not found: {record_id}")
        self._records[record_id] = record.model_copy(update=fields)

    async def update_batch(self, batch_id: int | str, fields: dict[str, Any]) -> None:
        batch = self._require_batch(batch_id)
        self.batch_writes.append((batch_id, dict(fields)))
        update = {"last_activity_at": self._clock(), **fields}
        self._batches[batch_id] = batch.model_copy(update=update)

    async def list_active_batches(self) -> list[Batch]:
        return [
            b.model_copy(deep=True)
            for b in self._batches.values()
            if b.status == BatchStatus.PROCESSING
        ]

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def record(self, record_id: int | str) -> PayeeRecord:
        return self._records[record_id]

    def batch(self, batch_id: int | str) -> Batch:
        return self._require_batch(batch_id)

    def _require_batch(self, batch_id: int | str) -> Batch:
        batch = self._batches.get(batch_id)
        if batch is None:
            raise BatchNotFoundError(f"Batch not found: {batch_id}")
        return batch
