"""Record store contract consumed by the pipeline engine."""

from typing import Any, Protocol, Sequence, runtime_checkable

from clarity.models import Batch, PayeeRecord


class BatchNotFoundError(LookupError):
    """Raised when a batch id is unknown to the store."""


class RecordNotFoundError(LookupError):
    """Raised when a record id is unknown to the store."""


@runtime_checkable
class RecordStore(Protocol):
    """Durable storage for batches and their payee records.

    Every write is scoped to one batch or one record. ``update_batch`` stamps
    ``last_activity_at`` so the watchdog can observe liveness.
    """

    async def get_batch(self, batch_id: int | str) -> Batch:
        ...

    async def get_batch_records(self, batch_id: int | str) -> Sequence[PayeeRecord]:
        ...

    async def update_record(self, record_id: int | str, fields: dict[str, Any]) -> None:
        ...

    async def update_batch(self, batch_id: int | str, fields: dict[str, Any]) -> None:
        ...

    async def list_active_batches(self) -> Sequence[Batch]:
        ...
