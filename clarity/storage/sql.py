"""
SQL-backed record store.

Blocking SQLAlchemy sessions run in the default executor so the event loop
keeps serving the other record operations of a chunk. Each call opens its
own short-lived session; writes touch exactly one batch row or one record row.
"""

import asyncio
from enum import Enum
from functools import partial
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy.orm import sessionmaker

from clarity.models import Batch, PayeeRecord, utcnow

from .base import BatchNotFoundError, RecordNotFoundError
from .tables import PayeeClassification, UploadBatch

logger = structlog.get_logger(__name__)

ACTIVE_STATUSES = ("processing",)


def _to_column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _row_to_dict(row: Any) -> dict[str, Any]:
    return {c.name: getattr(row, c.name) for c in row.__table__.columns}


class SqlRecordStore:
    """RecordStore on top of a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker, clock=utcnow):
        self._session_factory = session_factory
        self._clock = clock

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(fn, *args))

    # =========================================================================
    # Seeding
    # =========================================================================

    async def create_batch(
        self,
        records: Iterable[dict[str, Any]],
        filename: Optional[str] = None,
    ) -> Batch:
        """Insert a batch with its records and return it."""
        return await self._run(self._create_batch, list(records), filename)

    def _create_batch(self, records: list[dict[str, Any]], filename: Optional[str]) -> Batch:
        with self._session_factory() as session:
            batch = UploadBatch(filename=filename, total_records=len(records))
            session.add(batch)
            session.flush()
            session.add_all(
                PayeeClassification(
                    batch_id=batch.id,
                    **{k: _to_column_value(v) for k, v in data.items() if k != "id"},
                )
                for data in records
            )
            session.commit()
            logger.info("batch_created", batch_id=batch.id, records=len(records))
            return Batch.model_validate(_row_to_dict(batch))

    # =========================================================================
    # RecordStore
    # =========================================================================

    async def get_batch(self, batch_id: int | str) -> Batch:
        return await self._run(self._get_batch, batch_id)

    def _get_batch(self, batch_id: int | str) -> Batch:
        with self._session_factory() as session:
            row = session.get(UploadBatch, int(batch_id))
            if row is None:
                raise BatchNotFoundError(f"Batch not found: {batch_id}")
            return Batch.model_validate(_row_to_dict(row))

    async def get_batch_records(self, batch_id: int | str) -> list[PayeeRecord]:
        return await self._run(self._get_batch_records, batch_id)

    def _get_batch_records(self, batch_id: int | str) -> list[PayeeRecord]:
        with self._session_factory() as session:
            if session.get(UploadBatch, int(batch_id)) is None:
                raise BatchNotFoundError(f"Batch not found: {batch_id}")
            rows = (
                session.query(PayeeClassification)
                .filter(PayeeClassification.batch_id == int(batch_id))
                .order_by(PayeeClassification.id)
                .all()
            )
            return [PayeeRecord.model_validate(_row_to_dict(r)) for r in rows]

    async def update_record(self, record_id: int | str, fields: dict[str, Any]) -> None:
        await self._run(self._update_row, PayeeClassification, record_id, fields)

    async def update_batch(self, batch_id: int | str, fields: dict[str, Any]) -> None:
        await self._run(
            self._update_row,
            UploadBatch,
            batch_id,
            {"last_activity_at": self._clock(), **fields},
        )

    def _update_row(self, table, row_id: int | str, fields: dict[str, Any]) -> None:
        columns = set(table.__table__.columns.keys())
        unknown = set(fields) - columns
        if unknown:
            raise ValueError(f"Unknown {table.__tablename__} fields: {sorted(unknown)}")

        values = {k: _to_column_value(v) for k, v in fields.items()}
        with self._session_factory() as session:
            updated = (
                session.query(table)
                .filter(table.id == int(row_id))
                .update(values, synchronize_session=False)
            )
            session.commit()

        if updated == 0:
            if table is UploadBatch:
                raise BatchNotFoundError(f"Batch not found: {row_id}")
            raise RecordNotFoundError(f"Record not found: {row_id}")

    async def list_active_batches(self) -> list[Batch]:
        return await self._run(self._list_active_batches)

    def _list_active_batches(self) -> list[Batch]:
        with self._session_factory() as session:
            rows = (
                session.query(UploadBatch)
                .filter(UploadBatch.status.in_(ACTIVE_STATUSES))
                .order_by(UploadBatch.id)
                .all()
            )
            return [Batch.model_validate(_row_to_dict(r)) for r in rows]
