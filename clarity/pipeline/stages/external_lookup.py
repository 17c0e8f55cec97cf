"""Stage 3: External lookup for business payees.

Calls a third-party directory (merchant search, address validation, ...)
through the ExternalLookup capability. The stage is disabled when no lookup
is configured. Third-party APIs are rate limited, so the default settings
give this stage smaller chunks and a lower concurrency limit.
"""

from typing import Awaitable, Callable, Optional

import structlog

from clarity.matching.base import ExternalLookup, MatcherUnavailableError
from clarity.models import LookupStatus, PayeeRecord, PayeeType
from clarity.pipeline.models import FaultKind, RecordOutcome, StageDescriptor
from clarity.storage.base import RecordStore

from .base import ChunkedStage

logger = structlog.get_logger(__name__)


class ExternalLookupStage(ChunkedStage):
    default_name = "external_lookup"
    default_order = 3
    default_label = "External lookup"

    verb = "Found"
    completion_suffix = "business payees in external lookup"

    def __init__(
        self,
        store: RecordStore,
        lookup: Optional[ExternalLookup],
        descriptor: Optional[StageDescriptor] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        descriptor = descriptor or StageDescriptor(
            name=self.default_name,
            order=self.default_order,
            label=self.default_label,
            enabled=lookup is not None,
        )
        super().__init__(store, descriptor=descriptor, sleep=sleep)
        self.lookup = lookup

    async def select_records(self, batch_id):
        records = await self.store.get_batch_records(batch_id)
        return [r for r in records if r.payee_type == PayeeType.BUSINESS]

    async def process_record(self, record: PayeeRecord) -> RecordOutcome:
        try:
            result = await self.lookup.lookup(record.match_name, record.location_hints)
        except MatcherUnavailableError as e:
            logger.warning("external_lookup_unavailable", record_id=record.id, error=str(e))
            return RecordOutcome(record_id=record.id, fault=FaultKind.RECORD, error=str(e))

        if not result.found:
            await self.store.update_record(record.id, {
                "lookup_status": LookupStatus.NOT_FOUND,
                "lookup_reference": None,
                "lookup_details": None,
            })
            return RecordOutcome(record_id=record.id)

        await self.store.update_record(record.id, {
            "lookup_status": LookupStatus.FOUND,
            "lookup_reference": result.reference_id,
            "lookup_details": result.details,
        })
        return RecordOutcome(record_id=record.id, succeeded=True)
