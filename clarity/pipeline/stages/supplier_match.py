"""Stage 2: Supplier matching against the reference supplier dataset.

Per record:
- Ask the matcher with the cleaned name (or original) plus city/state hints
- Positive match: write all supplier fields in one update
- Negative match or matcher outage: leave the record untouched (non-match)
"""

from typing import Awaitable, Callable, Optional

import structlog

from clarity.matching.base import Matcher, MatcherUnavailableError
from clarity.models import PayeeRecord, utcnow
from clarity.pipeline.models import FaultKind, RecordOutcome, StageDescriptor
from clarity.storage.base import RecordStore

from .base import ChunkedStage

logger = structlog.get_logger(__name__)


class SupplierMatchStage(ChunkedStage):
    """Match each payee to a reference supplier."""

    default_name = "supplier_match"
    default_order = 2
    default_label = "Supplier match"

    verb = "Matched"
    completion_suffix = "payees with reference suppliers"

    def __init__(
        self,
        store: RecordStore,
        matcher: Matcher,
        descriptor: Optional[StageDescriptor] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        super().__init__(store, descriptor=descriptor, sleep=sleep)
        self.matcher = matcher

    @property
    def step_label(self) -> str:
        return "Matching with reference suppliers"

    async def process_record(self, record: PayeeRecord) -> RecordOutcome:
        try:
            result = await self.matcher.match(record.match_name, record.location_hints)
        except MatcherUnavailableError as e:
            logger.warning("supplier_matcher_unavailable", record_id=record.id, error=str(e))
            return RecordOutcome(record_id=record.id, fault=FaultKind.RECORD, error=str(e))

        if not (result.matched and result.candidate_id):
            return RecordOutcome(record_id=record.id)

        await self.store.update_record(record.id, {
            "supplier_id": result.candidate_id,
            "supplier_name": result.candidate_name or record.match_name,
            "supplier_confidence": result.confidence,
            "supplier_match_reasoning": f"{result.method}: {result.reasoning}",
            "supplier_matched_at": utcnow(),
        })
        return RecordOutcome(record_id=record.id, succeeded=True)
