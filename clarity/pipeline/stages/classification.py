"""Stage 1: Payee classification.

Normalizes each name and decides Business / Individual / Government.
Already-classified records are skipped unless ``reclassify`` is set, so a
resubmitted batch only pays for what is missing.
"""

from typing import Awaitable, Callable, Optional

import structlog

from clarity.matching.base import Classifier, MatcherUnavailableError
from clarity.matching.normalize import normalize_name
from clarity.models import ClassificationStatus, PayeeRecord
from clarity.pipeline.models import FaultKind, RecordOutcome, StageDescriptor
from clarity.storage.base import RecordStore

from .base import ChunkedStage

logger = structlog.get_logger(__name__)


class ClassificationStage(ChunkedStage):
    default_name = "classification"
    default_order = 1
    default_label = "Classification"

    verb = "Classified"

    def __init__(
        self,
        store: RecordStore,
        classifier: Classifier,
        reclassify: bool = False,
        descriptor: Optional[StageDescriptor] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        super().__init__(store, descriptor=descriptor, sleep=sleep)
        self.classifier = classifier
        self.reclassify = reclassify

    @property
    def step_label(self) -> str:
        return "Classifying payees"

    async def select_records(self, batch_id):
        records = await self.store.get_batch_records(batch_id)
        if self.reclassify:
            return records
        return [r for r in records if r.classification_status != ClassificationStatus.CLASSIFIED]

    async def process_record(self, record: PayeeRecord) -> RecordOutcome:
        cleaned = normalize_name(record.original_name)
        try:
            result = await self.classifier.classify(cleaned)
        except MatcherUnavailableError as e:
            logger.warning("classifier_unavailable", record_id=record.id, error=str(e))
            await self.store.update_record(record.id, {
                "cleaned_name": cleaned,
                "classification_status": ClassificationStatus.FAILED,
            })
            return RecordOutcome(record_id=record.id, fault=FaultKind.RECORD, error=str(e))

        await self.store.update_record(record.id, {
            "cleaned_name": cleaned,
            "payee_type": result.payee_type,
            "classification_confidence": result.confidence,
            "classification_reasoning": result.reasoning,
            "classification_status": ClassificationStatus.CLASSIFIED,
        })
        return RecordOutcome(record_id=record.id, succeeded=True)
