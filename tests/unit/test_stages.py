"""Unit tests for the chunked stage lifecycle and the built-in stages."""

import asyncio

from clarity.config import StageOptions
from clarity.matching import ClassificationResult, LookupResult, MatcherUnavailableError
from clarity.models import ClassificationStatus, LookupStatus, PayeeType, StageStatus
from clarity.pipeline import (
    ClassificationStage,
    ExternalLookupStage,
    FaultKind,
    SupplierMatchStage,
)

from conftest import PrefixMatcher, make_payees, no_sleep


def _run(coro):
    return asyncio.run(coro)


def _writes_for(store, field):
    return [fields[field] for _, fields in store.batch_writes if field in fields]


class FixedClassifier:
    def __init__(self, payee_type=PayeeType.BUSINESS, fail=False):
        self.payee_type = payee_type
        self.fail = fail
        self.calls = []

    async def classify(self, name):
        self.calls.append(name)
        if self.fail:
            raise MatcherUnavailableError("classifier down")
        return ClassificationResult(payee_type=self.payee_type, confidence=0.9, reasoning="fixed")


class DirectoryLookup:
    def __init__(self, known=()):
        self.known = set(known)
        self.calls = []

    async def lookup(self, name, hints):
        self.calls.append(name)
        if name in self.known:
            return LookupResult(found=True, reference_id=f"EXT-{name}", details={"source": "test"})
        return LookupResult(found=False)


class FailingUpdateStore:
    """Wraps a store so record reads raise once the stage has started."""

    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def get_batch_records(self, batch_id):
        raise ConnectionError("database gone")


class TestSupplierMatchStage:
    """Tests for SupplierMatchStage."""

    def test_writes_supplier_fields_for_matches(self, store, matcher, fast_options):
        batch = store.create_batch(make_payees(120, matching=40))
        stage = SupplierMatchStage(store, matcher, sleep=no_sleep)

        outcome = _run(stage.execute(batch.id, fast_options))

        assert outcome.status == StageStatus.COMPLETED
        assert outcome.message == "Matched 40/120 payees with reference suppliers"
        assert outcome.summary.succeeded == 40

        matched = store.record(1)
        assert matched.supplier_id == "SUP-Alpha Supply 0"
        assert matched.supplier_confidence == 0.95
        assert matched.supplier_match_reasoning == "exact: prefix rule"
        assert matched.supplier_matched_at is not None

        unmatched = store.record(41)
        assert unmatched.supplier_id is None
        assert unmatched.supplier_matched_at is None

    def test_progress_and_status_writes(self, store, matcher, fast_options):
        batch = store.create_batch(make_payees(120, matching=40))
        stage = SupplierMatchStage(store, matcher, sleep=no_sleep)

        _run(stage.execute(batch.id, fast_options))

        assert _writes_for(store, "supplier_match_progress") == [0, 42, 83, 100]
        assert _writes_for(store, "supplier_match_status") == [
            StageStatus.PROCESSING,
            StageStatus.COMPLETED,
        ]
        final = store.batch(batch.id)
        assert final.supplier_match_progress == 100
        assert final.supplier_match_completed_at is not None
        assert final.current_step == "Supplier match complete"

    def test_progress_message_format(self, store, matcher, fast_options):
        batch = store.create_batch(make_payees(120, matching=40))
        stage = SupplierMatchStage(store, matcher, sleep=no_sleep)

        _run(stage.execute(batch.id, fast_options))

        messages = _writes_for(store, "progress_message")
        assert "Supplier match: Matched 40/50 (42%)..." in messages

    def test_matcher_outage_counts_as_non_match(self, store, fast_options):
        batch = store.create_batch(make_payees(3, matching=3))
        matcher_with_outage = PrefixMatcher(fail_names=("Alpha Supply 1",))
        stage = SupplierMatchStage(store, matcher_with_outage, sleep=no_sleep)

        outcome = _run(stage.execute(batch.id, fast_options))

        assert outcome.status == StageStatus.COMPLETED
        assert outcome.summary.succeeded == 2
        assert outcome.summary.failed == 1
        assert store.record(2).supplier_id is None

    def test_empty_batch_is_skipped(self, store, matcher, fast_options):
        batch = store.create_batch([])
        stage = SupplierMatchStage(store, matcher, sleep=no_sleep)

        outcome = _run(stage.execute(batch.id, fast_options))

        assert outcome.status == StageStatus.SKIPPED
        assert matcher.calls == []
        assert _writes_for(store, "supplier_match_progress") == [0]
        assert _writes_for(store, "supplier_match_status") == [
            StageStatus.PROCESSING,
            StageStatus.SKIPPED,
        ]
        assert store.batch(batch.id).supplier_match_completed_at is not None

    def test_store_failure_becomes_error_outcome(self, store, matcher, fast_options):
        batch = store.create_batch(make_payees(5))
        stage = SupplierMatchStage(FailingUpdateStore(store), matcher, sleep=no_sleep)

        outcome = _run(stage.execute(batch.id, fast_options))

        assert outcome.status == StageStatus.ERROR
        assert outcome.fault == FaultKind.STAGE
        assert outcome.message == "Error: database gone"
        final = store.batch(batch.id)
        assert final.supplier_match_status == StageStatus.ERROR
        assert final.progress_message == "Error: database gone"

    def test_rerun_is_idempotent(self, store, matcher, fast_options):
        batch = store.create_batch(make_payees(10, matching=4))
        stage = SupplierMatchStage(store, matcher, sleep=no_sleep)

        first = _run(stage.execute(batch.id, fast_options))
        snapshot = {r: store.record(r).supplier_id for r in range(1, 11)}
        second = _run(stage.execute(batch.id, fast_options))

        assert first.message == second.message == "Matched 4/10 payees with reference suppliers"
        assert {r: store.record(r).supplier_id for r in range(1, 11)} == snapshot

    def test_rerun_progress_starts_from_zero(self, store, matcher, fast_options):
        batch = store.create_batch(make_payees(120, matching=40))
        stage = SupplierMatchStage(store, matcher, sleep=no_sleep)

        _run(stage.execute(batch.id, fast_options))
        first_run = len(_writes_for(store, "supplier_match_progress"))
        _run(stage.execute(batch.id, fast_options))

        second_run = _writes_for(store, "supplier_match_progress")[first_run:]
        assert second_run == [0, 42, 83, 100]
        assert second_run == sorted(second_run)

    def test_uses_location_hints(self, store, matcher, fast_options):
        batch = store.create_batch(make_payees(1, matching=1))
        _run(SupplierMatchStage(store, matcher, sleep=no_sleep).execute(batch.id, fast_options))

        assert matcher.calls == [("Alpha Supply 0", {"city": "Austin", "state": "TX"})]

    def test_undercount_note_when_chunk_fails(self, store, matcher):
        batch = store.create_batch(make_payees(30, matching=30))
        progress_writes = 0
        original_update = store.update_batch

        async def flaky_update(batch_id, fields):
            nonlocal progress_writes
            if "supplier_match_progress" in fields:
                progress_writes += 1
                if progress_writes == 3:
                    raise ConnectionError("write timeout")
            await original_update(batch_id, fields)

        store.update_batch = flaky_update
        stage = SupplierMatchStage(store, matcher, sleep=no_sleep)

        outcome = _run(stage.execute(
            batch.id, StageOptions(chunk_size=10, concurrency_limit=10, inter_chunk_delay_ms=0)
        ))

        assert outcome.status == StageStatus.COMPLETED
        assert outcome.message == (
            "Matched 20/20 payees with reference suppliers"
            " (10 of 30 records not processed: 1 chunk(s) failed)"
        )


class TestClassificationStage:
    """Tests for ClassificationStage."""

    def test_classifies_and_cleans(self, store, fast_options):
        batch = store.create_batch([{"id": 1, "original_name": "  acme, supply co. "}])
        classifier = FixedClassifier()

        outcome = _run(ClassificationStage(store, classifier, sleep=no_sleep).execute(batch.id, fast_options))

        record = store.record(1)
        assert outcome.message == "Classified 1/1 payees"
        assert classifier.calls == ["ACME SUPPLY CO"]
        assert record.cleaned_name == "ACME SUPPLY CO"
        assert record.payee_type == PayeeType.BUSINESS
        assert record.classification_status == ClassificationStatus.CLASSIFIED

    def test_skips_already_classified(self, store, fast_options):
        batch = store.create_batch([
            {"id": 1, "original_name": "Done Inc", "classification_status": "classified"},
            {"id": 2, "original_name": "New LLC"},
        ])
        classifier = FixedClassifier()

        _run(ClassificationStage(store, classifier, sleep=no_sleep).execute(batch.id, fast_options))

        assert classifier.calls == ["NEW LLC"]

    def test_reclassify_processes_everything(self, store, fast_options):
        batch = store.create_batch([
            {"id": 1, "original_name": "Done Inc", "classification_status": "classified"},
            {"id": 2, "original_name": "New LLC"},
        ])
        classifier = FixedClassifier()

        _run(ClassificationStage(store, classifier, reclassify=True, sleep=no_sleep)
             .execute(batch.id, fast_options))

        assert sorted(classifier.calls) == ["DONE INC", "NEW LLC"]

    def test_all_classified_is_skipped(self, store, fast_options):
        batch = store.create_batch([
            {"id": 1, "original_name": "Done Inc", "classification_status": "classified"},
        ])

        outcome = _run(ClassificationStage(store, FixedClassifier(), sleep=no_sleep)
                       .execute(batch.id, fast_options))

        assert outcome.status == StageStatus.SKIPPED

    def test_classifier_outage_marks_record_failed(self, store, fast_options):
        batch = store.create_batch([{"id": 1, "original_name": "Acme"}])

        outcome = _run(ClassificationStage(store, FixedClassifier(fail=True), sleep=no_sleep)
                       .execute(batch.id, fast_options))

        assert outcome.status == StageStatus.COMPLETED
        assert outcome.summary.failed == 1
        assert store.record(1).classification_status == ClassificationStatus.FAILED
        assert store.record(1).cleaned_name == "ACME"


class TestExternalLookupStage:
    """Tests for ExternalLookupStage."""

    def test_disabled_without_lookup(self, store):
        stage = ExternalLookupStage(store, None)
        assert stage.descriptor.enabled is False
        assert stage.descriptor.order == 3

    def test_only_business_payees_are_looked_up(self, store, fast_options):
        batch = store.create_batch([
            {"id": 1, "original_name": "Acme", "payee_type": "Business"},
            {"id": 2, "original_name": "Jane Doe", "payee_type": "Individual"},
            {"id": 3, "original_name": "Widgets", "payee_type": "Business"},
        ])
        lookup = DirectoryLookup(known={"Acme"})

        outcome = _run(ExternalLookupStage(store, lookup, sleep=no_sleep).execute(batch.id, fast_options))

        assert sorted(lookup.calls) == ["Acme", "Widgets"]
        assert outcome.message == "Found 1/2 business payees in external lookup"
        assert store.record(1).lookup_status == LookupStatus.FOUND
        assert store.record(1).lookup_reference == "EXT-Acme"
        assert store.record(3).lookup_status == LookupStatus.NOT_FOUND
        assert store.record(2).lookup_status is None

    def test_no_business_payees_is_skipped(self, store, fast_options):
        batch = store.create_batch([
            {"id": 1, "original_name": "Jane Doe", "payee_type": "Individual"},
        ])

        outcome = _run(ExternalLookupStage(store, DirectoryLookup(), sleep=no_sleep)
                       .execute(batch.id, fast_options))

        assert outcome.status == StageStatus.SKIPPED
