"""Unit tests for Pydantic models, settings and outcome values."""

from datetime import datetime

import pytest

from clarity.config import Settings, StageOptions
from clarity.models import (
    Batch,
    BatchStatus,
    ClassificationStatus,
    PayeeRecord,
    PayeeType,
    StageStatus,
)
from clarity.pipeline import FaultKind, RunSummary, StageDescriptor, percent
from clarity.pipeline.models import ChunkResult


class TestBatch:
    """Tests for Batch model."""

    def test_defaults(self):
        batch = Batch(id=7, total_records=10)
        assert batch.status == BatchStatus.PENDING
        assert batch.supplier_match_status == StageStatus.PENDING
        assert batch.supplier_match_progress == 0
        assert batch.last_activity_at is None

    def test_invalid_progress(self):
        with pytest.raises(ValueError):
            Batch(id=1, classification_progress=101)

    def test_extra_stage_fields(self):
        batch = Batch(id=1, geocode_status="processing")
        assert batch.stage_status("geocode_status") == StageStatus.PROCESSING
        assert batch.stage_status("unknown_status") == StageStatus.PENDING

    def test_idle_seconds_uses_last_activity(self):
        batch = Batch(
            id=1,
            created_at=datetime(2024, 1, 1, 12, 0, 0),
            last_activity_at=datetime(2024, 1, 1, 12, 5, 0),
        )
        assert batch.idle_seconds(datetime(2024, 1, 1, 12, 6, 40)) == 100

    def test_idle_seconds_falls_back_to_created_at(self):
        batch = Batch(id=1, created_at=datetime(2024, 1, 1, 12, 0, 0))
        assert batch.idle_seconds(datetime(2024, 1, 1, 12, 1, 0)) == 60


class TestPayeeRecord:
    """Tests for PayeeRecord model."""

    def test_match_name_prefers_cleaned(self):
        record = PayeeRecord(id=1, batch_id=1, original_name="acme, inc.", cleaned_name="ACME INC")
        assert record.match_name == "ACME INC"

    def test_match_name_falls_back_to_original(self):
        record = PayeeRecord(id=1, batch_id=1, original_name="acme, inc.")
        assert record.match_name == "acme, inc."

    def test_location_hints(self):
        record = PayeeRecord(id=1, batch_id=1, original_name="X", city="Austin", state="TX")
        assert record.location_hints == {"city": "Austin", "state": "TX"}

    def test_classification_defaults(self):
        record = PayeeRecord(id=1, batch_id=1, original_name="X")
        assert record.classification_status == ClassificationStatus.PENDING
        assert record.payee_type is None

    def test_invalid_confidence(self):
        with pytest.raises(ValueError):
            PayeeRecord(id=1, batch_id=1, original_name="X", supplier_confidence=1.5)


class TestSettings:
    """Tests for configuration defaults and validation."""

    def test_stage_option_defaults(self):
        options = StageOptions()
        assert options.chunk_size == 50
        assert options.concurrency_limit == 20
        assert options.inter_chunk_delay_ms == 100
        assert options.inter_chunk_delay_seconds == 0.1

    def test_stage_options_reject_zero(self):
        with pytest.raises(ValueError):
            StageOptions(chunk_size=0)
        with pytest.raises(ValueError):
            StageOptions(concurrency_limit=0)
        with pytest.raises(ValueError):
            StageOptions(inter_chunk_delay_ms=-1)

    def test_options_for_applies_overrides(self):
        settings = Settings(
            default_stage_options=StageOptions(chunk_size=10),
            stage_options={"external_lookup": StageOptions(chunk_size=5, concurrency_limit=2)},
        )
        assert settings.options_for("supplier_match").chunk_size == 10
        assert settings.options_for("external_lookup").concurrency_limit == 2

    def test_default_settings(self):
        settings = Settings()
        assert settings.stall_threshold_seconds == 300
        assert settings.continue_on_stage_error is False
        assert settings.options_for("external_lookup").concurrency_limit == 5


class TestOutcomes:
    """Tests for descriptors and outcome values."""

    def test_descriptor_fields(self):
        descriptor = StageDescriptor(name="supplier_match", order=2)
        assert descriptor.status_field == "supplier_match_status"
        assert descriptor.progress_field == "supplier_match_progress"
        assert descriptor.completed_field == "supplier_match_completed_at"
        assert descriptor.display_name == "Supplier match"

    def test_descriptor_is_immutable(self):
        descriptor = StageDescriptor(name="a", order=1)
        with pytest.raises(AttributeError):
            descriptor.order = 2

    def test_percent_rounding(self):
        assert percent(50, 120) == 42
        assert percent(100, 120) == 83
        assert percent(1, 8) == 13
        assert percent(120, 120) == 100
        assert percent(0, 0) == 100

    def test_run_summary_undercount(self):
        summary = RunSummary(total=120, processed=70, succeeded=20)
        summary.chunks = [
            ChunkResult(index=0, processed=50),
            ChunkResult(index=1, fault=FaultKind.CHUNK, error="boom"),
            ChunkResult(index=2, processed=20),
        ]
        assert summary.unprocessed == 50
        assert len(summary.chunk_faults) == 1
        assert summary.progress == 58

    def test_status_terminal_flags(self):
        assert StageStatus.SKIPPED.is_terminal
        assert not StageStatus.PROCESSING.is_terminal
        assert BatchStatus.STALLED.is_terminal
        assert not BatchStatus.PROCESSING.is_terminal


class TestEnums:
    """Tests for enum values."""

    def test_payee_types(self):
        assert PayeeType.BUSINESS.value == "Business"
        assert PayeeType.GOVERNMENT.value == "Government"

    def test_stage_status_values(self):
        assert [s.value for s in StageStatus] == [
            "pending", "processing", "completed", "skipped", "error",
        ]
