"""Tests for nda_pipeline/models and nda_pipeline/exceptions: enums, properties, retriability."""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from nda_pipeline.exceptions import (
    ApiError,
    CircuitBreakerOpenError,
    IngestionCancelledError,
    NotFoundError,
    StoreUnavailableError,
    is_retriable_error,
)
from nda_pipeline.models.bootstrap import (
    BootstrapProgress,
    BootstrapStatus,
    BootstrapSummary,
    Granularity,
    NormalizedRecord,
    ProgressEvent,
    SourceOutcome,
)
from nda_pipeline.models.document import DocumentChunk
from nda_pipeline.models.retrieval import VectorHit


class TestBootstrapStatus:

    def test_resumable(self):
        assert BootstrapStatus.PENDING.resumable
        assert BootstrapStatus.IN_PROGRESS.resumable
        assert BootstrapStatus.FAILED.resumable
        assert not BootstrapStatus.COMPLETED.resumable


class TestBootstrapProgress:

    def test_defaults(self):
        progress = BootstrapProgress(source="cuad")
        assert progress.status == BootstrapStatus.PENDING
        assert progress.last_batch_index == 0
        assert progress.error_rate == 0.0
        assert progress.id

    def test_error_rate(self):
        progress = BootstrapProgress(source="cuad", processed_records=40, error_count=4)
        assert progress.error_rate == pytest.approx(0.1)


class TestNormalizedRecord:

    def test_payload_omits_empty_fields(self, make_record):
        payload = make_record("text").to_payload()
        assert payload["granularity"] == "clause"
        assert "category" not in payload
        assert "nli_label" not in payload

    def test_payload_includes_labels(self, make_record):
        record = make_record(
            "text",
            source="contract_nli",
            granularity=Granularity.SPAN,
            hypothesis_id="3",
            nli_label="entailment",
            metadata={"document_id": "7"},
        )
        payload = record.to_payload()
        assert payload["hypothesis_id"] == "3"
        assert payload["nli_label"] == "entailment"
        assert payload["metadata"] == {"document_id": "7"}

    def test_requires_hash(self):
        with pytest.raises(ValidationError):
            NormalizedRecord(source="cuad", source_id="x", content="c", granularity=Granularity.CLAUSE)


class TestSummary:

    def test_succeeded_and_duration(self):
        start = datetime(2024, 1, 1)
        summary = BootstrapSummary(
            outcomes=[
                SourceOutcome(source="cuad", status=BootstrapStatus.COMPLETED),
                SourceOutcome(source="bonterms", status=BootstrapStatus.FAILED, error="boom"),
            ],
            started_at=start,
            completed_at=start + timedelta(seconds=5),
        )
        assert not summary.succeeded
        assert summary.duration_seconds == 5.0

    def test_empty_summary_has_no_duration(self):
        assert BootstrapSummary().duration_seconds is None


class TestProgressEvent:

    def test_percent_bounds(self):
        with pytest.raises(ValidationError):
            ProgressEvent(stage="x", message="m", percent=101.0)


class TestDocumentChunk:

    def test_frozen(self):
        chunk = DocumentChunk(id="chunk-0", index=0, content="c", token_count=1, start_position=0, end_position=1)
        with pytest.raises(ValidationError):
            chunk.content = "d"


class TestVectorHit:

    def test_distance(self):
        hit = VectorHit(document_id="d", content="c", similarity=0.75)
        assert hit.distance == pytest.approx(0.25)


class TestExceptions:

    @pytest.mark.parametrize("status,retriable", [(None, True), (500, True), (429, True), (408, True), (400, False), (401, False)])
    def test_api_error_retriability(self, status, retriable):
        assert ApiError("voyage", "x", status).retriable is retriable
        assert is_retriable_error(ApiError("voyage", "x", status)) is retriable

    def test_auth_failure(self):
        assert ApiError("voyage", "x", 403).is_auth_failure
        assert not ApiError("voyage", "x", 500).is_auth_failure

    def test_unknown_exceptions_are_retriable(self):
        assert is_retriable_error(ConnectionResetError())

    def test_non_retriable_types(self):
        assert not is_retriable_error(StoreUnavailableError("qdrant", "down"))
        assert not is_retriable_error(NotFoundError("bootstrap_progress", "x"))

    def test_circuit_breaker_rate(self):
        error = CircuitBreakerOpenError("cuad", 20, 100, 0.10)
        assert error.error_rate == pytest.approx(0.2)
        assert "cuad" in str(error)

    def test_cancelled_details(self):
        error = IngestionCancelledError("cuad", 4)
        assert error.details == {"source": "cuad", "last_batch_index": 4}
