"""
Models for reference-corpus ingestion: normalized records and progress.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class Granularity(str, Enum):
    """How much of a source document a record covers."""

    DOCUMENT = "document"
    SECTION = "section"
    CLAUSE = "clause"
    SPAN = "span"
    TEMPLATE = "template"


class NormalizedRecord(BaseModel):
    """A single source-independent record produced by a dataset parser."""

    source: str
    source_id: str = Field(..., description="Identifier unique within the source")
    content: str
    content_hash: str = Field(..., description="SHA-256 hex digest of content")
    granularity: Granularity
    section_path: list[str] = Field(default_factory=list)
    category: str | None = None
    hypothesis_id: str | None = None
    nli_label: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Flatten into the metadata stored next to the vector."""
        payload: dict[str, Any] = {
            "source": self.source,
            "source_id": self.source_id,
            "granularity": self.granularity.value,
            "section_path": self.section_path,
        }
        if self.category:
            payload["category"] = self.category
        if self.hypothesis_id:
            payload["hypothesis_id"] = self.hypothesis_id
        if self.nli_label:
            payload["nli_label"] = self.nli_label
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload


class BootstrapStatus(str, Enum):
    """Lifecycle of a per-source ingestion run."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def resumable(self) -> bool:
        return self in (BootstrapStatus.PENDING, BootstrapStatus.IN_PROGRESS, BootstrapStatus.FAILED)


class BootstrapProgress(BaseModel):
    """
    Durable checkpoint for one source's ingestion.

    ``last_batch_index`` is the index of the last batch whose vectors and
    counters were committed. It only moves forward. The ``last_batch_*``
    counters hold that batch's share of the totals so a re-run of it can
    replace rather than add to them.

    ``pending_batch_index`` and ``pending_hashes`` mark a batch whose inserts
    have started but whose counters are not yet committed. They are cleared
    when that batch is recorded.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    source: str
    status: BootstrapStatus = BootstrapStatus.PENDING
    total_records: int | None = None
    processed_records: int = 0
    embedded_records: int = 0
    error_count: int = 0
    last_batch_index: int = 0
    last_batch_processed: int = 0
    last_batch_embedded: int = 0
    last_batch_errors: int = 0
    pending_batch_index: int | None = None
    pending_hashes: list[str] = Field(default_factory=list)
    last_processed_hash: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def error_rate(self) -> float:
        if self.processed_records == 0:
            return 0.0
        return self.error_count / self.processed_records


class BatchResult(BaseModel):
    """Counters produced by processing one batch."""

    processed: int = 0
    embedded: int = 0
    errors: int = 0
    skipped_duplicates: int = 0
    last_hash: str | None = None


class ProgressEvent(BaseModel):
    """Progress notification emitted by long-running operations."""

    stage: str
    percent: float | None = Field(default=None, ge=0.0, le=100.0)
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class SourceOutcome(BaseModel):
    """How a single source fared in a coordinator run."""

    source: str
    progress_id: str | None = None
    status: BootstrapStatus
    processed_records: int = 0
    embedded_records: int = 0
    error_count: int = 0
    error: str | None = None


class BootstrapSummary(BaseModel):
    """Result of running several sources through the coordinator."""

    outcomes: list[SourceOutcome] = Field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return all(o.status == BootstrapStatus.COMPLETED for o in self.outcomes)

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None
