"""
Document models: chunks, token estimates and truncation results.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DocumentChunk(BaseModel):
    """
    A token-bounded, position-addressable segment of a document.

    ``content`` is always the exact slice ``text[start_position:end_position]``
    of the source text. Trailing words of the previous chunk are carried in
    ``overlap_text`` so they can be shown to a model for context without
    shifting the chunk's offsets.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable identifier within the document, e.g. chunk-0")
    index: int = Field(..., ge=0)
    content: str
    section_path: list[str] = Field(default_factory=list, description="Heading labels, outermost first")
    token_count: int = Field(..., ge=0)
    start_position: int = Field(..., ge=0)
    end_position: int = Field(..., ge=0)
    overlap_text: str = ""

    @property
    def context_text(self) -> str:
        """Content prefixed with the overlap carried from the previous chunk."""
        if not self.overlap_text:
            return self.content
        return f"{self.overlap_text} {self.content}"


class TokenEstimate(BaseModel):
    """Token count for a text measured against a budget."""

    token_count: int
    within_budget: bool
    budget_remaining: int = Field(..., ge=0)
    truncation_needed: bool


class TruncationResult(BaseModel):
    """Outcome of trimming a document to a token budget at chunk boundaries."""

    text: str
    chunks: list[DocumentChunk]
    truncated: bool
    original_tokens: int
    truncated_tokens: int
    removed_sections: list[str] = Field(default_factory=list)


class ExtractionQuality(BaseModel):
    """Quality signals gathered while extracting text from an upload."""

    char_count: int = 0
    word_count: int = 0
    page_count: int = 0
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    warnings: list[str] = Field(default_factory=list)
    requires_ocr: bool = False


class ExtractedDocument(BaseModel):
    """Text pulled from an upload together with its quality assessment."""

    text: str
    mime_type: str
    page_count: int = 0
    quality: ExtractionQuality


class DocumentStatus(str, Enum):
    """Where a document ended up after preparation."""

    READY = "ready"
    PENDING_OCR = "pending_ocr"
