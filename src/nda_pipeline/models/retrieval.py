"""
Embedding and retrieval models.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

InputType = Literal["document", "query"]


class CachedEmbedding(BaseModel):
    """An embedding held by the cache."""

    embedding: list[float]
    tokens: int = 0
    cached_at: datetime = Field(default_factory=datetime.now)


class CacheStats(BaseModel):
    hits: int
    misses: int
    size: int
    hit_rate: float


class EmbeddingBatchResult(BaseModel):
    """Embeddings for a batch of texts, in request order."""

    embeddings: list[list[float]] = Field(default_factory=list)
    total_tokens: int = 0
    cache_hits: int = 0


class VectorHit(BaseModel):
    """A nearest-neighbour match returned by a vector store."""

    document_id: str
    content: str
    content_hash: str | None = None
    similarity: float
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def distance(self) -> float:
        return 1.0 - self.similarity


class RetrievalTier(str, Enum):
    REFERENCE = "reference"
    TENANT = "tenant"


class RankedHit(VectorHit):
    """A hit after the two-tier merge."""

    tier: RetrievalTier
