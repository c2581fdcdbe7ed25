"""
In-memory stores for development and tests.

InMemoryVectorStore does brute-force cosine search with size guards;
switch to Qdrant for anything beyond a few thousand vectors.
"""

import asyncio
import warnings
from typing import Any

import numpy as np
import structlog

from nda_pipeline.models.bootstrap import BootstrapProgress
from nda_pipeline.models.retrieval import VectorHit
from nda_pipeline.storage.base import matches_filter

logger = structlog.get_logger(__name__)


class InMemoryVectorStore:
    """
    In-memory vector search with cosine similarity and size guards.

    Warns at warn_threshold vectors, raises RuntimeError at max_vectors.
    """

    def __init__(self, warn_threshold: int = 10_000, max_vectors: int = 100_000):
        self._vectors: dict[str, tuple[np.ndarray, dict[str, Any]]] = {}
        self._warn_threshold = warn_threshold
        self._max_vectors = max_vectors

    def __len__(self) -> int:
        return len(self._vectors)

    async def insert(
        self,
        document_id: str,
        vector: list[float],
        content: str,
        content_hash: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        count = len(self._vectors)
        if count >= self._max_vectors and document_id not in self._vectors:
            raise RuntimeError(
                f"InMemoryVectorStore exceeded {self._max_vectors} vectors. "
                f"Configure Qdrant (QDRANT_HOST/QDRANT_PORT in .env) for large-scale indexing."
            )
        if count >= self._warn_threshold and document_id not in self._vectors:
            warnings.warn(
                f"InMemoryVectorStore has {count} vectors. "
                f"Consider switching to Qdrant for production use.",
                ResourceWarning,
                stacklevel=2,
            )

        payload = dict(metadata or {})
        payload["content"] = content
        payload["content_hash"] = content_hash
        self._vectors[document_id] = (np.asarray(vector, dtype=np.float32), payload)

    async def nearest_neighbors(
        self,
        vector: list[float],
        filter: dict[str, Any] | None = None,
        k: int = 10,
        score_threshold: float | None = None,
    ) -> list[VectorHit]:
        query = np.asarray(vector, dtype=np.float32)
        q_norm = np.linalg.norm(query)
        if q_norm == 0 or not self._vectors:
            return []
        query = query / q_norm

        scored: list[tuple[str, float, dict[str, Any]]] = []
        for document_id, (stored, payload) in self._vectors.items():
            if not matches_filter(payload, filter):
                continue
            norm = np.linalg.norm(stored)
            if norm == 0:
                continue
            score = float(np.dot(stored / norm, query))
            if score_threshold is not None and score < score_threshold:
                continue
            scored.append((document_id, score, payload))

        scored.sort(key=lambda item: item[1], reverse=True)
        return [_to_hit(document_id, score, payload) for document_id, score, payload in scored[:k]]

    async def content_hashes(self, filter: dict[str, Any] | None = None) -> set[str]:
        return {
            payload["content_hash"]
            for _, payload in self._vectors.values()
            if matches_filter(payload, filter)
        }

    async def count(self, filter: dict[str, Any] | None = None) -> int:
        return sum(1 for _, payload in self._vectors.values() if matches_filter(payload, filter))


def _to_hit(document_id: str, score: float, payload: dict[str, Any]) -> VectorHit:
    metadata = {key: value for key, value in payload.items() if key not in ("content", "content_hash")}
    return VectorHit(
        document_id=document_id,
        content=payload.get("content", ""),
        content_hash=payload.get("content_hash"),
        similarity=score,
        metadata=metadata,
    )


class InMemoryProgressStore:
    """Progress records held in a dict. Stored values are copies."""

    def __init__(self):
        self._records: dict[str, BootstrapProgress] = {}
        self._lock = asyncio.Lock()

    async def create(self, progress: BootstrapProgress) -> BootstrapProgress:
        async with self._lock:
            self._records[progress.id] = progress.model_copy(deep=True)
        return progress

    async def get(self, progress_id: str) -> BootstrapProgress | None:
        record = self._records.get(progress_id)
        return record.model_copy(deep=True) if record else None

    async def latest_for_source(self, source: str) -> BootstrapProgress | None:
        latest: BootstrapProgress | None = None
        for record in self._records.values():
            # Ties go to the most recently created record
            if record.source == source and (latest is None or record.created_at >= latest.created_at):
                latest = record
        return latest.model_copy(deep=True) if latest else None

    async def save(self, progress: BootstrapProgress) -> BootstrapProgress:
        async with self._lock:
            existing = self._records.get(progress.id)
            if existing and progress.last_batch_index < existing.last_batch_index:
                logger.warning(
                    "checkpoint_regression_ignored",
                    progress_id=progress.id,
                    stored=existing.last_batch_index,
                    attempted=progress.last_batch_index,
                )
                progress = progress.model_copy(update={"last_batch_index": existing.last_batch_index})
            self._records[progress.id] = progress.model_copy(deep=True)
        return progress
