"""
Storage contracts shared by the in-memory and external backends.
"""

from typing import Any, Protocol

from nda_pipeline.models.bootstrap import BootstrapProgress
from nda_pipeline.models.retrieval import VectorHit


class VectorStore(Protocol):
    """Nearest-neighbour store for embedded text."""

    async def insert(
        self,
        document_id: str,
        vector: list[float],
        content: str,
        content_hash: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...

    async def nearest_neighbors(
        self,
        vector: list[float],
        filter: dict[str, Any] | None = None,
        k: int = 10,
        score_threshold: float | None = None,
    ) -> list[VectorHit]: ...

    async def content_hashes(self, filter: dict[str, Any] | None = None) -> set[str]: ...

    async def count(self, filter: dict[str, Any] | None = None) -> int: ...


class ProgressStore(Protocol):
    """Durable store for per-source ingestion checkpoints."""

    async def create(self, progress: BootstrapProgress) -> BootstrapProgress: ...

    async def get(self, progress_id: str) -> BootstrapProgress | None: ...

    async def latest_for_source(self, source: str) -> BootstrapProgress | None: ...

    async def save(self, progress: BootstrapProgress) -> BootstrapProgress: ...


def matches_filter(payload: dict[str, Any], filter: dict[str, Any] | None) -> bool:
    """Equality match on every filter key; list values match any element."""
    if not filter:
        return True
    for key, expected in filter.items():
        value = payload.get(key)
        if isinstance(expected, list):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True
