"""
Storage backends.

The ``get_*`` accessors pick the backend named in settings
(``vector_backend``, ``progress_backend``) and cache it per process.
"""

from functools import lru_cache

from nda_pipeline.config import get_settings
from nda_pipeline.storage.base import ProgressStore, VectorStore
from nda_pipeline.storage.memory import InMemoryProgressStore, InMemoryVectorStore
from nda_pipeline.storage.postgres import PostgresProgressStore
from nda_pipeline.storage.qdrant import QdrantVectorStore


def _vector_store(collection_name: str) -> VectorStore:
    settings = get_settings()
    if settings.vector_backend == "memory":
        return InMemoryVectorStore()
    return QdrantVectorStore(collection_name, dimension=settings.embedding_dimension)


@lru_cache()
def get_reference_store() -> VectorStore:
    """Get the shared, read-only-at-query-time reference corpus store."""
    return _vector_store(get_settings().qdrant_reference_collection)


@lru_cache()
def get_tenant_store() -> VectorStore:
    """Get the per-tenant embedding store."""
    return _vector_store(get_settings().qdrant_tenant_collection)


@lru_cache()
def get_progress_store() -> ProgressStore:
    """Get the bootstrap progress store."""
    if get_settings().progress_backend == "memory":
        return InMemoryProgressStore()
    return PostgresProgressStore()


__all__ = [
    "InMemoryProgressStore",
    "InMemoryVectorStore",
    "PostgresProgressStore",
    "ProgressStore",
    "QdrantVectorStore",
    "VectorStore",
    "get_progress_store",
    "get_reference_store",
    "get_tenant_store",
]
