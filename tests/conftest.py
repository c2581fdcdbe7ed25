"""Shared pytest fixtures for the nda-pipeline test suite."""

import hashlib

import pytest

from nda_pipeline.models.bootstrap import Granularity, NormalizedRecord
from nda_pipeline.services.embedding_cache import EmbeddingCache
from nda_pipeline.services.embedding_client import BaseEmbeddingClient
from nda_pipeline.services.tokens import TokenEstimator
from nda_pipeline.storage.memory import InMemoryProgressStore, InMemoryVectorStore
from nda_pipeline.utils.text import content_hash


# ---------------------------------------------------------------------------
# Singleton cache clearing (autouse)
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def clear_singletons(monkeypatch):
    """Clear all @lru_cache singletons and point settings at in-memory backends."""
    from nda_pipeline.config import get_settings
    from nda_pipeline.services.embedding_cache import get_embedding_cache
    from nda_pipeline.services.embedding_client import get_embedding_client
    from nda_pipeline.services.extraction import get_text_extractor
    from nda_pipeline.services.retrieval import get_retriever
    from nda_pipeline.services.tokens import get_token_estimator
    from nda_pipeline.storage import get_progress_store, get_reference_store, get_tenant_store

    monkeypatch.setenv("VECTOR_BACKEND", "memory")
    monkeypatch.setenv("PROGRESS_BACKEND", "memory")
    monkeypatch.setenv("EMBEDDING_CACHE_BACKEND", "memory")
    monkeypatch.setenv("BOOTSTRAP_RATE_LIMIT_DELAY", "0")

    singletons = (
        get_settings,
        get_embedding_cache,
        get_embedding_client,
        get_text_extractor,
        get_retriever,
        get_token_estimator,
        get_progress_store,
        get_reference_store,
        get_tenant_store,
    )
    for getter in singletons:
        getter.cache_clear()
    yield
    for getter in singletons:
        getter.cache_clear()


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class WordTokenEstimator(TokenEstimator):
    """One token per whitespace-separated word. Keeps tests off tiktoken downloads."""

    def __init__(self):
        super().__init__("words")

    def count(self, text: str) -> int:
        return len(text.split())


def fake_vector(text: str, dimension: int = 8) -> list[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 + 0.01 for b in digest[:dimension]]


class FakeEmbeddingClient(BaseEmbeddingClient):
    """Deterministic vectors; ``failures`` are raised on successive provider calls."""

    provider_name = "fake"

    def __init__(self, dimension: int = 8, batch_limit: int = 128, failures=None):
        super().__init__(dimension=dimension, batch_limit=batch_limit, cache=EmbeddingCache())
        self.vector_dimension = dimension
        self.calls: list[list[str]] = []
        self.failures = list(failures or [])

    async def _embed_uncached(self, texts, input_type):
        self.calls.append(list(texts))
        if self.failures:
            raise self.failures.pop(0)
        return [fake_vector(t, self.vector_dimension) for t in texts], sum(len(t.split()) for t in texts)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def word_estimator():
    return WordTokenEstimator()


@pytest.fixture
def fake_embedder():
    return FakeEmbeddingClient()


@pytest.fixture
def fake_embedder_factory():
    """Build FakeEmbeddingClient instances with custom failures or limits."""
    return FakeEmbeddingClient


@pytest.fixture
def vector_store():
    return InMemoryVectorStore()


@pytest.fixture
def progress_store():
    return InMemoryProgressStore()


@pytest.fixture
def make_record():
    """Factory for NormalizedRecord instances."""

    def _make(content: str, source: str = "cuad", source_id: str | None = None, **kwargs):
        return NormalizedRecord(
            source=source,
            source_id=source_id or f"{source}:test:{content_hash(content)[:8]}",
            content=content,
            content_hash=content_hash(content),
            granularity=kwargs.pop("granularity", Granularity.CLAUSE),
            **kwargs,
        )

    return _make


@pytest.fixture
def sample_nda_text():
    """Short mutual NDA with article, section and clause headings."""
    return (
        "MUTUAL NON-DISCLOSURE AGREEMENT\n"
        "\n"
        "ARTICLE 1 DEFINITIONS\n"
        "\n"
        "Confidential Information means all non-public information disclosed by either party.\n"
        "\n"
        "Section 1.1 Exclusions\n"
        "\n"
        "Information that is publicly available is not Confidential Information.\n"
        "\n"
        "ARTICLE 2 OBLIGATIONS\n"
        "\n"
        "2.1 Non-Use\n"
        "\n"
        "The Receiving Party shall not use Confidential Information for any other purpose.\n"
        "\n"
        "2.2 Return Of Materials\n"
        "\n"
        "Upon request the Receiving Party shall return or destroy all materials.\n"
    )
