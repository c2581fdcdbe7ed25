"""Tests for nda_pipeline/services/retrieval.py: two-tier merge and failure handling."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from nda_pipeline.exceptions import StoreUnavailableError
from nda_pipeline.models.retrieval import RankedHit, RetrievalTier
from nda_pipeline.services.retrieval import TwoTierRetriever, get_retriever, merge_hits
from nda_pipeline.storage.memory import InMemoryVectorStore
from nda_pipeline.utils.text import content_hash


def _hit(content, similarity, tier=RetrievalTier.REFERENCE, hashed=True):
    return RankedHit(
        document_id=f"{tier.value}:{content}",
        content=content,
        content_hash=content_hash(content) if hashed else None,
        similarity=similarity,
        tier=tier,
    )


async def _insert(store, document_id, vector, content, **metadata):
    await store.insert(document_id, vector, content, content_hash(content), metadata)


class TestMergeHits:

    def test_sorted_by_distance_and_limited(self):
        hits = [_hit("a", 0.6), _hit("b", 0.9), _hit("c", 0.8)]
        merged = merge_hits(hits, k=2)
        assert [h.content for h in merged] == ["b", "c"]

    def test_duplicate_keeps_closest(self):
        hits = [
            _hit("same clause", 0.7, RetrievalTier.REFERENCE),
            _hit("same clause", 0.95, RetrievalTier.TENANT),
        ]
        merged = merge_hits(hits, k=5)
        assert len(merged) == 1
        assert merged[0].tier == RetrievalTier.TENANT

    def test_missing_hash_uses_content(self):
        hits = [_hit("text", 0.8, hashed=False), _hit("text", 0.6)]
        assert len(merge_hits(hits, k=5)) == 1

    def test_empty(self):
        assert merge_hits([], k=3) == []


class TestTwoTierRetriever:

    @pytest.mark.asyncio
    async def test_merges_both_tiers(self):
        reference = InMemoryVectorStore()
        tenant = InMemoryVectorStore()
        await _insert(reference, "r1", [1.0, 0.0], "reference clause", source="cuad")
        await _insert(tenant, "t1", [0.9, 0.1], "tenant clause", tenant_id="acme")
        await _insert(tenant, "t2", [1.0, 0.05], "other tenant clause", tenant_id="globex")

        hits = await TwoTierRetriever(reference, tenant, similarity_threshold=0.0).search(
            [1.0, 0.0], tenant_id="acme", k=5
        )

        assert [h.document_id for h in hits] == ["r1", "t1"]
        assert [h.tier for h in hits] == [RetrievalTier.REFERENCE, RetrievalTier.TENANT]
        assert hits[0].distance <= hits[1].distance

    @pytest.mark.asyncio
    async def test_same_content_in_both_tiers(self):
        reference = InMemoryVectorStore()
        tenant = InMemoryVectorStore()
        await _insert(reference, "r1", [0.8, 0.2], "shared clause")
        await _insert(tenant, "t1", [1.0, 0.0], "shared clause", tenant_id="acme")

        hits = await TwoTierRetriever(reference, tenant, similarity_threshold=0.0).search(
            [1.0, 0.0], tenant_id="acme"
        )

        assert len(hits) == 1
        assert hits[0].tier == RetrievalTier.TENANT

    @pytest.mark.asyncio
    async def test_threshold_filters_both_tiers(self):
        reference = InMemoryVectorStore()
        tenant = InMemoryVectorStore()
        await _insert(reference, "r1", [0.0, 1.0], "orthogonal")
        await _insert(tenant, "t1", [0.0, 1.0], "also orthogonal", tenant_id="acme")

        hits = await TwoTierRetriever(reference, tenant, similarity_threshold=0.5).search(
            [1.0, 0.0], tenant_id="acme"
        )

        assert hits == []

    @pytest.mark.asyncio
    async def test_queries_with_tenant_filter(self):
        reference = AsyncMock()
        reference.nearest_neighbors.return_value = []
        tenant = AsyncMock()
        tenant.nearest_neighbors.return_value = []

        await TwoTierRetriever(reference, tenant, similarity_threshold=0.3).search(
            [0.1, 0.2], tenant_id="acme", k=4
        )

        reference.nearest_neighbors.assert_awaited_once_with([0.1, 0.2], k=4, score_threshold=0.3)
        tenant.nearest_neighbors.assert_awaited_once_with(
            [0.1, 0.2], filter={"tenant_id": "acme"}, k=4, score_threshold=0.3
        )

    @pytest.mark.asyncio
    async def test_failure_cancels_other_query(self):
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def slow(*args, **kwargs):
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return []

        async def broken(*args, **kwargs):
            await started.wait()
            raise StoreUnavailableError("qdrant", "connection refused")

        reference = AsyncMock()
        reference.nearest_neighbors.side_effect = slow
        tenant = AsyncMock()
        tenant.nearest_neighbors.side_effect = broken

        with pytest.raises(StoreUnavailableError):
            await TwoTierRetriever(reference, tenant, similarity_threshold=0.0).search(
                [1.0], tenant_id="acme"
            )
        # The sibling query has fully unwound by the time search() raises
        assert cancelled.is_set()
        assert reference.nearest_neighbors.await_count == 1

    def test_defaults_from_settings(self):
        retriever = get_retriever()
        assert retriever.similarity_threshold == 0.5
        assert get_retriever() is retriever
