"""
Two-tier retrieval.

Merges nearest neighbours from the shared reference corpus with the
caller's tenant embeddings.
"""

import asyncio
from functools import lru_cache

import structlog

from nda_pipeline.config import get_settings
from nda_pipeline.models.retrieval import RankedHit, RetrievalTier, VectorHit
from nda_pipeline.storage import get_reference_store, get_tenant_store
from nda_pipeline.storage.base import VectorStore
from nda_pipeline.utils.text import content_hash

logger = structlog.get_logger(__name__)


class TwoTierRetriever:
    """
    Query-time merge of reference and tenant results.

    Both stores are queried concurrently. Duplicated content (same hash in
    both tiers, or twice in one) keeps only its closest hit.
    """

    def __init__(
        self,
        reference_store: VectorStore,
        tenant_store: VectorStore,
        similarity_threshold: float | None = None,
    ):
        self.reference_store = reference_store
        self.tenant_store = tenant_store
        self.similarity_threshold = (
            get_settings().retrieval_similarity_threshold
            if similarity_threshold is None
            else similarity_threshold
        )

    async def search(
        self,
        query_vector: list[float],
        tenant_id: str,
        k: int | None = None,
    ) -> list[RankedHit]:
        """
        Find the ``k`` closest chunks across both tiers.

        Args:
            query_vector: Embedded query
            tenant_id: Restricts the tenant tier to this tenant's rows
            k: Result limit; defaults to ``retrieval_top_k``

        Returns:
            Hits sorted by ascending cosine distance
        """
        k = k or get_settings().retrieval_top_k

        reference_task = asyncio.ensure_future(
            self.reference_store.nearest_neighbors(
                query_vector, k=k, score_threshold=self.similarity_threshold
            )
        )
        tenant_task = asyncio.ensure_future(
            self.tenant_store.nearest_neighbors(
                query_vector,
                filter={"tenant_id": tenant_id},
                k=k,
                score_threshold=self.similarity_threshold,
            )
        )

        try:
            reference_hits, tenant_hits = await asyncio.gather(reference_task, tenant_task)
        except Exception as e:
            reference_task.cancel()
            tenant_task.cancel()
            # Let the cancelled query unwind before the error propagates
            await asyncio.gather(reference_task, tenant_task, return_exceptions=True)
            logger.error("retrieval_failed", tenant_id=tenant_id, error=str(e))
            raise

        merged = merge_hits(
            [_rank(hit, RetrievalTier.REFERENCE) for hit in reference_hits]
            + [_rank(hit, RetrievalTier.TENANT) for hit in tenant_hits],
            k,
        )
        logger.debug(
            "retrieval_merged",
            tenant_id=tenant_id,
            reference=len(reference_hits),
            tenant=len(tenant_hits),
            returned=len(merged),
        )
        return merged


def _rank(hit: VectorHit, tier: RetrievalTier) -> RankedHit:
    return RankedHit(**hit.model_dump(), tier=tier)


def merge_hits(hits: list[RankedHit], k: int) -> list[RankedHit]:
    """Dedupe by content hash keeping the smaller distance, then take the top ``k``."""
    best: dict[str, RankedHit] = {}
    for hit in hits:
        key = hit.content_hash or content_hash(hit.content)
        current = best.get(key)
        if current is None or hit.distance < current.distance:
            best[key] = hit
    return sorted(best.values(), key=lambda h: h.distance)[:k]


@lru_cache()
def get_retriever() -> TwoTierRetriever:
    """Get the retriever over the configured stores."""
    return TwoTierRetriever(get_reference_store(), get_tenant_store())
