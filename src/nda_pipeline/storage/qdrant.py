"""
Qdrant vector store for the reference corpus and tenant embeddings.
"""

from typing import Any
from uuid import NAMESPACE_URL, uuid5

import structlog
from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models as qdrant_models
from qdrant_client.http.exceptions import ResponseHandlingException

from nda_pipeline.config import get_settings
from nda_pipeline.exceptions import StoreUnavailableError
from nda_pipeline.models.retrieval import VectorHit

logger = structlog.get_logger(__name__)

_INDEXED_FIELDS = ("source", "tenant_id", "content_hash", "granularity")


def point_id(document_id: str) -> str:
    """Deterministic point id so re-inserting a document overwrites it."""
    return str(uuid5(NAMESPACE_URL, document_id))


class QdrantVectorStore:
    """
    Qdrant-backed vector store.

    Handles collection setup, idempotent inserts and filtered
    similarity search.
    """

    def __init__(
        self,
        collection_name: str,
        dimension: int | None = None,
        host: str | None = None,
        port: int | None = None,
        client: AsyncQdrantClient | None = None,
    ):
        settings = get_settings()
        self.collection_name = collection_name
        self.dimension = dimension or settings.embedding_dimension
        self.host = host or settings.qdrant_host
        self.port = port or settings.qdrant_port
        self._client = client
        self._collection_ready = False

    def connect(self) -> AsyncQdrantClient:
        """Get or create Qdrant client."""
        if self._client is None:
            self._client = AsyncQdrantClient(host=self.host, port=self.port)
            logger.info("qdrant_connected", host=self.host, port=self.port)
        return self._client

    @property
    def client(self) -> AsyncQdrantClient:
        return self.connect()

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None
            self._collection_ready = False

    async def health_check(self) -> bool:
        """Check Qdrant connectivity."""
        try:
            await self.client.get_collections()
            return True
        except ResponseHandlingException as e:
            logger.error("qdrant_health_check_failed", error=str(e))
            return False

    # =========================================================================
    # Collection Management
    # =========================================================================

    async def ensure_collection(self) -> None:
        """Create the collection and payload indexes if they don't exist."""
        if self._collection_ready:
            return
        try:
            if not await self.client.collection_exists(self.collection_name):
                await self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=qdrant_models.VectorParams(
                        size=self.dimension,
                        distance=qdrant_models.Distance.COSINE,
                    ),
                )
                for field in _INDEXED_FIELDS:
                    await self.client.create_payload_index(
                        collection_name=self.collection_name,
                        field_name=field,
                        field_schema=qdrant_models.PayloadSchemaType.KEYWORD,
                    )
                logger.info("qdrant_collection_created", collection=self.collection_name)
        except ResponseHandlingException as e:
            raise StoreUnavailableError("qdrant", str(e)) from e
        self._collection_ready = True

    # =========================================================================
    # Vector Operations
    # =========================================================================

    async def insert(
        self,
        document_id: str,
        vector: list[float],
        content: str,
        content_hash: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        await self.ensure_collection()

        payload = dict(metadata or {})
        payload["document_id"] = document_id
        payload["content"] = content
        payload["content_hash"] = content_hash

        try:
            await self.client.upsert(
                collection_name=self.collection_name,
                points=[
                    qdrant_models.PointStruct(
                        id=point_id(document_id),
                        vector=vector,
                        payload=payload,
                    )
                ],
            )
        except ResponseHandlingException as e:
            raise StoreUnavailableError("qdrant", str(e)) from e

    async def nearest_neighbors(
        self,
        vector: list[float],
        filter: dict[str, Any] | None = None,
        k: int = 10,
        score_threshold: float | None = None,
    ) -> list[VectorHit]:
        await self.ensure_collection()

        try:
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                query_filter=build_filter(filter),
                limit=k,
                score_threshold=score_threshold,
                with_payload=True,
            )
        except ResponseHandlingException as e:
            raise StoreUnavailableError("qdrant", str(e)) from e

        hits = []
        for point in response.points:
            payload = dict(point.payload or {})
            document_id = payload.pop("document_id", str(point.id))
            hits.append(
                VectorHit(
                    document_id=document_id,
                    content=payload.pop("content", ""),
                    content_hash=payload.pop("content_hash", None),
                    similarity=point.score,
                    metadata=payload,
                )
            )
        return hits

    async def content_hashes(self, filter: dict[str, Any] | None = None) -> set[str]:
        """Collect content hashes of all points matching ``filter``."""
        await self.ensure_collection()

        hashes: set[str] = set()
        offset = None
        try:
            while True:
                points, offset = await self.client.scroll(
                    collection_name=self.collection_name,
                    scroll_filter=build_filter(filter),
                    limit=1000,
                    offset=offset,
                    with_payload=["content_hash"],
                    with_vectors=False,
                )
                for point in points:
                    value = (point.payload or {}).get("content_hash")
                    if value:
                        hashes.add(value)
                if offset is None:
                    break
        except ResponseHandlingException as e:
            raise StoreUnavailableError("qdrant", str(e)) from e

        logger.debug("content_hashes_loaded", collection=self.collection_name, count=len(hashes))
        return hashes

    async def count(self, filter: dict[str, Any] | None = None) -> int:
        await self.ensure_collection()
        result = await self.client.count(
            collection_name=self.collection_name,
            count_filter=build_filter(filter),
            exact=True,
        )
        return result.count


def build_filter(filters: dict[str, Any] | None) -> qdrant_models.Filter | None:
    """Translate an equality filter dict into a Qdrant filter."""
    if not filters:
        return None

    conditions = []
    for key, value in filters.items():
        if isinstance(value, list):
            conditions.append(
                qdrant_models.FieldCondition(key=key, match=qdrant_models.MatchAny(any=value))
            )
        else:
            conditions.append(
                qdrant_models.FieldCondition(key=key, match=qdrant_models.MatchValue(value=value))
            )
    return qdrant_models.Filter(must=conditions)

