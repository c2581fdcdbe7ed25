"""
Embedding clients.

All providers share one contract: ``embed_batch`` serves cached texts from
the embedding cache, sends each distinct uncached text to the provider once,
and returns vectors in request order regardless of the order the provider
answers in.
"""

from abc import ABC, abstractmethod
from functools import lru_cache

import httpx
import structlog

from nda_pipeline.config import Settings, get_settings
from nda_pipeline.exceptions import ApiError, BatchTooLargeError
from nda_pipeline.models.retrieval import EmbeddingBatchResult, InputType
from nda_pipeline.services.embedding_cache import EmbeddingCache, get_embedding_cache, make_cache_key

logger = structlog.get_logger(__name__)


class BaseEmbeddingClient(ABC):
    """Cache-aware batching shared by every embedding provider."""

    provider_name = "embedding"

    def __init__(
        self,
        dimension: int,
        batch_limit: int = 128,
        cache: EmbeddingCache | None = None,
    ):
        self.dimension = dimension
        self.batch_limit = batch_limit
        self._cache = cache

    @property
    def cache(self) -> EmbeddingCache:
        if self._cache is None:
            self._cache = get_embedding_cache()
        return self._cache

    @abstractmethod
    async def _embed_uncached(self, texts: list[str], input_type: InputType) -> tuple[list[list[float]], int]:
        """Embed ``texts`` with the provider. Returns (vectors in input order, total tokens)."""

    async def embed_batch(self, texts: list[str], input_type: InputType = "document") -> EmbeddingBatchResult:
        """
        Embed up to ``batch_limit`` texts.

        Raises:
            BatchTooLargeError: more texts than the provider accepts per call
            ApiError: the provider call failed
        """
        if not texts:
            return EmbeddingBatchResult()
        if len(texts) > self.batch_limit:
            raise BatchTooLargeError(len(texts), self.batch_limit)

        cached = await self.cache.aget_batch(texts, input_type)
        embeddings: list[list[float] | None] = [None] * len(texts)
        for index, entry in cached.items():
            embeddings[index] = entry.embedding

        # Identical texts within one request are sent once.
        positions: dict[str, list[int]] = {}
        unique_texts: list[str] = []
        for index, text in enumerate(texts):
            if index in cached:
                continue
            key = make_cache_key(text, input_type)
            if key not in positions:
                positions[key] = []
                unique_texts.append(text)
            positions[key].append(index)

        total_tokens = 0
        if unique_texts:
            vectors, total_tokens = await self._embed_uncached(unique_texts, input_type)
            if len(vectors) != len(unique_texts):
                raise ApiError(
                    self.provider_name,
                    f"returned {len(vectors)} embeddings for {len(unique_texts)} inputs",
                )

            tokens_per_text = total_tokens // len(unique_texts)
            await self.cache.aput_batch(unique_texts, input_type, vectors, tokens_per_text)
            for text, vector in zip(unique_texts, vectors):
                for index in positions[make_cache_key(text, input_type)]:
                    embeddings[index] = vector

        logger.debug(
            "embeddings_generated",
            provider=self.provider_name,
            requested=len(texts),
            cache_hits=len(cached),
            sent=len(unique_texts),
            tokens=total_tokens,
        )

        return EmbeddingBatchResult(
            embeddings=embeddings,
            total_tokens=total_tokens,
            cache_hits=len(cached),
        )

    async def embed(self, text: str, input_type: InputType = "query") -> list[float]:
        """Embed a single text."""
        result = await self.embed_batch([text], input_type)
        return result.embeddings[0]

    async def close(self) -> None:
        """Release provider resources."""


class VoyageEmbeddingClient(BaseEmbeddingClient):
    """
    Voyage AI embeddings over HTTP.

    Uses the legal-domain model by default. HTTP failures are raised as
    ApiError so callers can tell transient from permanent errors.
    """

    provider_name = "voyage"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        dimension: int | None = None,
        batch_limit: int | None = None,
        timeout: float | None = None,
        cache: EmbeddingCache | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        super().__init__(
            dimension=dimension or settings.embedding_dimension,
            batch_limit=batch_limit or settings.embedding_batch_limit,
            cache=cache,
        )
        self.api_key = api_key if api_key is not None else settings.voyage_api_key
        self.model = model or settings.voyage_model
        self.base_url = (base_url or settings.voyage_base_url).rstrip("/")
        self.timeout = timeout or settings.embedding_timeout
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _embed_uncached(self, texts: list[str], input_type: InputType) -> tuple[list[list[float]], int]:
        if not self.api_key:
            raise ApiError(self.provider_name, "API key is not configured", status_code=401)

        try:
            response = await self.client.post(
                f"{self.base_url}/embeddings",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"model": self.model, "input": texts, "input_type": input_type},
            )
        except httpx.TimeoutException as e:
            raise ApiError(self.provider_name, "request timed out", status_code=408) from e
        except httpx.HTTPError as e:
            raise ApiError(self.provider_name, f"request failed: {e}") from e

        if response.status_code >= 400:
            raise ApiError(
                self.provider_name,
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        payload = response.json()
        data = sorted(payload.get("data", []), key=lambda item: item["index"])
        vectors = [item["embedding"] for item in data]
        total_tokens = payload.get("usage", {}).get("total_tokens", 0)
        return vectors, total_tokens


def create_embedding_client(settings: Settings | None = None, cache: EmbeddingCache | None = None) -> BaseEmbeddingClient:
    """Build the embedding client selected by ``embedding_provider``."""
    settings = settings or get_settings()
    if settings.embedding_provider == "local":
        from nda_pipeline.services.local_embeddings import SentenceTransformerEmbeddingClient

        return SentenceTransformerEmbeddingClient(
            model_name=settings.local_embedding_model,
            batch_limit=settings.embedding_batch_limit,
            cache=cache,
        )
    return VoyageEmbeddingClient(
        api_key=settings.voyage_api_key,
        model=settings.voyage_model,
        base_url=settings.voyage_base_url,
        dimension=settings.embedding_dimension,
        batch_limit=settings.embedding_batch_limit,
        timeout=settings.embedding_timeout,
        cache=cache,
    )


@lru_cache()
def get_embedding_client() -> BaseEmbeddingClient:
    """Get the process-wide embedding client."""
    return create_embedding_client()
