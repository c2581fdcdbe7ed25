"""
Local embedding provider backed by sentence-transformers.

Used for offline development and for ingesting without a provider key.
"""

import asyncio

import structlog
from sentence_transformers import SentenceTransformer

from nda_pipeline.models.retrieval import InputType
from nda_pipeline.services.embedding_cache import EmbeddingCache
from nda_pipeline.services.embedding_client import BaseEmbeddingClient

logger = structlog.get_logger(__name__)


class SentenceTransformerEmbeddingClient(BaseEmbeddingClient):
    """Runs a sentence-transformers model in a worker thread."""

    provider_name = "sentence-transformers"

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        batch_limit: int = 128,
        cache: EmbeddingCache | None = None,
    ):
        self.model_name = model_name
        self._model: SentenceTransformer | None = None
        super().__init__(dimension=0, batch_limit=batch_limit, cache=cache)

    @property
    def model(self) -> SentenceTransformer:
        """Lazy-load the embedding model."""
        if self._model is None:
            logger.info("loading_embedding_model", model=self.model_name)
            self._model = SentenceTransformer(self.model_name)
            self.dimension = self._model.get_sentence_embedding_dimension()
            logger.info("embedding_model_loaded", model=self.model_name, dimension=self.dimension)
        return self._model

    async def _embed_uncached(self, texts: list[str], input_type: InputType) -> tuple[list[list[float]], int]:
        model = self.model
        vectors = await asyncio.to_thread(
            model.encode,
            texts,
            convert_to_numpy=True,
            normalize_embeddings=True,
        )
        tokens = sum(len(text.split()) for text in texts)
        return vectors.tolist(), tokens
