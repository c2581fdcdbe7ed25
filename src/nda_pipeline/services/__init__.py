"""
Document and embedding services for the NDA pipeline.
"""

from nda_pipeline.services.budget import (
    check_token_budget,
    truncate_to_token_budget,
    validate_file_size,
    validate_page_count,
)
from nda_pipeline.services.chunker import DocumentChunker, chunk_document
from nda_pipeline.services.embedding_cache import EmbeddingCache, get_embedding_cache
from nda_pipeline.services.embedding_client import (
    BaseEmbeddingClient,
    VoyageEmbeddingClient,
    create_embedding_client,
    get_embedding_client,
)
from nda_pipeline.services.extraction import TextExtractor, get_text_extractor
from nda_pipeline.services.retrieval import TwoTierRetriever, get_retriever
from nda_pipeline.services.tokens import TokenEstimator, estimate_tokens, get_token_estimator

__all__ = [
    "DocumentChunker",
    "chunk_document",
    "check_token_budget",
    "truncate_to_token_budget",
    "validate_file_size",
    "validate_page_count",
    "TokenEstimator",
    "estimate_tokens",
    "get_token_estimator",
    "TextExtractor",
    "get_text_extractor",
    "EmbeddingCache",
    "get_embedding_cache",
    "BaseEmbeddingClient",
    "VoyageEmbeddingClient",
    "create_embedding_client",
    "get_embedding_client",
    "TwoTierRetriever",
    "get_retriever",
]
