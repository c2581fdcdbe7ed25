"""
Token estimation.

Counts come from a tiktoken encoding used as a proxy for the analysis
model's own tokenizer. The two disagree by roughly 10-15%, which budgets
are sized to absorb.
"""

from functools import lru_cache

import structlog
import tiktoken

from nda_pipeline.config import get_settings

logger = structlog.get_logger(__name__)


class TokenEstimator:
    """Approximate token counter backed by a tiktoken encoding."""

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name
        self._encoding: tiktoken.Encoding | None = None

    @property
    def encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
            logger.debug("tokenizer_loaded", encoding=self.encoding_name)
        return self._encoding

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode(text, disallowed_special=()))


@lru_cache()
def get_token_estimator() -> TokenEstimator:
    """Get the process-wide token estimator."""
    return TokenEstimator(get_settings().tokenizer_encoding)


def estimate_tokens(text: str) -> int:
    """Count tokens with the default estimator."""
    return get_token_estimator().count(text)
