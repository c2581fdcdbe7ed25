"""
nda-pipeline: document segmentation and corpus ingestion for NDA analysis.

Turns uploaded legal documents into token-bounded, position-addressable
chunks under a fixed token budget, and streams annotated reference corpora
into a vector store through a resumable, rate-limited ingestion worker.
"""

__version__ = "0.1.0"

from nda_pipeline.config import get_settings

__all__ = ["get_settings", "__version__"]
