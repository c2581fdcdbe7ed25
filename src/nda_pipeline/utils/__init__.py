"""Utility functions for the NDA pipeline."""

from nda_pipeline.utils.text import (
    build_section_path,
    content_hash,
    normalize_for_cache,
    normalize_nli_label,
    normalize_text,
    parse_heading,
)

__all__ = [
    "build_section_path",
    "content_hash",
    "normalize_for_cache",
    "normalize_nli_label",
    "normalize_text",
    "parse_heading",
]
