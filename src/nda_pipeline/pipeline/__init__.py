"""
Document preparation pipeline and its validation gates.
"""

from nda_pipeline.pipeline.document_pipeline import DocumentPipeline, PreparedDocument
from nda_pipeline.pipeline.gates import (
    validate_classifier_output,
    validate_extraction_quality,
    validate_parser_output,
    validate_token_budget,
)
from nda_pipeline.pipeline.messages import VALIDATION_MESSAGES, format_validation_error

__all__ = [
    "DocumentPipeline",
    "PreparedDocument",
    "validate_parser_output",
    "validate_classifier_output",
    "validate_extraction_quality",
    "validate_token_budget",
    "VALIDATION_MESSAGES",
    "format_validation_error",
]
