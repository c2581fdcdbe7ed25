"""
User-facing messages for validation gate failures.
"""

from nda_pipeline.models.validation import ValidationCode, ValidationErrorInfo

PARSING_STAGE = "document parsing"
CLASSIFICATION_STAGE = "clause extraction"
EXTRACTION_STAGE = "text extraction"
UPLOAD_STAGE = "upload"

# code -> (user message, suggestion)
VALIDATION_MESSAGES: dict[ValidationCode, tuple[str, str]] = {
    ValidationCode.ZERO_CLAUSES: (
        "We couldn't find any clauses in this document.",
        "Check that the file contains actual contract text, not just headers or images.",
    ),
    ValidationCode.EMPTY_DOCUMENT: (
        "We couldn't extract any text from this document.",
        "Try uploading a different file format or check that the PDF isn't encrypted.",
    ),
    ValidationCode.NO_CHUNKS: (
        "The document couldn't be processed into analyzable sections.",
        "Try a different document or file format.",
    ),
    ValidationCode.OCR_REQUIRED: (
        "This document looks like a scanned image and needs text recognition.",
        "We'll run OCR automatically; this may take a little longer.",
    ),
    ValidationCode.ENCRYPTED: (
        "This document is password protected.",
        "Remove the password and upload the file again.",
    ),
    ValidationCode.CORRUPT: (
        "This file appears to be damaged and couldn't be read.",
        "Re-export the document and try uploading it again.",
    ),
    ValidationCode.FILE_TOO_LARGE: (
        "This file is larger than the upload limit.",
        "Split the document or compress it and try again.",
    ),
    ValidationCode.TOO_MANY_PAGES: (
        "This document has more pages than we can analyze at once.",
        "Upload the agreement without exhibits or split it into parts.",
    ),
    ValidationCode.UNSUPPORTED_FORMAT: (
        "This file type isn't supported.",
        "Upload the agreement as a PDF, plain text or Markdown file.",
    ),
    ValidationCode.UNSUPPORTED_LANGUAGE: (
        "This document appears to be in a language other than English.",
        "Upload an English version of the agreement.",
    ),
}


def format_validation_error(code: ValidationCode, stage: str) -> ValidationErrorInfo:
    """Build the user-facing error for ``code`` at ``stage``."""
    user_message, suggestion = VALIDATION_MESSAGES[code]
    return ValidationErrorInfo(
        code=code,
        stage=stage,
        user_message=user_message,
        suggestion=suggestion,
    )
