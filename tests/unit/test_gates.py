"""Tests for nda_pipeline/pipeline/gates.py and messages.py."""

import pytest

from nda_pipeline.exceptions import (
    CorruptDocumentError,
    EncryptedDocumentError,
    ExtractionError,
    OcrRequiredError,
    UnsupportedDocumentError,
    UnsupportedLanguageError,
)
from nda_pipeline.models.document import DocumentChunk, ExtractionQuality
from nda_pipeline.models.validation import ValidationCode, WarningCode
from nda_pipeline.pipeline.gates import (
    validate_classifier_output,
    validate_extraction_quality,
    validate_parser_output,
    validate_token_budget,
)
from nda_pipeline.pipeline.messages import (
    CLASSIFICATION_STAGE,
    PARSING_STAGE,
    VALIDATION_MESSAGES,
    format_validation_error,
)


def _chunk(content: str, index: int = 0, section=None) -> DocumentChunk:
    return DocumentChunk(
        id=f"chunk-{index}",
        index=index,
        content=content,
        section_path=section or [],
        token_count=len(content.split()),
        start_position=0,
        end_position=len(content),
    )


def _quality(**kwargs) -> ExtractionQuality:
    defaults = dict(char_count=5000, word_count=800, page_count=2, confidence=0.9)
    defaults.update(kwargs)
    return ExtractionQuality(**defaults)


class TestMessages:

    def test_every_code_has_a_message(self):
        for code in ValidationCode:
            assert code in VALIDATION_MESSAGES

    def test_zero_clauses_message(self):
        info = format_validation_error(ValidationCode.ZERO_CLAUSES, CLASSIFICATION_STAGE)
        assert info.user_message == "We couldn't find any clauses in this document."
        assert info.suggestion.startswith("Check that the file contains actual contract text")
        assert info.stage == "clause extraction"


class TestParserGate:

    def test_empty_text(self):
        result = validate_parser_output("", [])
        assert not result.valid
        assert result.error.code == ValidationCode.EMPTY_DOCUMENT
        assert result.error.stage == PARSING_STAGE

    def test_whitespace_text(self):
        result = validate_parser_output("  \n\t ", [])
        assert result.error.code == ValidationCode.EMPTY_DOCUMENT

    def test_no_chunks(self):
        result = validate_parser_output("some text", [])
        assert not result.valid
        assert result.error.code == ValidationCode.NO_CHUNKS

    def test_valid(self):
        assert validate_parser_output("some text", [_chunk("some text")]).valid


class TestClassifierGate:

    def test_zero_clauses_halts(self):
        result = validate_classifier_output([])
        assert not result.valid
        assert result.error.code == ValidationCode.ZERO_CLAUSES

    def test_clauses_pass(self):
        assert validate_classifier_output([{"category": "Confidentiality"}]).valid


class TestExtractionGate:

    def test_ocr_error_reroutes(self):
        result = validate_extraction_quality(error=OcrRequiredError(char_count=12))
        assert not result.valid
        assert result.route_to_ocr
        assert result.error.code == ValidationCode.OCR_REQUIRED

    def test_requires_ocr_quality_reroutes(self):
        result = validate_extraction_quality(quality=_quality(requires_ocr=True, confidence=0.0))
        assert result.route_to_ocr

    def test_encrypted(self):
        result = validate_extraction_quality(error=EncryptedDocumentError())
        assert not result.valid
        assert not result.route_to_ocr
        assert result.error.code == ValidationCode.ENCRYPTED

    def test_corrupt(self):
        result = validate_extraction_quality(error=CorruptDocumentError())
        assert result.error.code == ValidationCode.CORRUPT

    def test_unsupported_format_halts(self):
        result = validate_extraction_quality(error=UnsupportedDocumentError("Unsupported file type: image/png"))
        assert not result.valid
        assert not result.route_to_ocr
        assert result.error.code == ValidationCode.UNSUPPORTED_FORMAT
        assert result.error.stage == "text extraction"

    def test_unsupported_language_halts(self):
        result = validate_extraction_quality(error=UnsupportedLanguageError("not English"))
        assert result.error.code == ValidationCode.UNSUPPORTED_LANGUAGE

    def test_unrecognised_error_is_raised(self):
        with pytest.raises(ExtractionError):
            validate_extraction_quality(error=ExtractionError("nope"))

    def test_good_quality(self):
        result = validate_extraction_quality(quality=_quality())
        assert result.valid
        assert result.warnings == []

    def test_low_confidence_warns(self):
        result = validate_extraction_quality(quality=_quality(confidence=0.2))
        assert result.valid
        assert result.warnings[0].code == WarningCode.LOW_CONFIDENCE

    def test_quality_warnings_become_pipeline_warnings(self):
        result = validate_extraction_quality(
            quality=_quality(warnings=["Document has unusually low text density"])
        )
        assert [w.message for w in result.warnings] == ["Document has unusually low text density"]

    def test_requires_quality_or_error(self):
        with pytest.raises(ValueError):
            validate_extraction_quality()


class TestBudgetGate:

    def test_within_budget(self, word_estimator):
        chunks = [_chunk("a b c")]
        result = validate_token_budget("a b c", chunks, budget=10, estimator=word_estimator)
        assert result.passed
        assert result.truncation is None
        assert result.warning is None

    def test_over_budget_truncates_and_warns(self, word_estimator):
        chunks = [
            _chunk("a b c d", 0, ["ARTICLE 1"]),
            _chunk("e f g h", 1, ["ARTICLE 2"]),
        ]
        result = validate_token_budget("a b c d\n\ne f g h", chunks, budget=5, estimator=word_estimator)
        assert result.passed
        assert result.truncation.truncated
        assert len(result.truncation.chunks) == 1
        assert result.warning.code == WarningCode.DOCUMENT_TRUNCATED
        assert "first 1 of 2 sections" in result.warning.message
