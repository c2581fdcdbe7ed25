"""Tests for nda_pipeline/utils/text.py."""

import pytest

from nda_pipeline.utils.text import (
    build_section_path,
    content_hash,
    normalize_for_cache,
    normalize_nli_label,
    normalize_text,
    parse_heading,
)


class TestContentHash:

    def test_sha256_hex(self):
        assert content_hash("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_sensitive_to_whitespace(self):
        assert content_hash("a b") != content_hash("a  b")


class TestNormalization:

    def test_normalize_text(self):
        assert normalize_text("  a\r\n\tb  ") == "a\n  b"

    def test_normalize_for_cache(self):
        assert normalize_for_cache("  Confidential\n  INFORMATION ") == "confidential information"


class TestHeadings:

    def test_parse_heading(self):
        assert parse_heading("## Term") == (2, "Term")
        assert parse_heading("####### too deep") is None
        assert parse_heading("#no space") is None

    def test_section_path_uses_latest_ancestors(self):
        headings = [(1, "NDA"), (2, "Definitions"), (2, "Obligations")]
        assert build_section_path(headings, 3, "Return") == ["NDA", "Obligations", "Return"]

    def test_section_path_skips_missing_levels(self):
        assert build_section_path([(1, "NDA")], 3, "Deep") == ["NDA", "Deep"]


class TestNliLabels:

    @pytest.mark.parametrize(
        "choice,label",
        [
            ("Entailment", "entailment"),
            ("Contradiction", "contradiction"),
            ("NotMentioned", "not_mentioned"),
            ("not mentioned", "not_mentioned"),
        ],
    )
    def test_known(self, choice, label):
        assert normalize_nli_label(choice) == label

    def test_unknown(self):
        with pytest.raises(ValueError):
            normalize_nli_label("Maybe")
