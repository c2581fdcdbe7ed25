"""
Text helpers: content hashing, normalization and markdown heading parsing.
"""

import hashlib
import re

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_WHITESPACE_RE = re.compile(r"\s+")

_NLI_LABELS = {
    "entailment": "entailment",
    "contradiction": "contradiction",
    "notmentioned": "not_mentioned",
    "not_mentioned": "not_mentioned",
}


def content_hash(content: str) -> str:
    """SHA-256 hex digest used for deduplication."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def normalize_text(text: str) -> str:
    """Normalize line endings, expand tabs to two spaces, trim."""
    return text.replace("\r\n", "\n").replace("\t", "  ").strip()


def normalize_for_cache(text: str) -> str:
    """Case- and whitespace-insensitive form used for cache keys."""
    return _WHITESPACE_RE.sub(" ", text.strip().lower())


def parse_heading(line: str) -> tuple[int, str] | None:
    """Parse a markdown heading into (level, text)."""
    match = _HEADING_RE.match(line)
    if not match:
        return None
    return len(match.group(1)), match.group(2).strip()


def build_section_path(
    headings: list[tuple[int, str]],
    current_level: int,
    current_text: str,
) -> list[str]:
    """
    Build the heading path for a section.

    For each level above ``current_level`` the most recent heading at that
    level is taken as an ancestor; missing levels are skipped.
    """
    path: list[str] = []
    for level in range(1, current_level):
        ancestor = next((text for lvl, text in reversed(headings) if lvl == level), None)
        if ancestor is not None:
            path.append(ancestor)
    path.append(current_text)
    return path


def normalize_nli_label(choice: str) -> str:
    """Map a ContractNLI choice (Entailment, Contradiction, NotMentioned) to a label."""
    label = _NLI_LABELS.get(choice.replace(" ", "").lower())
    if label is None:
        raise ValueError(f"Unknown NLI choice: {choice}")
    return label
