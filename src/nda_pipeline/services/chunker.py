"""
Legal-document chunker.

Splits raw document text into section-aware, token-bounded chunks whose
character offsets point back into the original text. Paragraphs are
accumulated greedily; when the next paragraph would push a chunk past
``max_tokens`` the chunk is closed and the next one is seeded with the
trailing words of the closed chunk as context.
"""

import re
from dataclasses import dataclass

import structlog

from nda_pipeline.models.document import DocumentChunk
from nda_pipeline.services.tokens import TokenEstimator, get_token_estimator

logger = structlog.get_logger(__name__)

# A paragraph is a maximal run of lines containing non-whitespace characters.
_PARAGRAPH_RE = re.compile(r"[^\n]*\S[^\n]*(?:\n[^\n]*\S[^\n]*)*")


@dataclass(frozen=True)
class SectionMatch:
    label: str
    span: tuple[int, int]
    level: int


@dataclass(frozen=True)
class SectionPattern:
    """A heading matcher. Lower ``level`` means an outer heading."""

    name: str
    regex: re.Pattern
    level: int

    def match(self, paragraph: str) -> SectionMatch | None:
        found = self.regex.search(paragraph)
        if not found:
            return None
        label = " ".join(found.group(1).split())
        return SectionMatch(label=label, span=found.span(1), level=self.level)


DEFAULT_SECTION_PATTERNS: tuple[SectionPattern, ...] = (
    SectionPattern(
        name="article",
        regex=re.compile(
            r"^(ARTICLE[ \t]+[IVXLC\d]+\b(?:[ \t]*[-–—:.]?[ \t]*[A-Z][A-Z \t]*)?)",
            re.IGNORECASE | re.MULTILINE,
        ),
        level=1,
    ),
    SectionPattern(
        name="section",
        regex=re.compile(r"^(Section[ \t]+\d+(?:\.\d+)*\.?[ \t]*[A-Za-z]*)", re.IGNORECASE | re.MULTILINE),
        level=2,
    ),
    SectionPattern(
        name="numbered_clause",
        regex=re.compile(r"^(\d+(?:\.\d+)*\.?[ \t]+[A-Z][A-Za-z\-]*(?:[ \t]+[A-Z][A-Za-z\-]*)*)", re.MULTILINE),
        level=3,
    ),
)


@dataclass(frozen=True)
class _Paragraph:
    start: int
    end: int
    text: str


class DocumentChunker:
    """
    Section-aware, token-bounded chunker.

    Args:
        max_tokens: Upper bound for a chunk's context text (overlap + content)
        overlap_tokens: Trailing tokens of the previous chunk carried as context
        section_patterns: Ordered heading matchers; the first match wins
        estimator: Token counter; defaults to the process-wide estimator
    """

    def __init__(
        self,
        max_tokens: int = 500,
        overlap_tokens: int = 50,
        section_patterns: tuple[SectionPattern, ...] | list[SectionPattern] = DEFAULT_SECTION_PATTERNS,
        estimator: TokenEstimator | None = None,
    ):
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if not 0 <= overlap_tokens < max_tokens:
            raise ValueError("overlap_tokens must be in [0, max_tokens)")

        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens
        self.section_patterns = tuple(section_patterns)
        self._estimator = estimator

    @property
    def estimator(self) -> TokenEstimator:
        if self._estimator is None:
            self._estimator = get_token_estimator()
        return self._estimator

    # =========================================================================
    # Public API
    # =========================================================================

    def chunk(self, text: str) -> list[DocumentChunk]:
        """Split ``text`` into chunks. Empty or blank text yields no chunks."""
        paragraphs = self.split_paragraphs(text)
        if not paragraphs:
            return []

        chunks: list[DocumentChunk] = []
        heading_stack: list[tuple[int, str]] = []

        chunk_start = paragraphs[0].start
        chunk_end = paragraphs[0].end
        overlap = ""
        heading = self.detect_section(paragraphs[0].text)
        if heading:
            heading_stack = self._push_heading(heading_stack, heading)
        chunk_section = [label for _, label in heading_stack]

        for para in paragraphs[1:]:
            heading = self.detect_section(para.text)
            candidate = text[chunk_start:para.end]

            if self._context_tokens(overlap, candidate) > self.max_tokens:
                chunks.append(
                    self._make_chunk(text, len(chunks), chunk_start, chunk_end, chunk_section, overlap)
                )
                if heading:
                    heading_stack = self._push_heading(heading_stack, heading)
                overlap = self.overlap_text(text[chunk_start:chunk_end])
                chunk_start, chunk_end = para.start, para.end
                chunk_section = [label for _, label in heading_stack]
            else:
                if heading:
                    heading_stack = self._push_heading(heading_stack, heading)
                chunk_end = para.end

        chunks.append(self._make_chunk(text, len(chunks), chunk_start, chunk_end, chunk_section, overlap))

        logger.debug(
            "document_chunked",
            chunks=len(chunks),
            paragraphs=len(paragraphs),
            max_tokens=self.max_tokens,
        )
        return chunks

    def detect_section(self, paragraph: str) -> SectionMatch | None:
        """Return the first heading match in a paragraph, if any."""
        for pattern in self.section_patterns:
            found = pattern.match(paragraph)
            if found:
                return found
        return None

    def overlap_text(self, content: str) -> str:
        """Trailing words of ``content`` worth at least ``overlap_tokens`` tokens."""
        if self.overlap_tokens == 0:
            return ""

        words = content.split()
        taken: list[str] = []
        for word in reversed(words):
            taken.insert(0, word)
            if self.estimator.count(" ".join(taken)) >= self.overlap_tokens:
                break
        return " ".join(taken)

    @staticmethod
    def split_paragraphs(text: str) -> list[_Paragraph]:
        paragraphs = []
        for match in _PARAGRAPH_RE.finditer(text):
            raw = match.group(0)
            start = match.start() + (len(raw) - len(raw.lstrip()))
            end = match.end() - (len(raw) - len(raw.rstrip()))
            paragraphs.append(_Paragraph(start=start, end=end, text=text[start:end]))
        return paragraphs

    # =========================================================================
    # Helpers
    # =========================================================================

    def _context_tokens(self, overlap: str, content: str) -> int:
        if overlap:
            return self.estimator.count(f"{overlap} {content}")
        return self.estimator.count(content)

    @staticmethod
    def _push_heading(
        stack: list[tuple[int, str]],
        heading: SectionMatch,
    ) -> list[tuple[int, str]]:
        kept = [(level, label) for level, label in stack if level < heading.level]
        kept.append((heading.level, heading.label))
        return kept

    def _make_chunk(
        self,
        text: str,
        index: int,
        start: int,
        end: int,
        section_path: list[str],
        overlap: str,
    ) -> DocumentChunk:
        content = text[start:end]
        return DocumentChunk(
            id=f"chunk-{index}",
            index=index,
            content=content,
            section_path=list(section_path),
            token_count=self.estimator.count(content),
            start_position=start,
            end_position=end,
            overlap_text=overlap,
        )


def chunk_document(
    text: str,
    max_tokens: int = 500,
    overlap_tokens: int = 50,
    estimator: TokenEstimator | None = None,
) -> list[DocumentChunk]:
    """Chunk a document with the default section patterns."""
    chunker = DocumentChunker(
        max_tokens=max_tokens,
        overlap_tokens=overlap_tokens,
        estimator=estimator,
    )
    return chunker.chunk(text)
