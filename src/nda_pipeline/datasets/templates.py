"""
Markdown template parser for Bonterms and CommonAccord.

Each ``.md`` file yields a template record for the whole file and one
section record per heading with non-empty body text.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from nda_pipeline.models.bootstrap import Granularity, NormalizedRecord
from nda_pipeline.utils.text import build_section_path, content_hash, normalize_text, parse_heading

logger = structlog.get_logger(__name__)


@dataclass
class TemplateSection:
    heading: str
    level: int
    content: str
    path: list[str]


def parse_markdown_template(markdown: str) -> list[TemplateSection]:
    """Split markdown into heading sections with their ancestor paths."""
    sections: list[TemplateSection] = []
    history: list[tuple[int, str]] = []
    current: TemplateSection | None = None
    body: list[str] = []

    def flush() -> None:
        if current is None:
            return
        current.content = normalize_text("\n".join(body))
        if current.content:
            sections.append(current)

    for line in markdown.splitlines():
        heading = parse_heading(line)
        if heading is None:
            if current is not None:
                body.append(line)
            continue

        flush()
        level, text = heading
        while history and history[-1][0] >= level:
            history.pop()
        history.append(heading)
        current = TemplateSection(
            heading=text,
            level=level,
            content="",
            path=build_section_path(history, level, text),
        )
        body = []

    flush()
    return sections


async def parse_template_directory(path: Path | str, source: str) -> AsyncIterator[NormalizedRecord]:
    """Yield template and section records for every markdown file under ``path``."""
    root = Path(path)
    files = sorted(p for p in root.rglob("*.md") if p.is_file())

    for file_path in files:
        relative_path = file_path.relative_to(root).as_posix()
        template_name = file_path.stem
        raw = file_path.read_text(encoding="utf-8")
        content = normalize_text(raw)

        yield NormalizedRecord(
            source=source,
            source_id=f"{source}:template:{relative_path}",
            content=content,
            content_hash=content_hash(content),
            granularity=Granularity.TEMPLATE,
            section_path=[template_name],
            metadata={"file_name": file_path.name, "relative_path": relative_path},
        )

        for index, section in enumerate(parse_markdown_template(raw)):
            yield NormalizedRecord(
                source=source,
                source_id=f"{source}:section:{relative_path}:{index}",
                content=section.content,
                content_hash=content_hash(section.content),
                granularity=Granularity.SECTION,
                section_path=[template_name, *section.path],
                category=section.heading,
                metadata={
                    "file_name": file_path.name,
                    "relative_path": relative_path,
                    "heading_level": section.level,
                    "section_index": index,
                },
            )

    logger.info("templates_parsed", source=source, path=str(root), files=len(files))


async def parse_bonterms_dataset(path: Path | str) -> AsyncIterator[NormalizedRecord]:
    async for record in parse_template_directory(path, "bonterms"):
        yield record


async def parse_commonaccord_dataset(path: Path | str) -> AsyncIterator[NormalizedRecord]:
    async for record in parse_template_directory(path, "commonaccord"):
        yield record


async def get_template_stats(path: Path | str, source: str) -> dict[str, Any]:
    templates = 0
    sections = 0
    async for record in parse_template_directory(path, source):
        if record.granularity == Granularity.TEMPLATE:
            templates += 1
        elif record.granularity == Granularity.SECTION:
            sections += 1
    return {
        "total_templates": templates,
        "total_sections": sections,
        "avg_sections_per_template": sections / templates if templates else 0.0,
    }
