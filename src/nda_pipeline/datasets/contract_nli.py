"""
ContractNLI parser.

Accepts the published dataset layout (``{"documents": [...], "labels": {...}}``
with character-offset spans and ``nda-N`` hypothesis keys) as well as a flat
list of documents whose spans carry their own text.
"""

import json
import re
from collections import Counter
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import structlog

from nda_pipeline.datasets.labels import NLI_HYPOTHESES
from nda_pipeline.models.bootstrap import Granularity, NormalizedRecord
from nda_pipeline.utils.text import content_hash, normalize_nli_label, normalize_text

logger = structlog.get_logger(__name__)

SOURCE = "contract_nli"
_HYPOTHESIS_KEY_RE = re.compile(r"(\d+)$")


def _hypothesis_number(key: str) -> int | None:
    match = _HYPOTHESIS_KEY_RE.search(str(key))
    return int(match.group(1)) if match else None


def _span_text(document: dict[str, Any], span: Any) -> tuple[str, int | None, int | None]:
    text = document.get("text", "")
    if isinstance(span, dict):
        return span.get("text") or text[span.get("start", 0):span.get("end", 0)], span.get("start"), span.get("end")
    if isinstance(span, (list, tuple)) and len(span) == 2:
        start, end = int(span[0]), int(span[1])
        return text[start:end], start, end
    return "", None, None


def _annotations(document: dict[str, Any]) -> dict[str, Any]:
    if "annotation_sets" in document:
        merged: dict[str, Any] = {}
        for annotation_set in document["annotation_sets"]:
            merged.update(annotation_set.get("annotations", {}))
        return merged
    return document.get("annotations", {})


def _load(path: Path) -> tuple[list[dict[str, Any]], dict[int, str]]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    hypotheses = dict(NLI_HYPOTHESES)
    if isinstance(data, dict):
        for key, label in (data.get("labels") or {}).items():
            number = _hypothesis_number(key)
            if number is not None and isinstance(label, dict) and label.get("hypothesis"):
                hypotheses[number] = label["hypothesis"]
        return data.get("documents", []), hypotheses
    return data, hypotheses


async def parse_contract_nli_dataset(path: Path | str) -> AsyncIterator[NormalizedRecord]:
    """Yield document and evidence-span records from a ContractNLI JSON file."""
    path = Path(path)
    documents, hypotheses = _load(path)

    for document in documents:
        contract_id = str(document.get("id"))
        contract_text = normalize_text(document.get("text", ""))
        spans = document.get("spans", [])
        annotations = _annotations(document)

        yield NormalizedRecord(
            source=SOURCE,
            source_id=f"cnli:doc:{contract_id}",
            content=contract_text,
            content_hash=content_hash(contract_text),
            granularity=Granularity.DOCUMENT,
            metadata={
                "original_id": contract_id,
                "span_count": len(spans),
                "annotation_count": len(annotations),
            },
        )

        for key, annotation in annotations.items():
            hypothesis_id = _hypothesis_number(key)
            if hypothesis_id is None:
                continue
            nli_label = normalize_nli_label(annotation["choice"])
            hypothesis_text = hypotheses.get(hypothesis_id, f"Hypothesis {hypothesis_id}")

            for span_index in annotation.get("spans", []):
                if not 0 <= span_index < len(spans):
                    continue
                raw_text, start, end = _span_text(document, spans[span_index])
                span_text = normalize_text(raw_text)
                if not span_text:
                    continue

                yield NormalizedRecord(
                    source=SOURCE,
                    source_id=f"cnli:span:{contract_id}:h{hypothesis_id}:{span_index}",
                    content=span_text,
                    content_hash=content_hash(span_text),
                    granularity=Granularity.SPAN,
                    section_path=[hypothesis_text],
                    hypothesis_id=str(hypothesis_id),
                    nli_label=nli_label,
                    metadata={
                        "contract_id": contract_id,
                        "span_index": span_index,
                        "start_offset": start,
                        "end_offset": end,
                        "hypothesis_text": hypothesis_text,
                    },
                )

    logger.info("contract_nli_parsed", path=str(path), documents=len(documents))


async def get_contract_nli_stats(path: Path | str) -> dict[str, Any]:
    contracts = 0
    spans = 0
    labels: Counter[str] = Counter()
    hypotheses: Counter[str] = Counter()
    async for record in parse_contract_nli_dataset(path):
        if record.granularity == Granularity.DOCUMENT:
            contracts += 1
        elif record.granularity == Granularity.SPAN:
            spans += 1
            labels[record.nli_label or "unknown"] += 1
            hypotheses[record.hypothesis_id or "unknown"] += 1
    return {
        "total_contracts": contracts,
        "total_spans": spans,
        "label_counts": dict(labels),
        "hypothesis_counts": dict(hypotheses),
    }
