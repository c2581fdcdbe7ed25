"""
CUAD (Contract Understanding Atticus Dataset) parser.

Streams the parquet file in row batches and yields one document record per
contract plus one clause record per annotated clause.
"""

from collections import Counter
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pyarrow.parquet as pq
import structlog

from nda_pipeline.models.bootstrap import Granularity, NormalizedRecord
from nda_pipeline.utils.text import content_hash, normalize_text

logger = structlog.get_logger(__name__)

SOURCE = "cuad"
_COLUMNS = ["contract_name", "contract_text", "category", "clause_text", "start_ix", "end_ix"]


def _iter_rows(path: Path, batch_size: int = 256):
    parquet_file = pq.ParquetFile(path)
    available = set(parquet_file.schema_arrow.names)
    columns = [c for c in _COLUMNS if c in available]
    for batch in parquet_file.iter_batches(batch_size=batch_size, columns=columns):
        yield from batch.to_pylist()


def _records_for_row(row: dict[str, Any], seen_contracts: set[str]) -> list[NormalizedRecord]:
    contract_name = str(row.get("contract_name") or "")
    contract_text = normalize_text(str(row.get("contract_text") or ""))
    clause_text = normalize_text(str(row.get("clause_text") or ""))
    category = str(row.get("category") or "")
    start_ix = int(row.get("start_ix") or 0)
    end_ix = int(row.get("end_ix") or 0)

    records = []
    if contract_name and contract_name not in seen_contracts:
        seen_contracts.add(contract_name)
        records.append(
            NormalizedRecord(
                source=SOURCE,
                source_id=f"cuad:doc:{contract_name}",
                content=contract_text,
                content_hash=content_hash(contract_text),
                granularity=Granularity.DOCUMENT,
                metadata={"contract_name": contract_name},
            )
        )

    if clause_text:
        records.append(
            NormalizedRecord(
                source=SOURCE,
                source_id=f"cuad:clause:{contract_name}:{start_ix}-{end_ix}",
                content=clause_text,
                content_hash=content_hash(clause_text),
                granularity=Granularity.CLAUSE,
                section_path=[category] if category else [],
                category=category or None,
                metadata={
                    "contract_name": contract_name,
                    "start_index": start_ix,
                    "end_index": end_ix,
                },
            )
        )
    return records


async def parse_cuad_dataset(path: Path | str) -> AsyncIterator[NormalizedRecord]:
    """Yield document and clause records from a CUAD parquet file."""
    path = Path(path)
    seen_contracts: set[str] = set()
    rows = 0
    for row in _iter_rows(path):
        rows += 1
        for record in _records_for_row(row, seen_contracts):
            yield record
    logger.info("cuad_parsed", path=str(path), rows=rows, contracts=len(seen_contracts))


async def get_cuad_stats(path: Path | str) -> dict[str, Any]:
    contracts = 0
    clauses = 0
    categories: Counter[str] = Counter()
    async for record in parse_cuad_dataset(path):
        if record.granularity == Granularity.DOCUMENT:
            contracts += 1
        elif record.granularity == Granularity.CLAUSE:
            clauses += 1
            categories[record.category or "unknown"] += 1
    return {
        "total_contracts": contracts,
        "total_clauses": clauses,
        "category_counts": dict(categories),
    }
