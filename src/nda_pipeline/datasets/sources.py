"""
Dataset source names and the parser lookup table.
"""

from collections.abc import AsyncIterator, Callable
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable

from nda_pipeline.datasets.contract_nli import get_contract_nli_stats, parse_contract_nli_dataset
from nda_pipeline.datasets.cuad import get_cuad_stats, parse_cuad_dataset
from nda_pipeline.datasets.templates import (
    get_template_stats,
    parse_bonterms_dataset,
    parse_commonaccord_dataset,
)
from nda_pipeline.exceptions import UnknownSourceError
from nda_pipeline.models.bootstrap import NormalizedRecord


class DatasetSource(str, Enum):
    CUAD = "cuad"
    CONTRACT_NLI = "contract_nli"
    BONTERMS = "bonterms"
    COMMONACCORD = "commonaccord"


DatasetParser = Callable[[Path], AsyncIterator[NormalizedRecord]]

PARSERS: dict[str, DatasetParser] = {
    DatasetSource.CUAD.value: parse_cuad_dataset,
    DatasetSource.CONTRACT_NLI.value: parse_contract_nli_dataset,
    DatasetSource.BONTERMS.value: parse_bonterms_dataset,
    DatasetSource.COMMONACCORD.value: parse_commonaccord_dataset,
}


def get_parser(source: str, parsers: dict[str, DatasetParser] | None = None) -> DatasetParser:
    """Look up the parser for ``source``."""
    table = PARSERS if parsers is None else parsers
    try:
        return table[source]
    except KeyError:
        raise UnknownSourceError(source) from None


def get_dataset_stats(source: str, path: Path) -> Awaitable[dict[str, Any]]:
    """Per-source record statistics."""
    if source == DatasetSource.CUAD.value:
        return get_cuad_stats(path)
    if source == DatasetSource.CONTRACT_NLI.value:
        return get_contract_nli_stats(path)
    if source in (DatasetSource.BONTERMS.value, DatasetSource.COMMONACCORD.value):
        return get_template_stats(path, source)
    raise UnknownSourceError(source)
