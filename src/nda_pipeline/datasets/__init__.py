"""
Reference dataset parsers.

Every source yields NormalizedRecord objects through an async iterator,
selected by source name from PARSERS.
"""

from nda_pipeline.datasets.labels import CUAD_CATEGORIES, NLI_HYPOTHESES
from nda_pipeline.datasets.sources import (
    PARSERS,
    DatasetParser,
    DatasetSource,
    get_dataset_stats,
    get_parser,
)

__all__ = [
    "CUAD_CATEGORIES",
    "NLI_HYPOTHESES",
    "PARSERS",
    "DatasetParser",
    "DatasetSource",
    "get_dataset_stats",
    "get_parser",
]
