"""
Reference corpus bootstrap: batch processing, resumable per-source
workers and the multi-source coordinator.
"""

from nda_pipeline.bootstrap.batch_processor import BatchProcessor, document_id_for
from nda_pipeline.bootstrap.coordinator import BootstrapCoordinator
from nda_pipeline.bootstrap.progress import ProgressTracker
from nda_pipeline.bootstrap.worker import SourceIngestionWorker, should_circuit_break

__all__ = [
    "BatchProcessor",
    "BootstrapCoordinator",
    "ProgressTracker",
    "SourceIngestionWorker",
    "document_id_for",
    "should_circuit_break",
]
