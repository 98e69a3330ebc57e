"""
Ingestion Module
"""
from .batch_ingestor import (
    BatchIngestor,
    BatchReport,
    BatchStatus,
    IngestionReport,
    LoadStatus,
    RecordFailure,
    create_batch_ingestor,
    partition,
)
from .readers import FileFormat, read_frame, read_records

__all__ = [
    "BatchIngestor",
    "BatchReport",
    "BatchStatus",
    "IngestionReport",
    "LoadStatus",
    "RecordFailure",
    "create_batch_ingestor",
    "partition",
    "FileFormat",
    "read_frame",
    "read_records",
]
