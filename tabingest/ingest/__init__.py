"""
Ingest module for tabular sources.

Provides identifier sanitization, type detection, schema building, DDL
generation, row encoding and the batch ingestion pipeline.
"""

from tabingest.ingest.identifiers import (
    PLACEHOLDER_IDENTIFIER,
    dedupe_identifiers,
    sanitize_identifier,
    table_name_from_filename,
)
from tabingest.ingest.type_detector import (
    ColumnStats,
    ColumnType,
    StrictnessMode,
    TypeDetector,
)
from tabingest.ingest.schema_builder import (
    ColumnSchema,
    NullabilityPolicy,
    SchemaBuilder,
    TableSchema,
)
from tabingest.ingest.ddl_generator import DDLGenerator
from tabingest.ingest.row_encoder import RowEncoder, encode_row
from tabingest.ingest.status import SourceStatus, check_transition
from tabingest.ingest.store import TableStore
from tabingest.ingest.pipeline import (
    ConflictPolicy,
    IngestionOutcome,
    IngestionPipeline,
    IngestionRequest,
)

__all__ = [  # ruff: noqa: RUF022
    # Identifiers
    "PLACEHOLDER_IDENTIFIER",
    "dedupe_identifiers",
    "sanitize_identifier",
    "table_name_from_filename",
    # Type detection
    "ColumnStats",
    "ColumnType",
    "StrictnessMode",
    "TypeDetector",
    # Schema
    "ColumnSchema",
    "NullabilityPolicy",
    "SchemaBuilder",
    "TableSchema",
    "DDLGenerator",
    # Encoding and storage
    "RowEncoder",
    "encode_row",
    "TableStore",
    # Pipeline
    "SourceStatus",
    "check_transition",
    "ConflictPolicy",
    "IngestionOutcome",
    "IngestionPipeline",
    "IngestionRequest",
]
