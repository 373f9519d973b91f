"""
Ingestion Pipeline.

Drives one parsed source into the relational store: table name resolution,
schema build, conflict policy, idempotent CREATE TABLE, then fixed-size
multi-row insert batches with a one-shot widen-and-retry on not-null
violations. The pipeline is the only component that changes a source's
status.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from tabingest.common.logging_config import PerformanceTracker
from tabingest.common.metrics import (
    ingest_batches_total,
    ingest_rows_inserted_total,
    ingest_source_duration_seconds,
    ingest_sources_total,
    schema_repairs_total,
)
from tabingest.config.settings import get_settings
from tabingest.ingest.errors import (
    ConflictPolicyViolation,
    ConstraintViolation,
    EmptyDatasetError,
    IngestionError,
    InvalidStatusTransition,
    StoreConnectivityError,
)
from tabingest.ingest.identifiers import resolve_table_name
from tabingest.ingest.row_encoder import RowEncoder
from tabingest.ingest.schema_builder import (
    NullabilityPolicy,
    SchemaBuilder,
    TableSchema,
)
from tabingest.ingest.status import SourceStatus, check_transition
from tabingest.ingest.store import TableStore
from tabingest.ingest.type_detector import StrictnessMode, TypeDetector

logger = logging.getLogger(__name__)


class ConflictPolicy(str, Enum):
    """What to do when the target table already exists."""
    APPEND = "append"
    REPLACE = "replace"
    FAIL = "fail"


@dataclass
class IngestionRequest:
    """One parsed source plus the policies it is ingested under."""
    headers: Sequence[str]
    rows: Sequence[Mapping[str, Any]]
    file_name: Optional[str] = None
    target_table_name: Optional[str] = None
    conflict_policy: ConflictPolicy = ConflictPolicy.APPEND
    nullability_policy: NullabilityPolicy = NullabilityPolicy.ALL_NULLABLE
    strictness_mode: Optional[StrictnessMode] = None


@dataclass
class IngestionOutcome:
    """Per-source result, complete enough to reconcile without re-querying."""
    source_id: str
    status: SourceStatus
    table_name: Optional[str] = None
    row_count: int = 0
    batches: int = 0
    repairs: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "status": self.status.value,
            "table_name": self.table_name,
            "row_count": self.row_count,
            "batches": self.batches,
            "repairs": list(self.repairs),
            "error": self.error,
        }


class IngestionPipeline:
    """
    Ingests parsed sources into a relational store.

    The store handle and the source registry are injected; nothing in here
    reaches for a global connection.
    """

    def __init__(
        self,
        store: TableStore,
        registry,
        batch_size: Optional[int] = None,
        schema_builder: Optional[SchemaBuilder] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            store: Store handle for target tables
            registry: Source registry; only ``save(record)`` is used
            batch_size: Rows per INSERT statement
            schema_builder: Schema builder (defaults to one for the store's dialect)
        """
        settings = get_settings()

        self.store = store
        self.registry = registry
        self.batch_size = batch_size or settings.batch_size
        self.ddl_generator = store.ddl_generator()
        self.schema_builder = schema_builder or SchemaBuilder(
            ddl_generator=self.ddl_generator)

        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

    # ---------- status handling ----------

    def _transition(self, record, target: SourceStatus) -> None:
        previous = record.status
        status = check_transition(previous, target, source_id=record.id)
        record.status = status.value
        self.registry.save(record)

        if status.is_terminal:
            ingest_sources_total.labels(status=status.value).inc()
        logger.info(f"Source {record.id}: {previous} -> {status.value}")

    def _begin(self, record) -> None:
        """Start a fresh run: terminal -> pending -> processing."""
        if SourceStatus(record.status).is_terminal:
            self._transition(record, SourceStatus.PENDING)
        record.error_message = None
        record.row_count = 0
        self._transition(record, SourceStatus.PROCESSING)

    def _finish(self, record, outcome: IngestionOutcome, status: SourceStatus,
                error: Optional[Exception] = None) -> IngestionOutcome:
        if error is not None:
            record.error_message = str(error)
            outcome.error = str(error)
        self._transition(record, status)
        outcome.status = status
        return outcome

    def mark_unsupported(self, record, error: Exception) -> IngestionOutcome:
        """Record that a source has no usable parser."""
        self._begin(record)
        logger.warning(f"Source {record.id} is unsupported: {error}")
        outcome = IngestionOutcome(source_id=record.id, status=SourceStatus.PROCESSING)
        return self._finish(record, outcome, SourceStatus.UNSUPPORTED, error)

    def mark_failed(self, record, error: Exception) -> IngestionOutcome:
        """Record a failure that happened before the source reached the pipeline."""
        self._begin(record)
        logger.error(f"Source {record.id} failed before ingestion: {error}")
        outcome = IngestionOutcome(source_id=record.id, status=SourceStatus.PROCESSING)
        return self._finish(record, outcome, SourceStatus.FAILED, error)

    def mark_interrupted(self, record, reason: str = "Ingestion interrupted") -> None:
        """
        Fail a source left in ``processing`` by a run that never finished.

        Raises:
            InvalidStatusTransition: If the source is not processing
        """
        if record.status != SourceStatus.PROCESSING.value:
            raise InvalidStatusTransition(
                record.status, SourceStatus.FAILED.value, source_id=record.id)
        record.error_message = reason
        logger.warning(f"Source {record.id} reset from processing: {reason}")
        self._transition(record, SourceStatus.FAILED)

    # ---------- ingestion ----------

    def ingest(self, request: IngestionRequest, record) -> IngestionOutcome:
        """
        Ingest one parsed source.

        Per-source failures end in a terminal status on ``record`` and on the
        returned outcome. A StoreConnectivityError marks the source failed
        and is then re-raised so the caller can abort the run.

        Args:
            request: Parsed source and policies
            record: Registered source record (mutated and saved)

        Returns:
            IngestionOutcome

        Raises:
            InvalidStatusTransition: If the source is already processing
            StoreConnectivityError: If the store cannot be reached
        """
        self._begin(record)
        outcome = IngestionOutcome(source_id=record.id, status=SourceStatus.PROCESSING)

        tracker = PerformanceTracker("ingest_source", logger, source_id=record.id)
        try:
            outcome.table_name = resolve_table_name(request.target_table_name, request.file_name)
            if not request.headers or not request.rows:
                raise EmptyDatasetError(
                    f"{request.file_name or record.id} has no data rows", source_id=record.id)
            with tracker:
                self._run(request, record, outcome)
        except EmptyDatasetError as e:
            logger.info(f"Source {record.id}: {e}; no table created")
            self._finish(record, outcome, SourceStatus.EMPTY)
        except StoreConnectivityError as e:
            logger.error(f"Store unreachable while ingesting {record.id}: {e}")
            self._finish(record, outcome, SourceStatus.FAILED, e)
            raise
        except ConflictPolicyViolation as e:
            logger.warning(f"Source {record.id} not ingested: {e}")
            self._finish(record, outcome, SourceStatus.FAILED, e)
        except IngestionError as e:
            logger.error(
                f"Source {record.id} failed after {outcome.row_count} rows: {e}")
            self._finish(record, outcome, SourceStatus.FAILED, e)
        except Exception as e:
            logger.exception(f"Unexpected error while ingesting {record.id}")
            self._finish(record, outcome, SourceStatus.FAILED, e)
            raise
        finally:
            ingest_source_duration_seconds.observe(tracker.duration_seconds)

        return outcome

    def _schema_builder_for(self, request: IngestionRequest) -> SchemaBuilder:
        if request.strictness_mode is None:
            return self.schema_builder
        detector = TypeDetector(
            mode=StrictnessMode(request.strictness_mode),
            sample_size=self.schema_builder.sample_size,
        )
        return SchemaBuilder(
            detector=detector,
            ddl_generator=self.ddl_generator,
            sample_size=self.schema_builder.sample_size,
        )

    def _run(self, request: IngestionRequest, record, outcome: IngestionOutcome) -> None:
        table_name = outcome.table_name

        builder = self._schema_builder_for(request)
        schema = builder.build(request.headers, request.rows)
        create_sql = builder.render_create_table(
            table_name, schema, NullabilityPolicy(request.nullability_policy))
        policy = ConflictPolicy(request.conflict_policy)

        with self.store.connection() as conn:
            if policy == ConflictPolicy.REPLACE:
                logger.info(f"Dropping table {table_name} (conflict policy: replace)")
                self.store.execute(conn, self.ddl_generator.generate_drop_table(table_name))
            elif policy == ConflictPolicy.FAIL and self.store.table_exists(conn, table_name):
                raise ConflictPolicyViolation(table_name, source_id=record.id)

            logger.debug(f"Executing DDL for {table_name}: {create_sql}")
            self.store.execute(conn, create_sql)

            record.table_name = table_name
            self.registry.save(record)

            self._insert_batches(conn, table_name, schema, request.rows, record, outcome)

        self._finish(record, outcome, SourceStatus.PROCESSED)

    def _insert_batches(
        self,
        conn,
        table_name: str,
        schema: TableSchema,
        rows: Sequence[Mapping[str, Any]],
        record,
        outcome: IngestionOutcome,
    ) -> None:
        encoder = RowEncoder(schema)

        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            batch_number = outcome.batches + 1
            params = encoder.encode_batch(batch)
            sql = self.ddl_generator.generate_insert_statement(
                table_name, schema, len(batch))

            logger.debug(
                f"Submitting batch {batch_number} of {len(batch)} rows to {table_name}")
            schema = self._submit_batch(
                conn, table_name, schema, sql, params, batch_number, outcome)

            outcome.batches += 1
            outcome.row_count += len(batch)
            ingest_rows_inserted_total.inc(len(batch))

            record.row_count = outcome.row_count
            self.registry.save(record)

    def _submit_batch(
        self,
        conn,
        table_name: str,
        schema: TableSchema,
        sql: str,
        params: List[Any],
        batch_number: int,
        outcome: IngestionOutcome,
    ) -> TableSchema:
        """
        Insert one batch, widening a column and resubmitting at most once.

        Returns:
            The schema after any repair
        """
        try:
            self.store.execute(conn, sql, params)
            ingest_batches_total.labels(outcome="committed").inc()
            return schema
        except ConstraintViolation as e:
            column = schema.column(e.column)
            if column is None:
                ingest_batches_total.labels(outcome="failed").inc()
                raise

            logger.warning(
                f"Batch {batch_number} hit a null in NOT NULL column "
                f"{table_name}.{column.name}; widening to nullable and resubmitting"
            )
            self.store.execute(
                conn, self.ddl_generator.generate_alter_nullable(table_name, column))
            schema = schema.with_nullable(column.name)
            outcome.repairs.append(column.name)
            schema_repairs_total.inc()

        try:
            self.store.execute(conn, sql, params)
        except ConstraintViolation:
            ingest_batches_total.labels(outcome="failed").inc()
            logger.error(f"Batch {batch_number} failed again after repair; giving up")
            raise

        ingest_batches_total.labels(outcome="repaired").inc()
        return schema
