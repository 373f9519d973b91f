"""Table schema assembly from source headers and sampled rows."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from tabingest.config.settings import get_settings
from tabingest.ingest.ddl_generator import DDLGenerator
from tabingest.ingest.identifiers import dedupe_identifiers
from tabingest.ingest.type_detector import (
    ColumnStats,
    ColumnType,
    StrictnessMode,
    TypeDetector,
)


class NullabilityPolicy(str, Enum):
    """Whether generated DDL trusts detected nullability."""
    ALL_NULLABLE = "all-nullable"
    INFERRED = "inferred"


@dataclass(frozen=True)
class ColumnSchema:
    """One column of a target table."""
    name: str
    original_header: str
    type: ColumnType
    nullable: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "original_header": self.original_header,
            "type": self.type.value,
            "nullable": self.nullable,
        }


@dataclass(frozen=True)
class TableSchema:
    """
    Ordered, immutable column list of a target table.

    Column order is fixed at creation and is the order of every insert.
    """
    columns: Tuple[ColumnSchema, ...]

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Optional[ColumnSchema]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def with_nullable(self, name: str) -> "TableSchema":
        """Return a copy in which only column ``name`` is widened to nullable."""
        if self.column(name) is None:
            raise KeyError(name)
        return TableSchema(columns=tuple(
            replace(c, nullable=True) if c.name == name else c
            for c in self.columns
        ))

    def to_dict(self) -> Dict[str, Any]:
        return {"columns": [c.to_dict() for c in self.columns]}


class SchemaBuilder:
    """
    Builds a TableSchema and its CREATE TABLE statement.

    Per-column detection is delegated to ``TypeDetector``; identifiers come
    from ``dedupe_identifiers`` so every column name is unique.
    """

    def __init__(
        self,
        detector: Optional[TypeDetector] = None,
        ddl_generator: Optional[DDLGenerator] = None,
        sample_size: Optional[int] = None,
    ):
        settings = get_settings()

        self.sample_size = sample_size or settings.sample_size
        self.detector = detector or TypeDetector(
            mode=StrictnessMode(settings.strictness_mode),
            sample_size=self.sample_size,
        )
        self.ddl_generator = ddl_generator or DDLGenerator()

    def build(
        self,
        headers: Sequence[str],
        rows: Sequence[Mapping[str, Any]],
    ) -> TableSchema:
        """
        Build the schema for a source.

        Args:
            headers: Ordered source headers
            rows: Rows keyed by original header; only the first
                ``sample_size`` rows are inspected

        Returns:
            TableSchema with one column per header, in header order
        """
        names = dedupe_identifiers(headers)
        stats = [ColumnStats(header=h) for h in headers]

        for row in rows[:self.sample_size]:
            for header, column_stats in zip(headers, stats):
                column_stats.add_value(row.get(header))

        columns = []
        for name, header, column_stats in zip(names, headers, stats):
            column_type, nullable = self.detector.detect_stats(column_stats)
            columns.append(ColumnSchema(
                name=name,
                original_header=header,
                type=column_type,
                nullable=nullable,
            ))

        return TableSchema(columns=tuple(columns))

    def render_create_table(
        self,
        table_name: str,
        schema: TableSchema,
        nullability_policy: NullabilityPolicy = NullabilityPolicy.ALL_NULLABLE,
    ) -> str:
        """Render idempotent CREATE TABLE DDL under a nullability policy."""
        all_nullable = NullabilityPolicy(nullability_policy) == NullabilityPolicy.ALL_NULLABLE
        return self.ddl_generator.generate_table_ddl(
            table_name, schema, all_nullable=all_nullable)
