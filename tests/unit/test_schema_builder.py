"""
Unit tests for schema building and CREATE TABLE rendering.
"""

import pytest

from tabingest.ingest.ddl_generator import DDLGenerator
from tabingest.ingest.schema_builder import (
    ColumnSchema,
    NullabilityPolicy,
    SchemaBuilder,
    TableSchema,
)
from tabingest.ingest.type_detector import ColumnType, StrictnessMode, TypeDetector


def adaptive_builder(sample_size=1000):
    return SchemaBuilder(
        detector=TypeDetector(mode=StrictnessMode.ADAPTIVE, sample_size=sample_size),
        ddl_generator=DDLGenerator("mysql"),
        sample_size=sample_size,
    )


ROWS = [
    {"Order ID": "1", "Amount": "9.99", "Paid": "yes", "Note": "first"},
    {"Order ID": "2", "Amount": "", "Paid": "no", "Note": "second"},
]


class TestSchemaBuilder:
    """Tests for SchemaBuilder.build."""

    def test_one_column_per_header_in_order(self):
        schema = adaptive_builder().build(list(ROWS[0].keys()), ROWS)

        assert schema.column_names == ["order_id", "amount", "paid", "note"]
        assert [c.original_header for c in schema.columns] == list(ROWS[0].keys())

    def test_types_and_nullability_follow_detection(self):
        schema = adaptive_builder().build(list(ROWS[0].keys()), ROWS)

        assert schema.column("order_id").type == ColumnType.WIDE_INTEGER
        assert schema.column("order_id").nullable is False
        assert schema.column("amount").type == ColumnType.FLOAT
        assert schema.column("amount").nullable is True
        assert schema.column("paid").type == ColumnType.BOOLEAN
        assert schema.column("note").type == ColumnType.TEXT

    def test_duplicate_headers_are_deduplicated(self):
        headers = ["Name", "name", "NAME"]
        rows = [{"Name": "a", "name": "b", "NAME": "c"}]
        schema = adaptive_builder().build(headers, rows)
        assert schema.column_names == ["name", "name_1", "name_2"]

    def test_missing_keys_count_as_null(self):
        schema = adaptive_builder().build(["a", "b"], [{"a": "1"}, {"a": "2", "b": "x"}])
        assert schema.column("b").nullable is True

    def test_only_sampled_rows_are_inspected(self):
        rows = [{"n": "1"}, {"n": "2"}, {"n": "oops"}]
        schema = adaptive_builder(sample_size=2).build(["n"], rows)
        assert schema.column("n").type == ColumnType.WIDE_INTEGER

    def test_conservative_builder_makes_text_columns(self):
        builder = SchemaBuilder(detector=TypeDetector(), ddl_generator=DDLGenerator("mysql"))
        schema = builder.build(list(ROWS[0].keys()), ROWS)
        assert {c.type for c in schema.columns} == {ColumnType.TEXT}


class TestTableSchema:
    """Tests for TableSchema."""

    def test_with_nullable_returns_widened_copy(self):
        schema = TableSchema(columns=(
            ColumnSchema("a", "A", ColumnType.WIDE_INTEGER, False),
            ColumnSchema("b", "B", ColumnType.TEXT, False),
        ))
        widened = schema.with_nullable("a")

        assert widened.column("a").nullable is True
        assert widened.column("b").nullable is False
        assert schema.column("a").nullable is False
        assert widened.column_names == schema.column_names

    def test_with_nullable_unknown_column(self):
        schema = TableSchema(columns=(ColumnSchema("a", "A", ColumnType.TEXT, False),))
        with pytest.raises(KeyError):
            schema.with_nullable("missing")


class TestRenderCreateTable:
    """Tests for CREATE TABLE rendering under each nullability policy."""

    def setup_method(self):
        self.builder = adaptive_builder()
        self.schema = self.builder.build(list(ROWS[0].keys()), ROWS)

    def test_statement_is_guarded(self):
        ddl = self.builder.render_create_table("orders", self.schema)
        assert ddl.startswith("CREATE TABLE IF NOT EXISTS `orders` (")

    def test_all_nullable_ignores_detection(self):
        ddl = self.builder.render_create_table(
            "orders", self.schema, NullabilityPolicy.ALL_NULLABLE)
        assert "NOT NULL" not in ddl
        assert "`order_id` BIGINT NULL" in ddl

    def test_inferred_follows_detection(self):
        ddl = self.builder.render_create_table(
            "orders", self.schema, NullabilityPolicy.INFERRED)
        assert "`order_id` BIGINT NOT NULL" in ddl
        assert "`amount` DOUBLE NULL" in ddl
        assert "`paid` BOOLEAN NOT NULL" in ddl
        assert "`note` LONGTEXT NOT NULL" in ddl

    def test_policy_accepts_plain_strings(self):
        ddl = self.builder.render_create_table("orders", self.schema, "inferred")
        assert "NOT NULL" in ddl
