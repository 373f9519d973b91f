"""
Integration tests running the pipeline against a real SQLite store.
"""

import pytest

from tabingest.ingest.pipeline import (
    ConflictPolicy,
    IngestionPipeline,
    IngestionRequest,
)
from tabingest.ingest.schema_builder import NullabilityPolicy, SchemaBuilder
from tabingest.ingest.status import SourceStatus
from tabingest.ingest.type_detector import StrictnessMode

HEADERS = ["ID", "Full Name", "Age", "Joined", "Active"]


def people(count):
    return [
        {
            "ID": str(i + 1),
            "Full Name": f"Person {i + 1}",
            "Age": "42" if i == 0 else str(20 + i % 40),
            "Joined": f"2024-01-{(i % 28) + 1:02d}",
            "Active": "true" if i % 2 else "false",
        }
        for i in range(count)
    ]


def adaptive(rows, **kwargs):
    kwargs.setdefault("file_name", "People Export.csv")
    return IngestionRequest(
        headers=HEADERS, rows=rows, strictness_mode=StrictnessMode.ADAPTIVE, **kwargs)


@pytest.fixture
def pipeline(sqlite_store, registry):
    return IngestionPipeline(sqlite_store, registry, batch_size=7)


def fetch_all(engine, sql):
    with engine.connect() as conn:
        return conn.exec_driver_sql(sql).fetchall()


class TestRoundTrip:
    """Values written through the pipeline read back with their types."""

    def test_typed_values_round_trip(self, pipeline, make_record, store_engine, sqlite_store):
        record = make_record("People Export.csv")

        outcome = pipeline.ingest(adaptive(people(20)), record)

        assert outcome.status == SourceStatus.PROCESSED
        assert outcome.table_name == "people_export"
        assert outcome.row_count == 20
        assert outcome.batches == 3

        rows = fetch_all(store_engine, 'SELECT "id", "full_name", "age" FROM "people_export" ORDER BY "id"')
        assert rows[0] == (1, "Person 1", 42)
        assert len(rows) == 20

        columns = {c["name"]: c["type"] for c in sqlite_store.list_columns("people_export")}
        assert columns["age"] == "INTEGER"
        assert columns["full_name"] == "TEXT"
        assert columns["joined"] == "DATETIME"

    def test_record_reflects_outcome(self, pipeline, make_record, registry):
        record = make_record("People Export.csv")
        pipeline.ingest(adaptive(people(5)), record)

        stored = registry.get(record.id)
        assert stored.status == "processed"
        assert stored.row_count == 5
        assert stored.table_name == "people_export"

    def test_conservative_mode_stores_text(self, pipeline, make_record, store_engine):
        request = IngestionRequest(headers=HEADERS, rows=people(3), file_name="people.csv",
                                   strictness_mode=StrictnessMode.CONSERVATIVE)
        pipeline.ingest(request, make_record())

        assert fetch_all(store_engine, 'SELECT "age" FROM "people" ORDER BY rowid')[0] == ("42",)


class TestConflictPolicies:
    """Conflict policies against an existing table."""

    def test_append_twice_accumulates(self, pipeline, make_record, store_engine, sqlite_store):
        pipeline.ingest(adaptive(people(4)), make_record())
        outcome = pipeline.ingest(adaptive(people(4)), make_record())

        assert outcome.status == SourceStatus.PROCESSED
        assert fetch_all(store_engine, 'SELECT COUNT(*) FROM "people_export"') == [(8,)]
        assert len(sqlite_store.list_columns("people_export")) == len(HEADERS)

    def test_replace_drops_previous_rows(self, pipeline, make_record, store_engine):
        pipeline.ingest(adaptive(people(4)), make_record())
        pipeline.ingest(adaptive(people(2), conflict_policy=ConflictPolicy.REPLACE), make_record())

        assert fetch_all(store_engine, 'SELECT COUNT(*) FROM "people_export"') == [(2,)]

    def test_fail_leaves_existing_table_alone(self, pipeline, make_record, store_engine):
        pipeline.ingest(adaptive(people(4)), make_record())

        record = make_record()
        outcome = pipeline.ingest(adaptive(people(2), conflict_policy=ConflictPolicy.FAIL), record)

        assert outcome.status == SourceStatus.FAILED
        assert "already exists" in record.error_message
        assert fetch_all(store_engine, 'SELECT COUNT(*) FROM "people_export"') == [(4,)]


class TestEdgeCases:
    """Empty sources and repairs the store cannot perform."""

    def test_empty_source_creates_no_table(self, pipeline, make_record, sqlite_store):
        outcome = pipeline.ingest(adaptive([]), make_record())

        assert outcome.status == SourceStatus.EMPTY
        assert sqlite_store.list_tables() == []

    def test_null_outside_sample_fails_without_alter_support(
            self, sqlite_store, registry, make_record, store_engine):
        builder = SchemaBuilder(ddl_generator=sqlite_store.ddl_generator(), sample_size=2)
        pipeline = IngestionPipeline(sqlite_store, registry, batch_size=10, schema_builder=builder)
        rows = people(3)
        rows[2]["Age"] = ""

        record = make_record()
        outcome = pipeline.ingest(
            adaptive(rows, nullability_policy=NullabilityPolicy.INFERRED), record)

        assert outcome.status == SourceStatus.FAILED
        assert outcome.row_count == 0
        assert fetch_all(store_engine, 'SELECT COUNT(*) FROM "people_export"') == [(0,)]


class TestRepeatedRuns:
    """Colliding headers resolve to the same columns on every run."""

    def test_deduplicated_columns_line_up_on_append(self, pipeline, make_record, sqlite_store, store_engine):
        headers = ["Amount", "amount", "amount_1"]
        rows = [dict(zip(headers, ["1", "2", "3"])), dict(zip(headers, ["4", "5", "6"]))]

        for _ in range(2):
            outcome = pipeline.ingest(
                IngestionRequest(headers=headers, rows=rows, file_name="ledger.csv",
                                 strictness_mode=StrictnessMode.ADAPTIVE),
                make_record("ledger.csv"),
            )
            assert outcome.status == SourceStatus.PROCESSED

        columns = [c["name"] for c in sqlite_store.list_columns("ledger")]
        assert columns == ["amount", "amount_1", "amount_1_1"]
        assert fetch_all(store_engine, 'SELECT COUNT(*) FROM "ledger"') == [(4,)]
        assert fetch_all(
            store_engine, 'SELECT "amount", "amount_1", "amount_1_1" FROM "ledger" ORDER BY rowid'
        )[0] == (1, 2, 3)
