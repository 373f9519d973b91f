"""
Unit tests for the relational store handle and its error translation.
"""

import pytest
from sqlalchemy import create_engine

from tabingest.ingest.errors import (
    ConstraintViolation,
    StoreConnectivityError,
    StoreStatementError,
)
from tabingest.ingest.store import TableStore, not_null_column


class TestNotNullColumn:
    """Tests for not_null_column message parsing."""

    def test_mysql(self):
        assert not_null_column("(1048, \"Column 'age' cannot be null\")") == "age"

    def test_postgres(self):
        message = 'null value in column "age" of relation "people" violates not-null constraint'
        assert not_null_column(message) == "age"

    def test_sqlite(self):
        assert not_null_column("NOT NULL constraint failed: people.age") == "age"

    def test_other_messages(self):
        assert not_null_column("UNIQUE constraint failed: people.id") is None
        assert not_null_column("") is None


class TestTableStore:
    """Tests for TableStore against in-memory SQLite."""

    def test_dialect_and_placeholders(self, sqlite_store):
        assert sqlite_store.dialect_name == "sqlite"
        generator = sqlite_store.ddl_generator()
        assert generator.dialect == "sqlite"
        assert generator.paramstyle == "qmark"

    def test_execute_with_positional_params(self, sqlite_store):
        with sqlite_store.connection() as conn:
            sqlite_store.execute(conn, 'CREATE TABLE "t" ("a" INTEGER NOT NULL, "b" TEXT NULL)')
            sqlite_store.execute(conn, 'INSERT INTO "t" ("a", "b") VALUES (?, ?), (?, ?)', [1, "x", 2, None])
            assert sqlite_store.table_exists(conn, "t")
            assert not sqlite_store.table_exists(conn, "missing")

        assert sqlite_store.list_tables() == ["t"]
        columns = sqlite_store.list_columns("t")
        assert [c["name"] for c in columns] == ["a", "b"]
        assert columns[0]["nullable"] is False

    def test_not_null_violation_is_translated(self, sqlite_store):
        with sqlite_store.connection() as conn:
            sqlite_store.execute(conn, 'CREATE TABLE "people" ("age" INTEGER NOT NULL)')
            with pytest.raises(ConstraintViolation) as exc_info:
                sqlite_store.execute(conn, 'INSERT INTO "people" ("age") VALUES (?)', [None])
        assert exc_info.value.column == "age"

    def test_other_failures_are_statement_errors(self, sqlite_store):
        with sqlite_store.connection() as conn:
            with pytest.raises(StoreStatementError):
                sqlite_store.execute(conn, 'INSERT INTO "nowhere" ("a") VALUES (?)', [1])
            # the connection is still usable after the rollback
            sqlite_store.execute(conn, "SELECT 1")

    def test_unreachable_store(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'db.sqlite'}")
        store = TableStore(engine, connect_attempts=1)
        with pytest.raises(StoreConnectivityError):
            store.ping()

    def test_ping(self, sqlite_store):
        sqlite_store.ping()
