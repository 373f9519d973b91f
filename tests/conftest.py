# Test configuration

import os
import re
from contextlib import contextmanager
from uuid import uuid4

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_JSON", "false")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tabingest.catalog.models import Base  # noqa: E402
from tabingest.catalog.registry import SourceRegistry  # noqa: E402
from tabingest.config.settings import get_settings  # noqa: E402
from tabingest.ingest.ddl_generator import DDLGenerator  # noqa: E402
from tabingest.ingest.errors import StoreConnectivityError  # noqa: E402
from tabingest.ingest.store import TableStore  # noqa: E402


def _sqlite_engine():
    return create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.fixture
def test_settings(tmp_path, monkeypatch):
    """Settings pointing download/upload dirs at a temp directory."""
    monkeypatch.setenv("DOWNLOAD_DIR", str(tmp_path / "downloads"))
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("LOCAL_FOLDER_ROOT", str(tmp_path))
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def registry_engine():
    engine = _sqlite_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(registry_engine):
    session = sessionmaker(bind=registry_engine, autoflush=False, future=True)()
    yield session
    session.close()


@pytest.fixture
def registry(db_session):
    return SourceRegistry(db_session)


@pytest.fixture
def make_record(registry):
    """Register a source under a fresh id."""
    def _make(name="people.csv", location=None, source_id=None):
        return registry.register(
            source_id=source_id or uuid4().hex,
            display_name=name,
            origin_location=location or f"/tmp/{name}",
        )
    return _make


@pytest.fixture
def store_engine():
    engine = _sqlite_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def sqlite_store(store_engine):
    return TableStore(store_engine, connect_attempts=1)


class FakeStore:
    """
    Scripted stand-in for TableStore.

    Records every statement that reaches the store. ``insert_failures``
    maps the 1-based number of an INSERT attempt to the exception that
    attempt raises; failed attempts are not recorded as statements.
    """

    dialect_name = "mysql"
    paramstyle = "format"

    _TABLE_RE = re.compile(r"(?:CREATE TABLE IF NOT EXISTS|DROP TABLE IF EXISTS) `([^`]+)`")

    def __init__(self, existing_tables=(), insert_failures=None, connect_error=None):
        self.tables = set(existing_tables)
        self.insert_failures = dict(insert_failures or {})
        self.connect_error = connect_error
        self.statements = []
        self.insert_attempts = 0
        self.connections_opened = 0
        self.connections_closed = 0

    def ddl_generator(self):
        return DDLGenerator(dialect=self.dialect_name, paramstyle=self.paramstyle)

    @contextmanager
    def connection(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.connections_opened += 1
        try:
            yield object()
        finally:
            self.connections_closed += 1

    def table_exists(self, conn, table_name):
        return table_name in self.tables

    def execute(self, conn, statement, params=None):
        if statement.startswith("INSERT"):
            self.insert_attempts += 1
            error = self.insert_failures.get(self.insert_attempts)
            if error is not None:
                raise error

        self.statements.append((statement, params))
        match = self._TABLE_RE.search(statement)
        if match and statement.startswith("CREATE"):
            self.tables.add(match.group(1))
        elif match and statement.startswith("DROP"):
            self.tables.discard(match.group(1))

    def statements_of(self, prefix):
        return [s for s, _ in self.statements if s.startswith(prefix)]

    @property
    def inserted_batch_sizes(self):
        return [
            s.split(" VALUES ", 1)[1].count("(")
            for s in self.statements_of("INSERT")
        ]


@pytest.fixture
def fake_store_factory():
    return FakeStore


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def unreachable_store():
    return FakeStore(connect_error=StoreConnectivityError("Cannot connect to store: refused"))


@pytest.fixture
def make_rows():
    """Rows with an id, a name and an age; ``overrides`` replaces cells by row index."""
    def _make(count, overrides=None):
        overrides = overrides or {}
        rows = []
        for i in range(count):
            row = {"id": str(i + 1), "name": f"person {i + 1}", "age": str(20 + i % 50)}
            row.update(overrides.get(i, {}))
            rows.append(row)
        return rows
    return _make
