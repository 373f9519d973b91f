"""
Relational store handle used by the ingestion pipeline.

Wraps a SQLAlchemy engine: scoped connection acquisition with guaranteed
release, positional-parameter execution with commit-per-statement, and
translation of driver errors into the ingestion error taxonomy.
"""

import logging
import re
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Sequence

from sqlalchemy import inspect
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Connection, Engine

from tabingest.common.resilience import retry_store_connect
from tabingest.config.settings import get_settings
from tabingest.ingest.ddl_generator import DDLGenerator
from tabingest.ingest.errors import (
    ConstraintViolation,
    StoreConnectivityError,
    StoreStatementError,
)

logger = logging.getLogger(__name__)

# Not-null violation messages, per driver
NOT_NULL_PATTERNS = (
    re.compile(r"Column '([^']+)' cannot be null", re.IGNORECASE),  # MySQL 1048
    re.compile(r'null value in column "([^"]+)"', re.IGNORECASE),  # PostgreSQL 23502
    re.compile(r"NOT NULL constraint failed: [^\s.]+\.(\w+)", re.IGNORECASE),  # SQLite
)


def not_null_column(message: str) -> Optional[str]:
    """Extract the column named by a not-null violation message, if any."""
    for pattern in NOT_NULL_PATTERNS:
        match = pattern.search(message or "")
        if match:
            return match.group(1)
    return None


class TableStore:
    """Store handle passed into the pipeline at construction."""

    def __init__(self, engine: Engine, connect_attempts: Optional[int] = None):
        """
        Args:
            engine: SQLAlchemy engine for the target database
            connect_attempts: Attempts when acquiring a connection
        """
        settings = get_settings()

        self.engine = engine
        self.connect_attempts = connect_attempts or settings.store_connect_attempts
        self.dialect_name = engine.dialect.name
        self.paramstyle = engine.dialect.paramstyle

    def ddl_generator(self) -> DDLGenerator:
        """DDL generator matching this store's dialect and driver."""
        return DDLGenerator(dialect=self.dialect_name, paramstyle=self.paramstyle)

    def _connect(self) -> Connection:
        try:
            return self.engine.connect()
        except sa_exc.SQLAlchemyError as e:
            raise StoreConnectivityError(f"Cannot connect to store: {e}") from e

    @contextmanager
    def connection(self) -> Generator[Connection, None, None]:
        """
        Acquire a connection for the duration of one source.

        The connection is released on every exit path.
        """
        conn = retry_store_connect(
            self.connect_attempts,
            retry_on=(StoreConnectivityError, ConnectionError),
        )(self._connect)()
        try:
            yield conn
        finally:
            conn.close()

    def ping(self) -> None:
        """Round-trip a trivial statement; raises StoreConnectivityError."""
        with self.connection() as conn:
            self.execute(conn, "SELECT 1")

    def table_exists(self, conn: Connection, table_name: str) -> bool:
        try:
            return inspect(conn).has_table(table_name)
        except sa_exc.DBAPIError as e:
            self._raise_translated(conn, e)

    def execute(
        self,
        conn: Connection,
        statement: str,
        params: Optional[Sequence[Any]] = None,
    ) -> None:
        """
        Execute one statement with positional parameters and commit it.

        Raises:
            ConstraintViolation: A NOT NULL column received a null
            StoreConnectivityError: The connection was lost
            StoreStatementError: Any other statement failure
        """
        try:
            if params:
                conn.exec_driver_sql(statement, tuple(params))
            else:
                conn.exec_driver_sql(statement)
            conn.commit()
        except sa_exc.DBAPIError as e:
            self._raise_translated(conn, e)

    def _raise_translated(self, conn: Connection, error: sa_exc.DBAPIError) -> None:
        message = str(error.orig) if error.orig is not None else str(error)
        self._rollback(conn)

        if error.connection_invalidated:
            raise StoreConnectivityError(f"Store connection lost: {message}") from error

        if isinstance(error, sa_exc.IntegrityError):
            column = not_null_column(message)
            if column:
                raise ConstraintViolation(column, message) from error

        raise StoreStatementError(message) from error

    def _rollback(self, conn: Connection) -> None:
        try:
            conn.rollback()
        except sa_exc.SQLAlchemyError as e:
            logger.warning(f"Rollback after failed statement also failed: {e}")

    def list_tables(self) -> List[str]:
        """Names of the tables in the target database."""
        try:
            return sorted(inspect(self.engine).get_table_names())
        except sa_exc.OperationalError as e:
            raise StoreConnectivityError(f"Cannot connect to store: {e}") from e

    def list_columns(self, table_name: str) -> List[Dict[str, Any]]:
        """Column descriptions (name, type, nullable) of one table."""
        try:
            columns = inspect(self.engine).get_columns(table_name)
        except sa_exc.OperationalError as e:
            raise StoreConnectivityError(f"Cannot connect to store: {e}") from e
        return [
            {
                "name": col["name"],
                "type": str(col["type"]),
                "nullable": bool(col.get("nullable", True)),
            }
            for col in columns
        ]
