"""
DDL Generator for ingested tables.

Generates CREATE TABLE, DROP TABLE, nullability repair and multi-row INSERT
statements for a TableSchema, in the dialect of the target store.
"""

from typing import TYPE_CHECKING, Dict, List

from tabingest.ingest.type_detector import ColumnType

if TYPE_CHECKING:
    from tabingest.ingest.schema_builder import ColumnSchema, TableSchema


TYPE_MAPPINGS: Dict[str, Dict[ColumnType, str]] = {
    "mysql": {
        ColumnType.INTEGER: "INT",
        ColumnType.WIDE_INTEGER: "BIGINT",
        ColumnType.FLOAT: "DOUBLE",
        ColumnType.BOOLEAN: "BOOLEAN",
        ColumnType.DATE: "DATE",
        ColumnType.DATETIME: "DATETIME",
        ColumnType.TEXT: "LONGTEXT",
    },
    "postgresql": {
        ColumnType.INTEGER: "INTEGER",
        ColumnType.WIDE_INTEGER: "BIGINT",
        ColumnType.FLOAT: "DOUBLE PRECISION",
        ColumnType.BOOLEAN: "BOOLEAN",
        ColumnType.DATE: "DATE",
        ColumnType.DATETIME: "TIMESTAMP",
        ColumnType.TEXT: "TEXT",
    },
    "sqlite": {
        ColumnType.INTEGER: "INTEGER",
        ColumnType.WIDE_INTEGER: "BIGINT",
        ColumnType.FLOAT: "DOUBLE",
        ColumnType.BOOLEAN: "BOOLEAN",
        ColumnType.DATE: "DATE",
        ColumnType.DATETIME: "DATETIME",
        ColumnType.TEXT: "TEXT",
    },
}

DIALECT_ALIASES = {"mariadb": "mysql"}

# Driver paramstyle -> positional placeholder
PLACEHOLDERS = {
    "qmark": "?",
    "format": "%s",
    "pyformat": "%s",
}


class DDLGenerator:
    """
    Generates SQL statements for dynamically created tables.

    Identifiers are assumed to be sanitized already; they are still quoted
    so that reserved words (``order``, ``user``...) stay usable as columns.
    """

    def __init__(self, dialect: str = "mysql", paramstyle: str = "format"):
        """
        Initialize DDL generator.

        Args:
            dialect: Target dialect name (mysql, postgresql, sqlite)
            paramstyle: DB-API paramstyle of the driver executing inserts
        """
        dialect = DIALECT_ALIASES.get(dialect, dialect)
        if dialect not in TYPE_MAPPINGS:
            raise ValueError(f"Unsupported dialect: {dialect}")
        if paramstyle not in PLACEHOLDERS:
            raise ValueError(f"Unsupported paramstyle: {paramstyle}")
        self.dialect = dialect
        self.paramstyle = paramstyle
        self._quote_char = "`" if dialect == "mysql" else '"'

    def quote(self, identifier: str) -> str:
        q = self._quote_char
        return f"{q}{identifier.replace(q, q + q)}{q}"

    def map_column_type(self, column_type: ColumnType) -> str:
        """Map a semantic column type to the dialect's SQL type."""
        return TYPE_MAPPINGS[self.dialect][ColumnType(column_type)]

    def _column_definition(self, column: "ColumnSchema", all_nullable: bool) -> str:
        nullable = True if all_nullable else column.nullable
        null_clause = "NULL" if nullable else "NOT NULL"
        return f"    {self.quote(column.name)} {self.map_column_type(column.type)} {null_clause}"

    def generate_table_ddl(
        self,
        table_name: str,
        schema: "TableSchema",
        all_nullable: bool = True,
    ) -> str:
        """
        Generate an idempotent CREATE TABLE statement.

        Args:
            table_name: Sanitized table name
            schema: Table schema
            all_nullable: Declare every column NULL regardless of detection

        Returns:
            ``CREATE TABLE IF NOT EXISTS`` statement
        """
        columns = [self._column_definition(c, all_nullable) for c in schema.columns]
        lines = [
            f"CREATE TABLE IF NOT EXISTS {self.quote(table_name)} (",
            ",\n".join(columns),
            ")",
        ]
        return "\n".join(lines)

    def generate_drop_table(self, table_name: str) -> str:
        return f"DROP TABLE IF EXISTS {self.quote(table_name)}"

    def generate_alter_nullable(self, table_name: str, column: "ColumnSchema") -> str:
        """
        Generate the statement that widens one column to nullable.

        The column keeps the type it was created with.
        """
        table = self.quote(table_name)
        col = self.quote(column.name)
        if self.dialect == "postgresql":
            return f"ALTER TABLE {table} ALTER COLUMN {col} DROP NOT NULL"
        return f"ALTER TABLE {table} MODIFY {col} {self.map_column_type(column.type)} NULL"

    def generate_insert_statement(
        self,
        table_name: str,
        schema: "TableSchema",
        row_count: int,
    ) -> str:
        """
        Generate a multi-row INSERT with one placeholder group per row.

        Args:
            table_name: Sanitized table name
            schema: Table schema (fixes the column order)
            row_count: Number of rows in the batch

        Returns:
            INSERT statement with positional placeholders
        """
        if row_count < 1:
            raise ValueError("row_count must be at least 1")

        columns = ", ".join(self.quote(name) for name in schema.column_names)
        marker = PLACEHOLDERS[self.paramstyle]
        group = "(" + ", ".join([marker] * len(schema.columns)) + ")"
        groups: List[str] = [group] * row_count
        return f"INSERT INTO {self.quote(table_name)} ({columns}) VALUES {', '.join(groups)}"
