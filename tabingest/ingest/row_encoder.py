"""Row encoding: source rows to positional insert parameters."""

import math
from typing import Any, Callable, Dict, List, Mapping, Optional

from tabingest.ingest.schema_builder import TableSchema
from tabingest.ingest.type_detector import (
    TRUTHY_TOKENS,
    ColumnType,
    cell_text,
    is_empty,
)


def _encode_boolean(value: Any) -> bool:
    # bool is an int subclass: binds as 1/0 on MySQL and SQLite
    return cell_text(value).lower() in TRUTHY_TOKENS


def _encode_integer(value: Any) -> Optional[int]:
    try:
        return int(cell_text(value))
    except ValueError:
        return None


def _encode_float(value: Any) -> Optional[float]:
    try:
        number = float(cell_text(value))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _encode_temporal(value: Any) -> str:
    # Passed through as written; no reformatting or timezone handling here
    if isinstance(value, str):
        return value
    return cell_text(value)


def _encode_text(value: Any) -> str:
    return str(value)


ENCODERS: Dict[ColumnType, Callable[[Any], Any]] = {
    ColumnType.BOOLEAN: _encode_boolean,
    ColumnType.INTEGER: _encode_integer,
    ColumnType.WIDE_INTEGER: _encode_integer,
    ColumnType.FLOAT: _encode_float,
    ColumnType.DATE: _encode_temporal,
    ColumnType.DATETIME: _encode_temporal,
    ColumnType.TEXT: _encode_text,
}


def encode_row(row: Mapping[str, Any], schema: TableSchema) -> List[Any]:
    """
    Encode one row into parameters in schema column order.

    Empty or missing cells become None whatever the column type. Unparsable
    numbers also become None instead of failing the row.
    """
    params = []
    for column in schema.columns:
        raw = row.get(column.original_header)
        if is_empty(raw):
            params.append(None)
            continue
        params.append(ENCODERS[column.type](raw))
    return params


class RowEncoder:
    """Encodes rows and whole batches for a fixed schema."""

    def __init__(self, schema: TableSchema):
        self.schema = schema

    def encode(self, row: Mapping[str, Any]) -> List[Any]:
        return encode_row(row, self.schema)

    def encode_batch(self, rows) -> List[Any]:
        """Encode a batch and flatten it into one parameter list."""
        params: List[Any] = []
        for row in rows:
            params.extend(self.encode(row))
        return params
