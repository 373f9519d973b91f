"""
Column type detection for tabular sources.

Classifies the sampled cell values of one column into a semantic SQL type
and a nullability flag. Cells arrive either as text (delimited files) or as
native Python values (spreadsheets); both are normalized to text first.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple

DEFAULT_SAMPLE_SIZE = 1000

TRUTHY_TOKENS = frozenset({"true", "yes", "y", "1"})
FALSY_TOKENS = frozenset({"false", "no", "n", "0"})
BOOLEAN_TOKENS = TRUTHY_TOKENS | FALSY_TOKENS

_INTEGER_RE = re.compile(r"^[-+]?\d+$")
_DECIMAL_RE = re.compile(r"^[-+]?\d*\.?\d+$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2}(?:\.\d+)?$")


class ColumnType(str, Enum):
    """Closed set of semantic column types."""
    INTEGER = "integer"
    WIDE_INTEGER = "wide_integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TEXT = "text"


class StrictnessMode(str, Enum):
    """
    How much of the detected classification is trusted.

    ADAPTIVE applies the per-column classification. CONSERVATIVE stores every
    column as text so no later cell can fail type coercion on insert.
    """
    ADAPTIVE = "adaptive"
    CONSERVATIVE = "conservative"


def is_empty(value: Any) -> bool:
    """A cell is empty when it is None or blank text."""
    if value is None:
        return True
    return isinstance(value, str) and value.strip() == ""


def cell_text(value: Any) -> str:
    """
    Normalize a non-empty cell to its comparable text form.

    Booleans become ``true``/``false``, integral floats lose their ``.0``
    and date/datetime objects use their ISO form with a space separator.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def is_boolean_like(text: str) -> bool:
    return text.lower() in BOOLEAN_TOKENS


def is_integer_like(text: str) -> bool:
    return _INTEGER_RE.match(text) is not None


def is_decimal_like(text: str) -> bool:
    return _DECIMAL_RE.match(text) is not None


def is_date_like(text: str) -> bool:
    return _DATE_RE.match(text) is not None


def is_datetime_like(text: str) -> bool:
    return _DATETIME_RE.match(text) is not None


@dataclass
class ColumnStats:
    """Observations for one column across the sample."""
    header: str
    total_count: int = 0
    values: List[str] = field(default_factory=list)

    def add_value(self, value: Any) -> None:
        """Record one sampled cell (missing cells count as empty)."""
        self.total_count += 1
        if not is_empty(value):
            self.values.append(cell_text(value))

    @property
    def non_empty_count(self) -> int:
        return len(self.values)

    @property
    def nullable(self) -> bool:
        return self.non_empty_count < self.total_count


class TypeDetector:
    """
    Classifies a column's sampled values.

    Classification runs in priority order against every non-empty value:
    boolean, wide integer, float, datetime, date, mixed date/datetime
    (widened to datetime), and otherwise text. A column with no non-empty
    values is text.
    """

    def __init__(
        self,
        mode: StrictnessMode = StrictnessMode.CONSERVATIVE,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
    ):
        self.mode = StrictnessMode(mode)
        self.sample_size = sample_size

    def classify(self, values: List[str]) -> ColumnType:
        """Classify normalized non-empty values, ignoring the strictness mode."""
        if not values:
            return ColumnType.TEXT
        if all(is_boolean_like(v) for v in values):
            return ColumnType.BOOLEAN
        if all(is_integer_like(v) for v in values):
            # Always the wide type: later rows may not fit a 32-bit column
            return ColumnType.WIDE_INTEGER
        if all(is_integer_like(v) or is_decimal_like(v) for v in values):
            return ColumnType.FLOAT
        if all(is_datetime_like(v) for v in values):
            return ColumnType.DATETIME
        if all(is_datetime_like(v) or is_date_like(v) for v in values):
            # Plain dates match here first, so a column of pure dates is DATETIME too
            return ColumnType.DATETIME
        return ColumnType.TEXT

    def detect_stats(self, stats: ColumnStats) -> Tuple[ColumnType, bool]:
        """Detect type and nullability from collected column statistics."""
        if self.mode == StrictnessMode.CONSERVATIVE:
            return ColumnType.TEXT, stats.nullable
        return self.classify(stats.values), stats.nullable

    def detect(self, values: Iterable[Any], header: Optional[str] = None) -> Tuple[ColumnType, bool]:
        """
        Detect the type and nullability of a column.

        Args:
            values: Raw sampled cells for the column (at most ``sample_size``
                are considered)
            header: Optional header, only used for diagnostics

        Returns:
            Tuple of (column_type, nullable)
        """
        stats = ColumnStats(header=header or "")
        for index, value in enumerate(values):
            if index >= self.sample_size:
                break
            stats.add_value(value)
        return self.detect_stats(stats)
