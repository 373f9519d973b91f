"""
Tabular file parsers.

Turn a local file into ordered headers plus rows keyed by header. Delimited
text goes through the standard ``csv`` module, ``.xlsx`` through openpyxl
and legacy ``.xls`` through xlrd.
"""

import csv
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import openpyxl
import xlrd
from openpyxl.utils.exceptions import InvalidFileException

from tabingest.ingest.errors import SourceParseError, UnsupportedFormatError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".csv", ".xlsx", ".xls")

# Explicit file-type override -> extension
OVERRIDE_EXTENSIONS = {
    "csv": ".csv",
    "xlsx": ".xlsx",
    "xls": ".xls",
}


@dataclass
class ParsedSource:
    """Headers and rows of one parsed file."""
    headers: List[str]
    rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


def resolve_format(filename: Optional[str], override: Optional[str] = None) -> str:
    """
    Resolve the parser extension for a file.

    The file's own extension wins when it is supported; otherwise an explicit
    override (``csv``, ``xlsx`` or ``xls``) is used.

    Raises:
        UnsupportedFormatError: If neither resolves to a supported format
    """
    ext = Path(filename or "").suffix.lower()
    if ext in SUPPORTED_EXTENSIONS:
        return ext

    key = (override or "").strip().lower().lstrip(".")
    if key in OVERRIDE_EXTENSIONS:
        return OVERRIDE_EXTENSIONS[key]

    raise UnsupportedFormatError(
        f"Unsupported file type for {filename!r}"
        + (f" (override: {override!r})" if override else "")
    )


def _normalize_headers(raw_headers) -> List[str]:
    """
    Stringify headers, naming blank ones by position.

    Repeated labels get ``_1``, ``_2``... so every column keeps its own key
    in the parsed rows.
    """
    headers: List[str] = []
    seen = set()
    for index, header in enumerate(raw_headers):
        text = "" if header is None else str(header).strip()
        label = text or f"column_{index + 1}"
        candidate = label
        suffix = 1
        while candidate in seen:
            candidate = f"{label}_{suffix}"
            suffix += 1
        seen.add(candidate)
        headers.append(candidate)
    return headers


def parse_csv_file(path: str, encoding: str = "utf-8-sig") -> ParsedSource:
    """
    Parse a delimited text file whose first line is the header.

    Values are trimmed and fully blank lines are skipped.
    """
    with open(path, "r", encoding=encoding, newline="") as f:
        reader = csv.reader(f)
        headers: List[str] = []
        rows: List[Dict[str, Any]] = []

        for record in reader:
            if not any(cell.strip() for cell in record):
                continue
            if not headers:
                headers = _normalize_headers(record)
                continue
            values = [cell.strip() for cell in record]
            rows.append({
                header: values[i] if i < len(values) else None
                for i, header in enumerate(headers)
            })

    return ParsedSource(headers=headers, rows=rows)


def _rows_from_matrix(matrix) -> ParsedSource:
    iterator = iter(matrix)
    headers: List[str] = []
    for first in iterator:
        if any(cell not in (None, "") for cell in first):
            headers = _normalize_headers(first)
            break

    rows = []
    for values in iterator:
        values = list(values)
        if all(cell in (None, "") for cell in values):
            continue
        rows.append({
            header: values[i] if i < len(values) else None
            for i, header in enumerate(headers)
        })
    return ParsedSource(headers=headers, rows=rows)


def parse_excel_file(path: str) -> ParsedSource:
    """Parse the first worksheet of an ``.xlsx`` workbook."""
    workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        if not workbook.sheetnames:
            return ParsedSource(headers=[], rows=[])
        sheet = workbook[workbook.sheetnames[0]]
        return _rows_from_matrix(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def parse_xls_file(path: str) -> ParsedSource:
    """Parse the first sheet of a legacy ``.xls`` workbook."""
    book = xlrd.open_workbook(path)
    if book.nsheets == 0:
        return ParsedSource(headers=[], rows=[])
    sheet = book.sheet_by_index(0)
    return _rows_from_matrix(sheet.row_values(i) for i in range(sheet.nrows))


PARSE_ERRORS = (
    csv.Error,
    UnicodeDecodeError,
    zipfile.BadZipFile,
    InvalidFileException,
    xlrd.XLRDError,
    OSError,
)

PARSERS: Dict[str, Callable[[str], ParsedSource]] = {
    ".csv": parse_csv_file,
    ".xlsx": parse_excel_file,
    ".xls": parse_xls_file,
}


def parse_file(path: str, filename: Optional[str] = None, override: Optional[str] = None) -> ParsedSource:
    """
    Parse a local file with the parser its format resolves to.

    Args:
        path: Local file path
        filename: Name used for format resolution (defaults to ``path``)
        override: Optional explicit file type

    Raises:
        UnsupportedFormatError: If the format cannot be resolved
        SourceParseError: If the file cannot be read as that format
    """
    ext = resolve_format(filename or path, override)
    try:
        parsed = PARSERS[ext](path)
    except PARSE_ERRORS as e:
        raise SourceParseError(f"Cannot read {filename or path} as {ext}: {e}") from e
    logger.info(
        f"Parsed {filename or path} as {ext}: "
        f"{len(parsed.headers)} columns, {parsed.row_count} rows"
    )
    return parsed
