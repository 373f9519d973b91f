"""
SQL identifier sanitization.

Turns arbitrary header labels and file names into identifiers matching
``^[a-z][a-z0-9_]*$`` and keeps them unique within one table.
"""

import re
from pathlib import PurePath
from typing import Iterable, List, Optional

from tabingest.ingest.errors import IdentifierError

PLACEHOLDER_IDENTIFIER = "col_unnamed"
DEFAULT_TABLE_STEM = "data"

_INVALID_RUN = re.compile(r"[^a-z0-9_]+")
_REPEATED_UNDERSCORE = re.compile(r"_{2,}")
_VALID_IDENTIFIER = re.compile(r"^[a-z][a-z0-9_]*$")


def sanitize_identifier(label: Optional[str]) -> str:
    """
    Sanitize a label into a safe SQL identifier.

    Lower-cases, replaces every run of characters outside ``[a-z0-9_]``
    with one underscore, strips and collapses underscores, and prefixes
    ``col_`` when the result starts with a digit. An empty result falls
    back to ``PLACEHOLDER_IDENTIFIER``.

    The function is idempotent: ``sanitize_identifier(sanitize_identifier(x))``
    equals ``sanitize_identifier(x)``.

    Args:
        label: Original header, file stem or requested table name

    Returns:
        Sanitized identifier
    """
    text = "" if label is None else str(label)
    name = _INVALID_RUN.sub("_", text.strip().lower())
    name = _REPEATED_UNDERSCORE.sub("_", name).strip("_")

    if not name:
        return PLACEHOLDER_IDENTIFIER
    if name[0].isdigit():
        name = f"col_{name}"
    return name


def is_valid_identifier(name: str) -> bool:
    """Check that ``name`` is a sanitized identifier."""
    return bool(name) and _VALID_IDENTIFIER.match(name) is not None


def dedupe_identifiers(labels: Iterable[Optional[str]]) -> List[str]:
    """
    Sanitize labels and make the results pairwise distinct.

    The first label to claim an identifier keeps it; later collisions get
    ``_1``, ``_2``, ... appended (skipping suffixes already taken).

    Args:
        labels: Ordered header labels

    Returns:
        Sanitized identifiers in the same order and count as ``labels``
    """
    used = set()
    names = []
    for label in labels:
        base = sanitize_identifier(label)
        candidate = base
        suffix = 1
        while candidate in used:
            candidate = f"{base}_{suffix}"
            suffix += 1
        used.add(candidate)
        names.append(candidate)
    return names


def table_name_from_filename(filename: Optional[str]) -> str:
    """Derive a default table name from a file name (stem, lower-cased)."""
    stem = PurePath(filename or "").stem if filename else ""
    return sanitize_identifier(stem or DEFAULT_TABLE_STEM)


def resolve_table_name(explicit: Optional[str], filename: Optional[str]) -> str:
    """
    Resolve the target table for a source.

    Args:
        explicit: Optional explicit table name override
        filename: Source file name used when no override is given

    Returns:
        Sanitized table name

    Raises:
        IdentifierError: If the result is not a usable identifier
    """
    if explicit and explicit.strip():
        name = sanitize_identifier(explicit)
    else:
        name = table_name_from_filename(filename)

    if not is_valid_identifier(name):
        raise IdentifierError(f"Unusable table name derived from {explicit or filename!r}")
    return name
