"""Exception hierarchy for the ingestion pipeline."""

from typing import Optional


class IngestionError(Exception):
    """Base class for every per-source ingestion failure."""

    def __init__(self, message: str, source_id: Optional[str] = None):
        super().__init__(message)
        self.source_id = source_id


class IdentifierError(IngestionError):
    """A header or table name sanitized to an unusable identifier."""
    pass


class UnsupportedFormatError(IngestionError):
    """The source cannot be resolved to a known parser."""
    pass


class EmptyDatasetError(IngestionError):
    """The source parsed to zero rows."""
    pass


class ConflictPolicyViolation(IngestionError):
    """The target table already exists under the ``fail`` conflict policy."""

    def __init__(self, table_name: str, source_id: Optional[str] = None):
        super().__init__(
            f"Table '{table_name}' already exists (conflict policy: fail)",
            source_id=source_id,
        )
        self.table_name = table_name


class DownloadError(IngestionError):
    """Remote retrieval of a source failed."""
    pass


class InvalidStatusTransition(IngestionError):
    """A status change the source state machine does not allow."""

    def __init__(self, current: str, target: str, source_id: Optional[str] = None):
        super().__init__(
            f"Cannot move source from '{current}' to '{target}'",
            source_id=source_id,
        )
        self.current = current
        self.target = target


class StoreError(IngestionError):
    """Base class for failures reported by the relational store."""
    pass


class ConstraintViolation(StoreError):
    """A batch insert put a null into a column declared NOT NULL."""

    def __init__(self, column: str, message: Optional[str] = None):
        super().__init__(message or f"Column '{column}' cannot be null")
        self.column = column


class StoreStatementError(StoreError):
    """A statement failed for a reason other than a not-null violation."""
    pass


class StoreConnectivityError(StoreError):
    """The store is unreachable or the connection was lost."""
    pass


class SourceParseError(IngestionError):
    """A source file could not be read as the format it resolved to."""
    pass
