"""
Source status state machine.

pending -> processing -> {processed | failed | empty | unsupported}

A terminal source may only go back to ``pending`` (re-registration or a
fresh ingestion attempt); it never moves between terminal states directly.
"""

from enum import Enum
from typing import Dict, FrozenSet

from tabingest.ingest.errors import InvalidStatusTransition


class SourceStatus(str, Enum):
    """Lifecycle of a registered source."""
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"
    EMPTY = "empty"
    UNSUPPORTED = "unsupported"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[SourceStatus] = frozenset({
    SourceStatus.PROCESSED,
    SourceStatus.FAILED,
    SourceStatus.EMPTY,
    SourceStatus.UNSUPPORTED,
})

ALLOWED_TRANSITIONS: Dict[SourceStatus, FrozenSet[SourceStatus]] = {
    SourceStatus.PENDING: frozenset({SourceStatus.PENDING, SourceStatus.PROCESSING}),
    SourceStatus.PROCESSING: TERMINAL_STATUSES,
    SourceStatus.PROCESSED: frozenset({SourceStatus.PENDING}),
    SourceStatus.FAILED: frozenset({SourceStatus.PENDING}),
    SourceStatus.EMPTY: frozenset({SourceStatus.PENDING}),
    SourceStatus.UNSUPPORTED: frozenset({SourceStatus.PENDING}),
}


def check_transition(current, target, source_id=None) -> SourceStatus:
    """
    Validate a status change.

    Args:
        current: Current status (enum or its string value)
        target: Requested status (enum or its string value)
        source_id: Optional source id for the error message

    Returns:
        The target status as a ``SourceStatus``

    Raises:
        InvalidStatusTransition: If the state machine forbids the change
    """
    current = SourceStatus(current)
    target = SourceStatus(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current.value, target.value, source_id=source_id)
    return target
