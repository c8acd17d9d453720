"""Workflow graph for incident status changes.

OPEN          -> INVESTIGATING, ARCHIVED
INVESTIGATING -> RESOLVED
RESOLVED      -> ARCHIVED
ARCHIVED      -> OPEN
"""
from typing import FrozenSet, Mapping, Union
from incidents.models import IncidentStatus

StatusLike = Union[IncidentStatus, str]

STATUS_TRANSITIONS: Mapping[IncidentStatus, FrozenSet[IncidentStatus]] = {
    IncidentStatus.OPEN: frozenset({IncidentStatus.INVESTIGATING, IncidentStatus.ARCHIVED}),
    IncidentStatus.INVESTIGATING: frozenset({IncidentStatus.RESOLVED}),
    IncidentStatus.RESOLVED: frozenset({IncidentStatus.ARCHIVED}),
    IncidentStatus.ARCHIVED: frozenset({IncidentStatus.OPEN}),
}

ARCHIVABLE_STATUSES: FrozenSet[IncidentStatus] = frozenset(
    {IncidentStatus.OPEN, IncidentStatus.RESOLVED}
)


def _coerce(status: StatusLike) -> IncidentStatus | None:
    try:
        return IncidentStatus(status)
    except ValueError:
        return None


def allowed_transitions(current: StatusLike) -> list[IncidentStatus]:
    """Legal next statuses from `current`, in declaration order; empty if unknown."""
    known = _coerce(current)
    if known is None:
        return []
    targets = STATUS_TRANSITIONS[known]
    return [status for status in IncidentStatus if status in targets]


def can_transition(current: StatusLike, next_status: StatusLike) -> bool:
    """True iff `next_status` is in the out-set of `current`."""
    known_current = _coerce(current)
    known_next = _coerce(next_status)
    if known_current is None or known_next is None:
        return False
    return known_next in STATUS_TRANSITIONS[known_current]


def can_archive(current: StatusLike) -> bool:
    """Archiving is narrower than the graph: only OPEN or RESOLVED."""
    return _coerce(current) in ARCHIVABLE_STATUSES


def can_reset(current: StatusLike) -> bool:
    return _coerce(current) is IncidentStatus.ARCHIVED
