"""Errors raised by the incident store and its collaborators."""
from typing import List, Sequence


class IncidentStoreError(Exception):
    """Base class for incident store errors."""


class StoreNotInitializedError(IncidentStoreError):
    """An operation ran before IncidentStore.initialize() completed."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Incident store used before initialize(): {operation}")


class IncidentNotFoundError(IncidentStoreError):
    def __init__(self, incident_id: str):
        self.incident_id = incident_id
        super().__init__(f"Incident not found: {incident_id}")


class InvalidTransitionError(IncidentStoreError):
    """Requested status is not reachable from the current status."""

    def __init__(self, incident_id: str, current: str, requested: str, allowed: Sequence[str]):
        self.incident_id = incident_id
        self.current = current
        self.requested = requested
        self.allowed: List[str] = list(allowed)
        super().__init__(
            f"Invalid status transition from {current} to {requested}. "
            f"Allowed: {', '.join(self.allowed) or 'none'}"
        )


class InvalidStateError(IncidentStoreError):
    """Archive or reset requested from a status that does not permit it."""

    MESSAGES = {
        "archive": "Only incidents in OPEN or RESOLVED status can be archived",
        "reset": "Only archived incidents can be reset to OPEN status",
    }

    def __init__(self, incident_id: str, current: str, operation: str):
        self.incident_id = incident_id
        self.current = current
        self.operation = operation
        super().__init__(
            f"{self.MESSAGES.get(operation, f'Cannot {operation} incident')} "
            f"(current status: {current})"
        )


class PersistenceError(IncidentStoreError):
    """
    The durable write did not complete.

    `rolled_back` is True when the in-memory change was discarded so memory
    matches the durable record again; False when the change was kept in
    memory and the store is marked dirty.
    """

    def __init__(self, message: str, rolled_back: bool):
        self.rolled_back = rolled_back
        super().__init__(message)


class CorruptRecordError(IncidentStoreError):
    """The durable record exists but cannot be loaded."""


class IncidentValidationError(IncidentStoreError):
    """Raw incident fields failed validation."""

    def __init__(self, errors: Sequence[str]):
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors))
