"""Incident records, lifecycle rules and the persistent incident store."""
from .models import Incident, IncidentStatus
from .transitions import STATUS_TRANSITIONS, allowed_transitions, can_archive, can_reset, can_transition
from .errors import (
    IncidentStoreError,
    StoreNotInitializedError,
    IncidentNotFoundError,
    InvalidTransitionError,
    InvalidStateError,
    PersistenceError,
    CorruptRecordError,
    IncidentValidationError,
)
from .validation import ValidationResult, validate_create_incident, require_valid_incident
from .storage import IncidentStorage, LocalJSONIncidentStorage, InMemoryIncidentStorage, get_incident_storage
from .store import IncidentStore

__all__ = [
    "Incident",
    "IncidentStatus",
    "STATUS_TRANSITIONS",
    "allowed_transitions",
    "can_archive",
    "can_reset",
    "can_transition",
    "IncidentStoreError",
    "StoreNotInitializedError",
    "IncidentNotFoundError",
    "InvalidTransitionError",
    "InvalidStateError",
    "PersistenceError",
    "CorruptRecordError",
    "IncidentValidationError",
    "ValidationResult",
    "validate_create_incident",
    "require_valid_incident",
    "IncidentStorage",
    "LocalJSONIncidentStorage",
    "InMemoryIncidentStorage",
    "get_incident_storage",
    "IncidentStore",
]
