"""Incident record and lifecycle status."""
from dataclasses import dataclass, replace
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict


class IncidentStatus(str, Enum):
    """Lifecycle status of an incident."""
    OPEN = "OPEN"
    INVESTIGATING = "INVESTIGATING"
    RESOLVED = "RESOLVED"
    ARCHIVED = "ARCHIVED"


_TEXT_FIELDS = ("id", "title", "description", "category", "severity", "status", "reportedAt")


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with a 'Z' suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


@dataclass(frozen=True)
class Incident:
    """
    A tracked operational incident.

    Instances are immutable; the store replaces a record when its status
    changes, so references handed to readers never change underneath them.
    """
    id: str
    title: str
    description: str
    category: str
    severity: str
    status: IncidentStatus
    reported_at: datetime

    def with_status(self, status: IncidentStatus) -> "Incident":
        """Return a copy of this incident carrying a new status."""
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the durable/wire representation."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "severity": self.severity,
            "status": self.status.value,
            "reportedAt": format_timestamp(self.reported_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Incident":
        """
        Create from the durable representation.

        Raises:
            ValueError: If a field is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Incident entry must be an object, got {type(data).__name__}")
        for field_name in _TEXT_FIELDS:
            if field_name in data and not isinstance(data[field_name], str):
                raise ValueError(
                    f"Incident entry field {field_name!r} must be a string, "
                    f"got {type(data[field_name]).__name__}"
                )
        try:
            return cls(
                id=data["id"],
                title=data["title"],
                description=data["description"],
                category=data["category"],
                severity=data["severity"],
                status=IncidentStatus(data["status"]),
                reported_at=parse_timestamp(data["reportedAt"]),
            )
        except KeyError as e:
            raise ValueError(f"Incident entry is missing field {e.args[0]!r}") from None
        except TypeError as e:
            raise ValueError(f"Incident entry has a malformed field: {e}") from None
