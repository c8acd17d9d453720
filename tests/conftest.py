"""Shared fixtures for incident store tests."""
import threading
from datetime import datetime, timedelta, UTC
from typing import Any, Dict, List
import pytest
import pytest_asyncio
from incidents.models import IncidentStatus
from incidents.storage import InMemoryIncidentStorage
from incidents.store import IncidentStore


class SequentialIds:
    """Deterministic id generator: inc-0001, inc-0002, ..."""

    def __init__(self):
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"inc-{self.count:04d}"


class SteppingClock:
    """Clock advancing one second per call, starting at a fixed instant."""

    def __init__(self, start: datetime = datetime(2024, 5, 1, 9, 30, 0, 123456, tzinfo=UTC)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


class FlakyStorage(InMemoryIncidentStorage):
    """In-memory storage whose next `failures` saves raise OSError."""

    def __init__(self, failures: int = 0, initial: str | None = "[]"):
        super().__init__(initial=initial)
        self.failures = failures
        self.attempts = 0

    def save(self, records: List[Dict[str, Any]]) -> None:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("No space left on device")
        super().save(records)


class BlockingStorage(InMemoryIncidentStorage):
    """In-memory storage whose saves wait until `release` is set."""

    def __init__(self, initial: str | None = "[]"):
        super().__init__(initial=initial)
        self.started = threading.Event()
        self.release = threading.Event()

    def save(self, records: List[Dict[str, Any]]) -> None:
        self.started.set()
        self.release.wait(timeout=5)
        super().save(records)


def make_store(storage, **overrides) -> IncidentStore:
    """Store with deterministic ids/clock and no retry backoff."""
    options = {
        "id_factory": SequentialIds(),
        "clock": SteppingClock(),
        "auto_save": True,
        "on_corrupt_record": "fail",
        "retry_attempts": 3,
        "retry_min_wait": 0,
        "retry_max_wait": 0,
        "persist_timeout": 0,
    }
    options.update(overrides)
    return IncidentStore(storage, **options)


def draft(title: str = "Printer on fire", **fields: str) -> Dict[str, str]:
    """Valid creation payload."""
    data = {
        "title": title,
        "description": "Smoke coming out of the second floor printer.",
        "category": "FACILITIES",
        "severity": "HIGH",
    }
    data.update(fields)
    return data


async def incident_in_status(store: IncidentStore, status: IncidentStatus, title: str = "Network outage"):
    """Create an incident and walk it along legal edges to `status`."""
    incident = await store.create(draft(title))
    if status is IncidentStatus.INVESTIGATING:
        incident = await store.change_status(incident.id, IncidentStatus.INVESTIGATING)
    elif status is IncidentStatus.RESOLVED:
        await store.change_status(incident.id, IncidentStatus.INVESTIGATING)
        incident = await store.change_status(incident.id, IncidentStatus.RESOLVED)
    elif status is IncidentStatus.ARCHIVED:
        incident = await store.archive(incident.id)
    return incident


@pytest.fixture
def memory_storage() -> InMemoryIncidentStorage:
    return InMemoryIncidentStorage()


@pytest_asyncio.fixture
async def store(memory_storage) -> IncidentStore:
    """Initialized store on an in-memory record."""
    incident_store = make_store(memory_storage)
    await incident_store.initialize()
    return incident_store
