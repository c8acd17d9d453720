"""Tests for durable persistence: round trips, failures and the dirty window."""
import asyncio
import json
import pytest
from core.logging import configure_logging, get_logger
from incidents.errors import CorruptRecordError, PersistenceError
from incidents.models import IncidentStatus
from incidents.storage import LocalJSONIncidentStorage
from conftest import BlockingStorage, FlakyStorage, draft, incident_in_status, make_store

configure_logging()
logger = get_logger(__name__)


@pytest.mark.asyncio
async def test_round_trip_through_local_file(tmp_path):
    path = tmp_path / "data" / "incidents.json"
    store = make_store(LocalJSONIncidentStorage(str(path)))
    await store.initialize()
    await store.create(draft("First incident"))
    await incident_in_status(store, IncidentStatus.RESOLVED, "Second incident")
    await incident_in_status(store, IncidentStatus.ARCHIVED, "Third incident")
    before = store.list_all(include_archived=True)

    reloaded = make_store(LocalJSONIncidentStorage(str(path)))
    await reloaded.initialize()

    assert reloaded.list_all(include_archived=True) == before
    assert len(before) == 3
    logger.info("✓ Reloaded incidents from file", count=len(before))


@pytest.mark.asyncio
async def test_loads_file_written_by_earlier_versions(tmp_path):
    path = tmp_path / "incidents.json"
    path.write_text(json.dumps([{
        "id": "7d0f6f0e-6a59-4a8e-9a53-3f7d1b1f2f10",
        "title": "Wet floor",
        "description": "Water leaking near the lifts.",
        "category": "FACILITIES",
        "severity": "LOW",
        "status": "RESOLVED",
        "reportedAt": "2024-03-02T08:15:30.250Z",
    }], indent=2), encoding="utf-8")

    store = make_store(LocalJSONIncidentStorage(str(path)))
    await store.initialize()

    incident = store.find_by_id("7d0f6f0e-6a59-4a8e-9a53-3f7d1b1f2f10")
    assert incident.status is IncidentStatus.RESOLVED
    assert incident.reported_at.microsecond == 250000


@pytest.mark.asyncio
async def test_first_run_creates_file(tmp_path):
    path = tmp_path / "data" / "incidents.json"
    store = make_store(LocalJSONIncidentStorage(str(path)))

    await store.initialize()

    assert path.read_text(encoding="utf-8") == "[]\n"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    [
        "{broken",
        '[{"id": "a"}]',
        '[{"id": "a", "title": "t", "description": "d", "category": "IT", '
        '"severity": "LOW", "status": "CLOSED", "reportedAt": "2024-01-01T00:00:00Z"}]',
        '[{"id": null, "title": 123, "description": ["x"], "category": "IT", '
        '"severity": "LOW", "status": "OPEN", "reportedAt": "2024-01-01T00:00:00Z"}]',
    ],
)
async def test_corrupt_record_fails_startup(tmp_path, content):
    path = tmp_path / "incidents.json"
    path.write_text(content, encoding="utf-8")
    store = make_store(LocalJSONIncidentStorage(str(path)))

    with pytest.raises(CorruptRecordError):
        await store.initialize()

    assert not store.is_initialized
    assert path.read_text(encoding="utf-8") == content


@pytest.mark.asyncio
async def test_duplicate_ids_are_corrupt(tmp_path):
    entry = {
        "id": "dup",
        "title": "Duplicate",
        "description": "Same id twice.",
        "category": "IT",
        "severity": "LOW",
        "status": "OPEN",
        "reportedAt": "2024-01-01T00:00:00Z",
    }
    path = tmp_path / "incidents.json"
    path.write_text(json.dumps([entry, entry]), encoding="utf-8")

    with pytest.raises(CorruptRecordError):
        await make_store(LocalJSONIncidentStorage(str(path))).initialize()


@pytest.mark.asyncio
async def test_corrupt_record_reset_policy(tmp_path):
    path = tmp_path / "incidents.json"
    path.write_text('[{"id": "partial"}]', encoding="utf-8")
    store = make_store(LocalJSONIncidentStorage(str(path)), on_corrupt_record="reset")

    await store.initialize()

    assert store.list_all(include_archived=True) == []
    assert path.read_text(encoding="utf-8") == "[]\n"


@pytest.mark.asyncio
async def test_flush_twice_writes_identical_record(tmp_path):
    path = tmp_path / "incidents.json"
    store = make_store(LocalJSONIncidentStorage(str(path)), auto_save=False)
    await store.initialize()
    await store.create(draft("First incident"))
    await store.create(draft("Second incident"))

    await store.flush()
    first = path.read_bytes()
    await store.flush()

    assert path.read_bytes() == first
    assert len(json.loads(first)) == 2


@pytest.mark.asyncio
async def test_auto_save_disabled_defers_writes():
    storage = FlakyStorage()
    store = make_store(storage, auto_save=False)
    await store.initialize()

    created = await store.create(draft())
    await store.change_status(created.id, "INVESTIGATING")

    assert store.is_dirty
    assert storage.load() == []

    await store.flush()

    assert not store.is_dirty
    assert storage.load()[0]["status"] == "INVESTIGATING"


@pytest.mark.asyncio
async def test_transient_write_failure_is_retried():
    storage = FlakyStorage(failures=2)
    store = make_store(storage, retry_attempts=3)
    await store.initialize()

    created = await store.create(draft())

    assert storage.attempts == 3
    assert storage.load() == [created.to_dict()]
    assert not store.is_dirty


@pytest.mark.asyncio
async def test_failed_create_is_rolled_back():
    storage = FlakyStorage()
    store = make_store(storage, retry_attempts=2)
    await store.initialize()
    storage.failures = 2

    with pytest.raises(PersistenceError) as exc_info:
        await store.create(draft())

    assert exc_info.value.rolled_back
    assert store.list_all(include_archived=True) == []
    assert storage.load() == []
    assert not store.is_dirty
    logger.info("✓ Failed write rolled back", attempts=storage.attempts)


@pytest.mark.asyncio
async def test_failed_status_change_is_rolled_back():
    storage = FlakyStorage()
    store = make_store(storage, retry_attempts=1)
    await store.initialize()
    created = await store.create(draft())
    storage.failures = 1

    with pytest.raises(PersistenceError):
        await store.archive(created.id)

    assert store.find_by_id(created.id).status is IncidentStatus.OPEN
    assert storage.load()[0]["status"] == "OPEN"

    # The store keeps working once the backend recovers
    archived = await store.archive(created.id)
    assert archived.status is IncidentStatus.ARCHIVED
    assert storage.load()[0]["status"] == "ARCHIVED"


@pytest.mark.asyncio
async def test_failed_flush_keeps_memory_and_dirty_flag():
    storage = FlakyStorage()
    store = make_store(storage, auto_save=False, retry_attempts=1)
    await store.initialize()
    await store.create(draft())
    storage.failures = 1

    with pytest.raises(PersistenceError) as exc_info:
        await store.flush()

    assert not exc_info.value.rolled_back
    assert store.is_dirty
    assert len(store.list_all()) == 1


@pytest.mark.asyncio
async def test_initial_record_write_failure_fails_startup():
    storage = FlakyStorage(failures=5, initial=None)
    store = make_store(storage, retry_attempts=2)

    with pytest.raises(PersistenceError):
        await store.initialize()
    assert not store.is_initialized


@pytest.mark.asyncio
async def test_readers_do_not_see_uncommitted_changes():
    storage = BlockingStorage()
    store = make_store(storage)
    await store.initialize()

    task = asyncio.create_task(store.create(draft()))
    await asyncio.to_thread(storage.started.wait, 5)

    assert store.list_all() == []

    storage.release.set()
    created = await task
    assert store.list_all() == [created]


@pytest.mark.asyncio
async def test_timed_out_write_keeps_change_and_marks_dirty():
    storage = BlockingStorage()
    store = make_store(storage, persist_timeout=0.05)
    await store.initialize()

    with pytest.raises(PersistenceError) as exc_info:
        await store.create(draft())

    assert not exc_info.value.rolled_back
    assert store.is_dirty
    assert len(store.list_all()) == 1
    assert storage.load() == []

    storage.release.set()
    await store.flush()
    assert not store.is_dirty
    assert len(storage.load()) == 1


@pytest.mark.asyncio
async def test_cancelled_write_keeps_change_and_marks_dirty():
    storage = BlockingStorage()
    store = make_store(storage)
    await store.initialize()

    task = asyncio.create_task(store.create(draft()))
    await asyncio.to_thread(storage.started.wait, 5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert store.is_dirty
    assert len(store.list_all()) == 1

    storage.release.set()
    await store.flush()
    assert not store.is_dirty
    assert storage.load() == [i.to_dict() for i in store.list_all()]
