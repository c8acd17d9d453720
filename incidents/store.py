"""Incident store: the authoritative collection and its durable-write discipline.

Every mutation (create, change_status, archive, reset) and flush() runs
under one asyncio lock, from reading the committed collection through the
durable write. Mutations build a working copy; readers only ever see the
committed snapshot, which is swapped in once the write has succeeded.

Write failures:
- the write is retried with exponential backoff; if every attempt fails the
  working copy is dropped and PersistenceError(rolled_back=True) is raised,
  so memory still matches the durable record
- if the write times out or the calling task is cancelled mid-write, the
  outcome is unknown: the change is kept in memory, the store is marked
  dirty and PersistenceError(rolled_back=False) / CancelledError is raised.
  The next successful write clears the dirty flag.
"""
import asyncio
import uuid
from datetime import datetime, UTC
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential
from core.config import settings
from core.logging import get_logger
from incidents.errors import (
    CorruptRecordError,
    IncidentNotFoundError,
    IncidentStoreError,
    InvalidStateError,
    InvalidTransitionError,
    PersistenceError,
    StoreNotInitializedError,
)
from incidents.models import Incident, IncidentStatus
from incidents.storage import IncidentStorage
from incidents.transitions import allowed_transitions, can_archive, can_reset, can_transition

logger = get_logger(__name__)


class _Snapshot(NamedTuple):
    incidents: List[Incident]
    positions: Dict[str, int]


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class IncidentStore:
    """Owns the incident collection; the only component allowed to mutate it."""

    def __init__(
        self,
        storage: IncidentStorage,
        *,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        auto_save: Optional[bool] = None,
        on_corrupt_record: Optional[str] = None,
        retry_attempts: Optional[int] = None,
        retry_min_wait: Optional[float] = None,
        retry_max_wait: Optional[float] = None,
        persist_timeout: Optional[float] = None,
    ):
        """
        Initialize the store. Nothing is loaded until initialize() is awaited.

        Args:
            storage: Durable record backend
            id_factory: Returns a fresh unique id (defaults to UUID4)
            clock: Returns the current time (defaults to UTC now)
            auto_save: Persist after every mutation (defaults to settings.auto_save)
            on_corrupt_record: 'fail' or 'reset' (defaults to settings.on_corrupt_record)
            retry_attempts: Write attempts before giving up
            retry_min_wait: Minimum backoff between attempts (seconds)
            retry_max_wait: Maximum backoff between attempts (seconds)
            persist_timeout: Bound on one durable write including retries;
                0 disables (defaults to settings.persist_timeout_seconds)
        """
        self._storage = storage
        self._id_factory = id_factory or _new_id
        self._clock = clock or _utcnow
        self._auto_save = settings.auto_save if auto_save is None else auto_save
        self._on_corrupt_record = on_corrupt_record or settings.on_corrupt_record
        self._retry_attempts = retry_attempts or settings.persist_retry_attempts
        self._retry_min_wait = settings.persist_retry_min_wait if retry_min_wait is None else retry_min_wait
        self._retry_max_wait = settings.persist_retry_max_wait if retry_max_wait is None else retry_max_wait
        timeout = settings.persist_timeout_seconds if persist_timeout is None else persist_timeout
        self._persist_timeout = timeout if timeout and timeout > 0 else None

        self._lock = asyncio.Lock()
        self._snapshot = _Snapshot([], {})
        self._initialized = False
        self._dirty = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_dirty(self) -> bool:
        """True while memory holds changes the durable record may not have."""
        return self._dirty

    @property
    def auto_save(self) -> bool:
        return self._auto_save

    def _require_initialized(self, operation: str) -> None:
        if not self._initialized:
            raise StoreNotInitializedError(operation)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def initialize(self) -> None:
        """
        Load the durable record into memory.

        Creates an empty record on first run. A corrupt record either aborts
        (on_corrupt_record='fail') or is replaced by an empty collection
        ('reset'); partial data is never kept.

        Raises:
            CorruptRecordError: Record unreadable and policy is 'fail'
            PersistenceError: The initial empty record could not be written
        """
        async with self._lock:
            if self._initialized:
                logger.warning("Incident store already initialized", location=self._storage.describe())
                return

            try:
                records = await asyncio.to_thread(self._storage.load)
                incidents = None if records is None else self._decode(records)
            except CorruptRecordError as e:
                if self._on_corrupt_record != "reset":
                    logger.error(
                        "Incident record is corrupt, refusing to start",
                        location=self._storage.describe(),
                        error=str(e)
                    )
                    raise
                logger.error(
                    "Incident record is corrupt, discarding it and starting empty",
                    location=self._storage.describe(),
                    error=str(e)
                )
                incidents = None

            if incidents is None:
                await self._persist_or_raise([], "Failed to create incidents record")
                incidents = []
                logger.info("Created new incidents record", location=self._storage.describe())
            else:
                logger.info(
                    "Loaded incidents",
                    count=len(incidents),
                    location=self._storage.describe()
                )

            self._snapshot = _Snapshot(incidents, {incident.id: i for i, incident in enumerate(incidents)})
            self._dirty = False
            self._initialized = True

    @staticmethod
    def _decode(records: List[Dict[str, Any]]) -> List[Incident]:
        incidents: List[Incident] = []
        seen: set[str] = set()
        for position, record in enumerate(records):
            try:
                incident = Incident.from_dict(record)
            except ValueError as e:
                raise CorruptRecordError(f"Entry {position}: {e}") from e
            if incident.id in seen:
                raise CorruptRecordError(f"Entry {position}: duplicate id {incident.id}")
            seen.add(incident.id)
            incidents.append(incident)
        return incidents

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_all(self, include_archived: bool = False) -> List[Incident]:
        """
        List incidents in creation order.

        Args:
            include_archived: Include incidents whose status is ARCHIVED

        Returns:
            A new list; later mutations do not affect it
        """
        self._require_initialized("list_all")
        incidents = self._snapshot.incidents
        if include_archived:
            return list(incidents)
        return [i for i in incidents if i.status is not IncidentStatus.ARCHIVED]

    def find_by_id(self, incident_id: str) -> Optional[Incident]:
        """Get incident by ID, or None."""
        self._require_initialized("find_by_id")
        snapshot = self._snapshot
        position = snapshot.positions.get(incident_id)
        if position is None:
            return None
        return snapshot.incidents[position]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def create(self, data: Mapping[str, Any]) -> Incident:
        """
        Create an OPEN incident from validated fields.

        Args:
            data: title, description, category and severity, already
                validated (see incidents.validation)

        Returns:
            The new incident
        """
        self._require_initialized("create")
        async with self._lock:
            current = self._snapshot
            incident_id = self._id_factory()
            if incident_id in current.positions:
                raise IncidentStoreError(f"Id generator returned an id already in use: {incident_id}")

            reported_at = self._clock()
            if reported_at.tzinfo is None:
                reported_at = reported_at.replace(tzinfo=UTC)

            incident = Incident(
                id=incident_id,
                title=data["title"],
                description=data["description"],
                category=data["category"],
                severity=data["severity"],
                status=IncidentStatus.OPEN,
                reported_at=reported_at,
            )
            positions = dict(current.positions)
            positions[incident.id] = len(current.incidents)
            await self._commit(_Snapshot(current.incidents + [incident], positions))

        logger.info(
            "Created incident",
            incident_id=incident.id,
            category=incident.category,
            severity=incident.severity
        )
        return incident

    async def change_status(self, incident_id: str, requested: IncidentStatus | str) -> Incident:
        """
        Move an incident one step along the workflow graph.

        Raises:
            IncidentNotFoundError: Unknown id
            InvalidTransitionError: `requested` is not reachable from the current status
            PersistenceError: The durable write failed
        """
        def check(incident: Incident) -> IncidentStatus:
            if not can_transition(incident.status, requested):
                raise InvalidTransitionError(
                    incident.id,
                    incident.status.value,
                    str(getattr(requested, "value", requested)),
                    [status.value for status in allowed_transitions(incident.status)]
                )
            return IncidentStatus(requested)

        return await self._apply_status("change_status", incident_id, check)

    async def archive(self, incident_id: str) -> Incident:
        """Archive an OPEN or RESOLVED incident."""
        def check(incident: Incident) -> IncidentStatus:
            if not can_archive(incident.status):
                raise InvalidStateError(incident.id, incident.status.value, "archive")
            return IncidentStatus.ARCHIVED

        return await self._apply_status("archive", incident_id, check)

    async def reset(self, incident_id: str) -> Incident:
        """Reopen an ARCHIVED incident."""
        def check(incident: Incident) -> IncidentStatus:
            if not can_reset(incident.status):
                raise InvalidStateError(incident.id, incident.status.value, "reset")
            return IncidentStatus.OPEN

        return await self._apply_status("reset", incident_id, check)

    async def _apply_status(
        self,
        operation: str,
        incident_id: str,
        check: Callable[[Incident], IncidentStatus]
    ) -> Incident:
        self._require_initialized(operation)
        async with self._lock:
            current = self._snapshot
            position = current.positions.get(incident_id)
            if position is None:
                raise IncidentNotFoundError(incident_id)

            incident = current.incidents[position]
            try:
                new_status = check(incident)
            except IncidentStoreError as e:
                logger.info("Rejected status change", incident_id=incident_id, operation=operation, reason=str(e))
                raise

            updated = incident.with_status(new_status)
            incidents = list(current.incidents)
            incidents[position] = updated
            await self._commit(_Snapshot(incidents, current.positions))

        logger.info(
            "Incident status changed",
            incident_id=incident_id,
            operation=operation,
            from_status=incident.status.value,
            to_status=updated.status.value
        )
        return updated

    async def flush(self) -> None:
        """
        Write the full committed collection to the durable record now.

        Raises:
            PersistenceError: The write failed; memory is unchanged and stays dirty
        """
        self._require_initialized("flush")
        async with self._lock:
            incidents = self._snapshot.incidents
            await self._persist_or_raise(
                [incident.to_dict() for incident in incidents],
                "Failed to flush incidents data"
            )
            self._dirty = False
        logger.info("Flushed incidents", count=len(incidents), location=self._storage.describe())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    async def _commit(self, working: _Snapshot) -> None:
        """Persist `working` and make it the committed snapshot. Caller holds the lock."""
        if not self._auto_save:
            self._snapshot = working
            self._dirty = True
            return

        try:
            await self._persist([incident.to_dict() for incident in working.incidents])
        except asyncio.CancelledError:
            # The write may still land; keep memory at or ahead of disk.
            self._snapshot = working
            self._dirty = True
            logger.warning("Durable write cancelled, change kept in memory", location=self._storage.describe())
            raise
        except PersistenceError:
            self._snapshot = working
            self._dirty = True
            raise
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "Durable write failed, change rolled back",
                location=self._storage.describe(),
                error=str(e)
            )
            raise PersistenceError("Failed to save incidents data; change rolled back", rolled_back=True) from e

        self._snapshot = working
        self._dirty = False

    async def _persist_or_raise(self, records: List[Dict[str, Any]], message: str) -> None:
        try:
            await self._persist(records)
        except PersistenceError:
            raise
        except Exception as e:  # pylint: disable=broad-except
            logger.error(message, location=self._storage.describe(), error=str(e))
            raise PersistenceError(message, rolled_back=False) from e

    async def _persist(self, records: List[Dict[str, Any]]) -> None:
        """
        Write `records` with retries, bounded by the persist timeout.

        Raises:
            PersistenceError: The timeout expired (rolled_back=False)
            Exception: Whatever the last write attempt raised
        """
        deadline = asyncio.timeout(self._persist_timeout)
        try:
            async with deadline:
                await self._write_with_retry(records)
        except TimeoutError as e:
            if not deadline.expired():
                raise
            logger.error(
                "Durable write timed out, change kept in memory",
                timeout=self._persist_timeout,
                location=self._storage.describe()
            )
            raise PersistenceError(
                f"Timed out after {self._persist_timeout}s saving incidents data; "
                "change kept in memory and marked dirty",
                rolled_back=False
            ) from e

    async def _write_with_retry(self, records: List[Dict[str, Any]]) -> None:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=self._retry_min_wait, min=self._retry_min_wait, max=self._retry_max_wait),
            retry=retry_if_exception_type(Exception),
            before_sleep=self._log_retry,
            reraise=True
        ):
            with attempt:
                await asyncio.to_thread(self._storage.save, records)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "Durable write failed, retrying",
            attempt=retry_state.attempt_number,
            location=self._storage.describe(),
            error=str(retry_state.outcome.exception())
        )
