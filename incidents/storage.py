"""Storage abstraction for the durable incident record (local file or memory)."""
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional
from core.config import settings
from core.logging import get_logger
from incidents.errors import CorruptRecordError

logger = get_logger(__name__)


def dump_records(records: List[Dict[str, Any]]) -> str:
    """Serialize the full collection; identical input gives identical output."""
    return json.dumps(records, indent=2, ensure_ascii=False) + "\n"


def load_records(raw: str, origin: str) -> List[Dict[str, Any]]:
    """
    Parse a serialized collection.

    Raises:
        CorruptRecordError: If the payload is not a JSON list of objects
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorruptRecordError(f"{origin} is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise CorruptRecordError(
            f"{origin} must contain a JSON list, got {type(data).__name__}"
        )
    for position, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise CorruptRecordError(f"{origin} entry {position} is not an object")
    return data


def fsync_directory(directory: Path) -> None:
    """Flush a directory entry so a completed rename survives a crash."""
    if os.name != "posix":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class IncidentStorage(ABC):
    """Full-snapshot persistence target for the incident collection."""

    @abstractmethod
    def load(self) -> Optional[List[Dict[str, Any]]]:
        """
        Load the stored collection.

        Returns:
            Records in stored order, or None if no durable record exists yet

        Raises:
            CorruptRecordError: If the record exists but cannot be read
        """
        pass

    @abstractmethod
    def save(self, records: List[Dict[str, Any]]) -> None:
        """
        Replace the stored collection with `records`.

        Raises:
            OSError: If the write did not complete
        """
        pass

    @abstractmethod
    def describe(self) -> str:
        """Human-readable location of the record, for logs."""
        pass


class LocalJSONIncidentStorage(IncidentStorage):
    """Single pretty-printed JSON file, replaced atomically on each save."""

    def __init__(self, file_path: Optional[str] = None):
        """
        Initialize local storage.

        Args:
            file_path: JSON file path (defaults to settings.incidents_file_path)
        """
        self.file_path = Path(file_path or settings.incidents_file_path)
        # A timed-out write may still be running in its worker thread, and
        # threading.Lock does not hand out the lock in arrival order.
        self._write_lock = threading.Lock()
        self._sequence_lock = threading.Lock()
        self._issued_sequence = 0
        self._written_sequence = 0
        logger.info("Local incident storage initialized", path=str(self.file_path))

    def describe(self) -> str:
        return str(self.file_path)

    def load(self) -> Optional[List[Dict[str, Any]]]:
        """Load records from the JSON file."""
        try:
            raw = self.file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptRecordError(f"Cannot read {self.file_path}: {e}") from e
        return load_records(raw, str(self.file_path))

    def save(self, records: List[Dict[str, Any]]) -> None:
        """Write to a temp file in the same directory, then rename over the record."""
        self._write_snapshot(dump_records(records), self._next_sequence(), len(records))

    def _next_sequence(self) -> int:
        with self._sequence_lock:
            self._issued_sequence += 1
            return self._issued_sequence

    def _write_snapshot(self, payload: str, sequence: int, count: int) -> None:
        with self._write_lock:
            # An older snapshot whose caller gave up must not replace a newer one.
            if sequence < self._written_sequence:
                logger.warning(
                    "Skipped stale incidents snapshot",
                    path=str(self.file_path),
                    sequence=sequence,
                    written_sequence=self._written_sequence
                )
                return

            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.file_path.parent,
                prefix=f".{self.file_path.name}.",
                suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.file_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
            fsync_directory(self.file_path.parent)
            self._written_sequence = sequence
        logger.debug("Saved incidents", path=str(self.file_path), count=count, sequence=sequence)


class InMemoryIncidentStorage(IncidentStorage):
    """Keeps the serialized snapshot in memory; nothing survives the process."""

    def __init__(self, initial: Optional[str] = None):
        """
        Args:
            initial: Optional serialized collection to start from
        """
        self.snapshot: Optional[str] = initial
        self.save_count = 0

    def describe(self) -> str:
        return "memory"

    def load(self) -> Optional[List[Dict[str, Any]]]:
        if self.snapshot is None:
            return None
        return load_records(self.snapshot, "in-memory snapshot")

    def save(self, records: List[Dict[str, Any]]) -> None:
        self.snapshot = dump_records(records)
        self.save_count += 1


def get_incident_storage() -> IncidentStorage:
    """
    Get incident storage instance based on configuration.

    Returns:
        IncidentStorage instance
    """
    backend = settings.storage_backend

    if backend == "local":
        return LocalJSONIncidentStorage()

    elif backend == "memory":
        return InMemoryIncidentStorage()

    else:
        raise ValueError(f"Unknown storage backend: {backend}")
