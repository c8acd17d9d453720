"""Bulk ingestion service feeding candidate rows into the incident store."""
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Callable, Dict, Iterable
from incidents.store import IncidentStore
from incidents.validation import ValidationResult, validate_create_incident
from ingestion.csv_reader import parse_csv_bytes
from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class IngestionSummary:
    """Aggregate outcome of one bulk ingestion."""
    total_rows: int = 0
    created: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalRows": self.total_rows,
            "created": self.created,
            "skipped": self.skipped,
        }


class BulkIngestionService:
    """
    Creates incidents from a sequence of raw rows.

    Each row is validated and created on its own: invalid rows are counted
    and skipped, and rows created before a later failure stay created.
    A PersistenceError from the store is not a row problem and stops the
    batch.
    """

    def __init__(
        self,
        store: IncidentStore,
        validator: Callable[[Any], ValidationResult] = validate_create_incident
    ):
        """
        Initialize ingestion service.

        Args:
            store: Incident store receiving the created incidents
            validator: Field validation applied to every row
        """
        self.store = store
        self.validator = validator

    async def ingest_rows(self, rows: Iterable[Any]) -> IngestionSummary:
        """
        Ingest candidate rows in order.

        Args:
            rows: Row records of arbitrary origin

        Returns:
            Counts of rows seen, incidents created and rows skipped
        """
        start_time = datetime.now(UTC)
        summary = IngestionSummary()

        for row_number, row in enumerate(rows, start=1):
            summary.total_rows += 1
            result = self.validator(row)
            if not result.ok:
                summary.skipped += 1
                logger.info("Skipped invalid row", row=row_number, errors=result.errors)
                continue

            await self.store.create(result.value)
            summary.created += 1

        logger.info(
            "Bulk ingestion completed",
            total_rows=summary.total_rows,
            created=summary.created,
            skipped=summary.skipped,
            duration_seconds=(datetime.now(UTC) - start_time).total_seconds()
        )
        return summary

    async def ingest_csv(self, content: bytes) -> IngestionSummary:
        """
        Parse a CSV upload and ingest its rows.

        Raises:
            CsvFormatError: If the file cannot be parsed; nothing is created
        """
        rows = parse_csv_bytes(content)
        logger.info("Parsed CSV upload", rows=len(rows), size=len(content))
        return await self.ingest_rows(rows)
