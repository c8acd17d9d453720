"""CSV parsing for bulk incident uploads."""
import csv
import io
from typing import Dict, List


class CsvFormatError(ValueError):
    """Uploaded content is not readable CSV."""


def parse_csv_bytes(content: bytes) -> List[Dict[str, str]]:
    """
    Parse an uploaded CSV file into row records.

    The first row is the header. Headers and cells are trimmed, blank rows
    are skipped, and a UTF-8 byte order mark is tolerated.

    Args:
        content: Raw file bytes

    Returns:
        One dict per data row, keyed by header

    Raises:
        CsvFormatError: If the content is not UTF-8 or not valid CSV
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CsvFormatError(f"CSV file must be UTF-8 encoded: {e}") from e

    reader = csv.reader(io.StringIO(text, newline=""), strict=True)
    try:
        rows = list(reader)
    except csv.Error as e:
        raise CsvFormatError(f"Malformed CSV at line {reader.line_num}: {e}") from e

    rows = [row for row in rows if any(cell.strip() for cell in row)]
    if not rows:
        return []

    headers = [header.strip() for header in rows[0]]
    records: List[Dict[str, str]] = []
    for row in rows[1:]:
        cells = [cell.strip() for cell in row]
        # Short rows get empty strings; extra cells without a header are dropped.
        cells += [""] * (len(headers) - len(cells))
        records.append({header: cell for header, cell in zip(headers, cells) if header})
    return records
