"""
CSV Reader

Splits an uploaded text blob into a header row and data rows.

Deliberately minimal: comma split + trim, no quoting/escaping support, no
type inference. Quoted cells containing commas are split like any other
cell; this is a known limitation of the upload format.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from caresight.utils import get_logger, InputError, ValidationError

logger = get_logger(__name__)

MIN_LINES = 2  # header + at least one data row


@dataclass
class CsvTable:
    """Header row plus data rows, every row padded/truncated to the header width."""
    headers: List[str]
    rows: List[List[str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def records(self) -> List[Dict[str, str]]:
        """Zip headers with each data row."""
        return [dict(zip(self.headers, row)) for row in self.rows]

    def first_record(self) -> Dict[str, str]:
        return dict(zip(self.headers, self.rows[0])) if self.rows else {}


def _normalize_width(cells: List[str], width: int) -> List[str]:
    # Missing columns read as "", extra columns are dropped
    if len(cells) < width:
        return cells + [""] * (width - len(cells))
    return cells[:width]


def read_csv_text(text: str) -> CsvTable:
    """
    Parse raw CSV text into a CsvTable.

    Args:
        text: Already-decoded CSV content

    Returns:
        CsvTable with trimmed headers and cells

    Raises:
        ValidationError: fewer than two non-empty lines
    """
    lines = [line.strip() for line in (text or "").splitlines()]
    lines = [line for line in lines if line]

    if len(lines) < MIN_LINES:
        raise ValidationError(
            "insufficient rows",
            details={
                "hint": "CSV file must contain headers and at least one data row",
                "non_empty_lines": len(lines),
            },
        )

    headers = [h.strip() for h in lines[0].split(",")]
    rows = [
        _normalize_width([cell.strip() for cell in line.split(",")], len(headers))
        for line in lines[1:]
    ]

    logger.debug(f"Parsed CSV: {len(headers)} columns, {len(rows)} rows")
    return CsvTable(headers=headers, rows=rows)


def decode_upload(filename: Optional[str], content: Optional[bytes]) -> str:
    """
    Validate an uploaded file and decode it as UTF-8.

    Raises:
        InputError: no file, wrong extension, or undecodable bytes
    """
    if not filename or content is None:
        raise InputError("No file provided")

    if not filename.lower().endswith(".csv"):
        raise InputError("Please upload a CSV file", details={"filename": filename})

    try:
        # utf-8-sig drops a leading BOM that spreadsheet exports often add
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise InputError(
            "CSV file must be UTF-8 encoded",
            details={"filename": filename, "position": e.start},
        ) from e
