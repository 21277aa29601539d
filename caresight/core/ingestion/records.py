"""
Record Extraction - Maternal & Cardiovascular

Turns CsvTable rows into the flat numeric records the maternal and
cardiovascular prediction services accept.

The two domains coerce differently:
- maternal: a field that does not parse is MISSING (InputError)
- cardiovascular: a field that does not parse becomes 0
"""
from __future__ import annotations

import math
import random
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from caresight.core.ingestion.csv_reader import CsvTable
from caresight.utils import get_logger, InputError

logger = get_logger(__name__)

# Leading numeric prefix, the way JavaScript parseFloat reads "98.6F" as 98.6
_FLOAT_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_float(value: Any) -> float:
    """Parse the leading number of a cell; NaN when there is none."""
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if text.lstrip("+-").startswith("Infinity"):
        return -math.inf if text.startswith("-") else math.inf
    match = _FLOAT_PREFIX.match(text)
    return float(match.group()) if match else math.nan


# ── Maternal ────────────────────────────────────────────────────────────

MATERNAL_FIELDS = ["Age", "SystolicBP", "DiastolicBP", "BS", "BodyTemp", "HeartRate"]


@dataclass
class MaternalSeriesItem:
    """One CSV row of a maternal series upload."""
    index: int
    data: Dict[str, float]
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "timestamp": self.timestamp, "data": self.data}


def _lookup(record: Dict[str, str], name: str) -> Optional[str]:
    # Exact header first, then the lower-case spelling
    value = record.get(name)
    if not value:
        value = record.get(name.lower())
    return value or None


def extract_maternal_record(record: Dict[str, str]) -> Dict[str, float]:
    """
    Extract the six maternal vitals from one CSV record.

    Raises:
        InputError: listing every field that is missing or not numeric
    """
    extracted = {name: parse_float(_lookup(record, name)) for name in MATERNAL_FIELDS}
    missing = [name for name, value in extracted.items() if math.isnan(value)]
    if missing:
        raise InputError(
            f"Missing or invalid values for: {', '.join(missing)}",
            fields=missing,
        )
    return extracted


def extract_maternal(table: CsvTable) -> Dict[str, float]:
    """Single-record mode: only the first data row is used."""
    return extract_maternal_record(table.first_record())


def extract_maternal_series(table: CsvTable) -> List[MaternalSeriesItem]:
    """Series mode: every data row becomes its own prediction input."""
    items = []
    for index, record in enumerate(table.records()):
        try:
            data = extract_maternal_record(record)
        except InputError as e:
            raise InputError(
                f"Row {index + 1}: {e.message}",
                fields=e.fields,
                details={"row": index + 1},
            ) from e
        timestamp = record.get("timestamp") or record.get("Timestamp") or None
        items.append(MaternalSeriesItem(index=index, data=data, timestamp=timestamp))
    return items


# ── Cardiovascular ──────────────────────────────────────────────────────

CARDIOVASCULAR_NUMERIC_FIELDS = [
    "age",
    "systolic_bp",
    "diastolic_bp",
    "heart_rate",
    "cholesterol",
    "glucose",
    "medication_adherence",
    "exercise_minutes",
    "diet_score",
    "stress_level",
    "weight_kg",
    "oxygen_saturation",
    "temperature_c",
    "sleep_hours",
]

CARDIOVASCULAR_STRING_DEFAULTS = {
    "gender": "Unknown",
    "diabetes": "No",
    "hypertension": "No",
}

CARDIOVASCULAR_REQUIRED_FIELDS = ["age", "systolic_bp", "diastolic_bp", "heart_rate", "cholesterol"]


def _zero_if_nan(value: float) -> float:
    return 0.0 if math.isnan(value) else value


def extract_cardiovascular_record(record: Dict[str, str], rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """Build one cardiovascular patient record; unparseable numbers become 0."""
    rng = rng or random
    patient_id = record.get("patient_id") or f"P{rng.randrange(1000)}"

    out: Dict[str, Any] = {"patient_id": str(patient_id)}
    out["age"] = _zero_if_nan(parse_float(record.get("age")))
    for name, default in CARDIOVASCULAR_STRING_DEFAULTS.items():
        out[name] = str(record.get(name) or default)
    for name in CARDIOVASCULAR_NUMERIC_FIELDS[1:]:
        out[name] = _zero_if_nan(parse_float(record.get(name)))
    return out


def extract_cardiovascular(table: CsvTable, rng: Optional[random.Random] = None) -> List[Dict[str, Any]]:
    """
    Extract every cardiovascular patient in the table.

    Only the first patient is checked for required vitals; a required field
    equal to 0 counts as missing because 0 is also the parse-failure value.

    Raises:
        InputError: no patients, or required fields missing on the first one
    """
    patients = [extract_cardiovascular_record(r, rng) for r in table.records()]
    if not patients:
        raise InputError("No valid patient data found in CSV")

    first = patients[0]
    missing = [name for name in CARDIOVASCULAR_REQUIRED_FIELDS if not first.get(name)]
    if missing:
        raise InputError(
            f"Missing or invalid values for: {', '.join(missing)}",
            fields=missing,
        )

    logger.info(f"Extracted {len(patients)} cardiovascular patient record(s)")
    return patients
