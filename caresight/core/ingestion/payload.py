"""
Diabetes Cohort Payload Builder

Turns parsed CSV rows plus the uploader's demographics into the cohort
payload accepted by the glucose forecasting service:

    {"patients": [{patient_id, name, age, gender, weight, height,
                   analysis_timestamp, data: [...], contexts: {...},
                   risk_horizons: [7, 14, 30, 60, 90]}]}

Rows are grouped by their ``patient_id`` column. Without that column every
row lands in one group keyed by the demographics name: an upload is assumed
to describe a single subject.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from caresight.utils import get_logger

logger = get_logger(__name__)

RISK_HORIZONS = (7, 14, 30, 60, 90)

FLAG_FIELDS = ("missed_insulin", "exercise_flag", "illness_flag", "is_weekend")
PERCENT_FIELDS = ("pct_hypo", "pct_hyper")

# Defaults for the contexts block, read from the group's last record
CONTEXT_DEFAULTS = {
    "insulin_adherence": 1,
    "sleep_quality": 0.8,
    "insulin_dose": 30,
}

_INT = re.compile(r"^[+-]?\d+$")
_DECIMAL = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

Cell = Union[None, bool, int, float, str]


@dataclass
class Demographics:
    """Patient details entered alongside the upload."""
    name: str
    age: Union[int, float]
    gender: str
    weight: Optional[float] = None
    height: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "age": self.age,
            "gender": self.gender,
            "weight": self.weight,
            "height": self.height,
        }


def coerce_cell(value: Optional[str]) -> Cell:
    """
    Convert one CSV cell to a JSON scalar.

    "" -> None, "12" -> 12, "1.5" -> 1.5, "TRUE" -> True, anything else as-is.
    """
    if value is None or value == "":
        return None
    if _INT.match(value):
        return int(value)
    if _DECIMAL.match(value):
        number = float(value)
        if math.isfinite(number):
            return number
        return value
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return value


def row_to_record(headers: Sequence[str], row: Sequence[str]) -> Dict[str, Cell]:
    """Zip one row against the headers, coercing every cell."""
    return {
        header: coerce_cell(row[i] if i < len(row) else None)
        for i, header in enumerate(headers)
    }


def _as_number(value: Cell) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    return None


def normalize_flag(value: Cell) -> int:
    """Boolean-like cell -> 0/1. Missing or non-numeric text counts as 0."""
    if isinstance(value, bool):
        return int(value)
    number = _as_number(value)
    if number is None:
        if value is not None:
            logger.debug(f"Non-numeric flag value {value!r} treated as 0")
        return 0
    return 1 if number else 0


def normalize_percent(value: Cell) -> Union[int, float]:
    """
    Percentage-like cell -> percent.

    A number <= 1 is read as a fraction and scaled by 100; anything larger is
    already a percent. 0.5 therefore always means 50%.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        # round() strips binary noise such as 0.2 * 100 == 20.000000000000004
        return round(value * 100, 6) if value <= 1 else value
    return 0


def normalize_record(record: Dict[str, Cell], patient_id: Any) -> Dict[str, Cell]:
    normalized = dict(record)
    normalized["patient_id"] = patient_id
    for name in FLAG_FIELDS:
        normalized[name] = normalize_flag(record.get(name))
    for name in PERCENT_FIELDS:
        normalized[name] = normalize_percent(record.get(name))
    return normalized


def _contexts(last_record: Dict[str, Cell]) -> Dict[str, Any]:
    return {key: last_record.get(key) or default for key, default in CONTEXT_DEFAULTS.items()}


def build_cohort_payload(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    demographics: Demographics,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the glucose cohort payload.

    Args:
        headers: CSV header row
        rows: CSV data rows
        demographics: Uploader-entered patient details
        now: Analysis timestamp (defaults to current UTC time)

    Returns:
        {"patients": [...]} with one entry per patient group, in order of
        first appearance
    """
    timestamp = (now or datetime.now(timezone.utc)).isoformat()

    groups: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        record = row_to_record(headers, row)
        patient_id = record.get("patient_id")
        if patient_id is None:
            patient_id = demographics.name

        key = str(patient_id)
        if key not in groups:
            groups[key] = {"patient_id": patient_id, "data": []}
        groups[key]["data"].append(normalize_record(record, patient_id))

    patients: List[Dict[str, Any]] = []
    for group in groups.values():
        data = group["data"]
        patients.append({
            "patient_id": group["patient_id"],
            **demographics.to_dict(),
            "analysis_timestamp": timestamp,
            "data": data,
            "contexts": _contexts(data[-1] if data else {}),
            "risk_horizons": list(RISK_HORIZONS),
        })

    logger.info(f"Built cohort payload: {len(patients)} patient(s), {len(rows)} record(s)")
    return {"patients": patients}
