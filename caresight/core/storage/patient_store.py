"""
Patient Store

Keeps diabetes patients and their reports in a single JSON document under
one storage key:

    {"patients": [StoredPatient, ...], "last_updated": "<iso>"}

Identity policy: a patient is matched by case-insensitive name. Two people
with the same name share one record.

Reports are append-only: they are created with a fresh id/timestamp and are
only ever removed, never edited. The last report is the latest.
"""
from __future__ import annotations

import json
import math
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from caresight.core.storage.backends import KeyValueStorage
from caresight.utils import get_logger, PersistenceError

logger = get_logger(__name__)

DEFAULT_STORAGE_KEY = "caresight_diabetes_patients"
RECENT_ACTIVITY_DAYS = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportInput(BaseModel):
    """Report content supplied by the caller; id and timestamp are assigned."""
    analysis_date: datetime = Field(default_factory=_utcnow)
    glucose_data: List[Any] = Field(default_factory=list)
    risk_factors: Dict[str, float] = Field(default_factory=dict)
    ai_explanation: Optional[str] = None
    raw_api_response: Any = None
    payload: Any = None


class DiabetesReport(ReportInput):
    id: str
    timestamp: datetime


class PatientInput(BaseModel):
    """Demographics supplied by the caller."""
    name: str
    age: Union[int, float]
    gender: str
    weight: Optional[float] = None
    height: Optional[float] = None


class StoredPatient(PatientInput):
    id: str
    created_at: datetime
    last_updated: datetime
    reports: List[DiabetesReport] = Field(default_factory=list)

    @property
    def latest_report(self) -> Optional[DiabetesReport]:
        return self.reports[-1] if self.reports else None


class PatientStats(BaseModel):
    total_patients: int
    total_reports: int
    average_reports_per_patient: float
    recent_activity: int


def _generate_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class PatientStore:
    """
    Patient/report persistence over an injected KeyValueStorage.

    Reads never raise: a corrupt or unreadable document is logged and read
    as empty. Mutations raise PersistenceError, both when the document
    cannot be read back and when it cannot be written.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = DEFAULT_STORAGE_KEY,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.storage = storage
        self.key = key
        self._clock = clock or _utcnow

    # ── Document I/O ────────────────────────────────────────────────────

    def _load_patients(self) -> List[StoredPatient]:
        """Read the stored document; raises so mutators never overwrite what they could not read."""
        try:
            stored = self.storage.get(self.key)
            if not stored:
                return []
            data = json.loads(stored)
            return [StoredPatient.model_validate(p) for p in data.get("patients") or []]
        except Exception as e:
            raise PersistenceError(f"Failed to load patients: {e}", operation="load") from e

    def get_patients(self) -> List[StoredPatient]:
        try:
            return self._load_patients()
        except PersistenceError as e:
            logger.error(f"Error loading stored patients: {e.message}")
            return []

    def save_patients(self, patients: List[StoredPatient]) -> None:
        document = {
            "patients": [p.model_dump(mode="json") for p in patients],
            "last_updated": self._clock().isoformat(),
        }
        try:
            self.storage.put(self.key, json.dumps(document))
        except Exception as e:
            logger.error(f"Error saving patients: {e}")
            raise PersistenceError(f"Failed to save patients: {e}", operation="save") from e

    # ── Patients ────────────────────────────────────────────────────────

    def save_patient(self, patient: PatientInput) -> StoredPatient:
        """Insert, or update the patient with the same name (case-insensitive)."""
        patients = self._load_patients()
        now = self._clock()
        wanted = patient.name.lower()

        for i, existing in enumerate(patients):
            if existing.name.lower() == wanted:
                updated = existing.model_copy(update={**patient.model_dump(), "last_updated": now})
                patients[i] = updated
                self.save_patients(patients)
                logger.info(f"Updated patient {updated.id}")
                return updated

        created = StoredPatient(
            **patient.model_dump(),
            id=_generate_id("patient"),
            created_at=now,
            last_updated=now,
        )
        patients.append(created)
        self.save_patients(patients)
        logger.info(f"Created patient {created.id}")
        return created

    def get_patient_by_id(self, patient_id: str) -> Optional[StoredPatient]:
        return next((p for p in self.get_patients() if p.id == patient_id), None)

    def delete_patient(self, patient_id: str) -> None:
        patients = self._load_patients()
        remaining = [p for p in patients if p.id != patient_id]
        if len(remaining) != len(patients):
            logger.info(f"Deleted patient {patient_id}")
        self.save_patients(remaining)

    # ── Reports ─────────────────────────────────────────────────────────

    def add_report_to_patient(self, patient_id: str, report: ReportInput) -> Optional[DiabetesReport]:
        """Append a report; None (no-op) when the patient does not exist."""
        patients = self._load_patients()
        for patient in patients:
            if patient.id == patient_id:
                now = self._clock()
                new_report = DiabetesReport(
                    **report.model_dump(),
                    id=_generate_id("report"),
                    timestamp=now,
                )
                patient.reports.append(new_report)
                patient.last_updated = now
                self.save_patients(patients)
                logger.info(f"Added report {new_report.id} to patient {patient_id}")
                return new_report

        logger.warning(f"Cannot add report: patient {patient_id} not found")
        return None

    def get_latest_report(self, patient_id: str) -> Optional[DiabetesReport]:
        patient = self.get_patient_by_id(patient_id)
        return patient.latest_report if patient else None

    def delete_report(self, patient_id: str, report_id: str) -> None:
        patients = self._load_patients()
        for patient in patients:
            if patient.id == patient_id:
                patient.reports = [r for r in patient.reports if r.id != report_id]
                patient.last_updated = self._clock()
                self.save_patients(patients)
                return

    # ── Stats ───────────────────────────────────────────────────────────

    def get_patient_stats(self, now: Optional[datetime] = None) -> PatientStats:
        patients = self.get_patients()
        total_patients = len(patients)
        total_reports = sum(len(p.reports) for p in patients)
        average = total_reports / total_patients if total_patients else 0.0

        cutoff = (now or self._clock()) - timedelta(days=RECENT_ACTIVITY_DAYS)
        recent = sum(
            1 for p in patients for r in p.reports if _as_aware(r.timestamp) > cutoff
        )

        return PatientStats(
            total_patients=total_patients,
            total_reports=total_reports,
            average_reports_per_patient=math.floor(average * 10 + 0.5) / 10,
            recent_activity=recent,
        )


def _as_aware(value: datetime) -> datetime:
    # Documents written by other tools may carry naive timestamps; read as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
