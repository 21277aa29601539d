"""
API Request/Response Models

Pydantic models for the HTTP layer: health, upload envelopes, patients
and exports.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from caresight.core.storage import DiabetesReport, PatientStats, StoredPatient


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    timestamp: str
    uptime_seconds: float
    gemini_available: bool = False
    patients: Optional[PatientStats] = None


class UploadResponse(BaseModel):
    """Common envelope for upload flows; domain fields pass through."""
    success: bool
    error: Optional[str] = None
    code: Optional[str] = None

    model_config = {"extra": "allow"}


class PatientListResponse(BaseModel):
    patients: List[StoredPatient]
    total: int


class ReportResponse(BaseModel):
    success: bool = True
    report: DiabetesReport


class ExportRow(BaseModel):
    """One dashboard table row; camelCase keys match the export header."""
    name: str
    age: Optional[Union[int, float]] = None
    condition: Optional[str] = None
    riskScore: Optional[Union[int, float]] = None
    riskLevel: Optional[str] = None
    lastVisit: Optional[str] = None


class ExportRequest(BaseModel):
    """Request to export the visible patient list as CSV."""
    condition: str = Field(..., description="Dashboard tab, e.g. 'diabetes'")
    patients: List[ExportRow] = Field(default_factory=list)


class ExportResponse(BaseModel):
    success: bool
    data: Optional[str] = None
    filename: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
