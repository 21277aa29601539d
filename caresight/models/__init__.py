from .schemas import (
    HealthResponse,
    UploadResponse,
    PatientListResponse,
    ReportResponse,
    ExportRow,
    ExportRequest,
    ExportResponse,
    MessageResponse,
)

__all__ = [
    "HealthResponse",
    "UploadResponse",
    "PatientListResponse",
    "ReportResponse",
    "ExportRow",
    "ExportRequest",
    "ExportResponse",
    "MessageResponse",
]
