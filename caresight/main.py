"""
CareSight Dashboard Backend - FastAPI Application

Main application entry point with API endpoints for:
- CSV uploads (maternal, cardiovascular, diabetes)
- Glucose cohort proxy
- Stored diabetes patients and reports
- CSV export of the dashboard patient list
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, Response, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from caresight import __version__
from caresight.config import settings
from caresight.core.ingestion import Demographics
from caresight.core.llm import GeminiClient, RecommendationClient
from caresight.core.prediction import PredictionClient
from caresight.core.storage import DiskCacheStorage, PatientStore, ReportInput
from caresight.models import (
    ExportRequest,
    ExportResponse,
    HealthResponse,
    MessageResponse,
    PatientListResponse,
    ReportResponse,
    UploadResponse,
)
from caresight.services import UploadService
from caresight.utils import get_logger, setup_logging, PersistenceError

setup_logging(settings.log_level, settings.log_file)
logger = get_logger(__name__)

START_TIME = datetime.now()

# Envelope error code -> HTTP status
ERROR_STATUS = {
    "INPUT_ERROR": 400,
    "VALIDATION_ERROR": 400,
    "NETWORK_ERROR": 502,
    "API_ERROR": 502,
}

# ---- Singletons ----
_prediction_client = PredictionClient()
_recommendation_client = RecommendationClient(GeminiClient())
_patient_store: Optional[PatientStore] = None


def get_prediction_client() -> PredictionClient:
    return _prediction_client


def get_recommendation_client() -> RecommendationClient:
    return _recommendation_client


def get_patient_store() -> PatientStore:
    """Open the disk store on first use."""
    global _patient_store
    if _patient_store is None:
        _patient_store = PatientStore(DiskCacheStorage(settings.storage_dir), key=settings.storage_key)
    return _patient_store


def get_upload_service(
    prediction_client: PredictionClient = Depends(get_prediction_client),
    recommendation_client: RecommendationClient = Depends(get_recommendation_client),
    patient_store: PatientStore = Depends(get_patient_store),
) -> UploadService:
    return UploadService(prediction_client, recommendation_client, patient_store)


# ---- Application Lifespan ----

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup → yield → shutdown."""
    logger.info(
        f"CareSight API v{__version__} starting "
        f"(gemini={'on' if _recommendation_client.is_available else 'off'})"
    )
    yield
    if _patient_store is not None:
        close = getattr(_patient_store.storage, "close", None)
        if close:
            close()
    logger.info("CareSight API shut down.")


# ---- FastAPI Application ----

app = FastAPI(
    title="CareSight Dashboard API",
    description="CSV-driven maternal, cardiovascular and diabetes risk dashboard backend",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---- Utility Functions ----

def _envelope(result: Dict[str, Any]) -> JSONResponse:
    """Upload envelope as JSON, with a status code matching its error class."""
    if result.get("success"):
        return JSONResponse(content=jsonable_encoder(result))
    return JSONResponse(
        content=jsonable_encoder(result),
        status_code=ERROR_STATUS.get(result.get("code"), 500),
    )


async def _read_upload(file: Optional[UploadFile]):
    if file is None:
        return None, None
    return file.filename, await file.read()


def _whole(value: float):
    return int(value) if float(value).is_integer() else value


def _health(store: PatientStore) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now().isoformat(),
        uptime_seconds=(datetime.now() - START_TIME).total_seconds(),
        gemini_available=_recommendation_client.is_available,
        patients=store.get_patient_stats(),
    )


# ---- Health ----

@app.get("/", response_model=HealthResponse, tags=["Health"])
async def root(store: PatientStore = Depends(get_patient_store)):
    """API root - health check."""
    return _health(store)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(store: PatientStore = Depends(get_patient_store)):
    """Health check endpoint."""
    return _health(store)


# ---- Uploads ----

@app.post("/api/v1/maternal/upload", response_model=UploadResponse, tags=["Upload"])
async def upload_maternal(
    file: Optional[UploadFile] = File(None),
    series: bool = Query(False, description="Predict every row instead of the first"),
    service: UploadService = Depends(get_upload_service),
):
    """Maternal vitals CSV -> risk class, probabilities, SHAP values, recommendations."""
    filename, content = await _read_upload(file)
    return _envelope(await service.process_maternal(filename, content, series=series))


@app.post("/api/v1/cardiovascular/upload", response_model=UploadResponse, tags=["Upload"])
async def upload_cardiovascular(
    file: Optional[UploadFile] = File(None),
    service: UploadService = Depends(get_upload_service),
):
    """Cardiovascular cohort CSV -> per-patient risk and cohort statistics."""
    filename, content = await _read_upload(file)
    return _envelope(await service.process_cardiovascular(filename, content))


@app.post("/api/v1/diabetes/upload", response_model=UploadResponse, tags=["Upload"])
async def upload_diabetes(
    file: Optional[UploadFile] = File(None),
    name: str = Form(...),
    age: float = Form(...),
    gender: str = Form(...),
    weight: Optional[float] = Form(None),
    height: Optional[float] = Form(None),
    selected_horizon: str = Form("90d"),
    service: UploadService = Depends(get_upload_service),
):
    """
    Glucose log CSV + demographics -> forecast, horizon risks, insights.

    The patient and a new report are saved locally when the prediction
    succeeds.
    """
    filename, content = await _read_upload(file)
    demographics = Demographics(
        name=name.strip(),
        age=_whole(age),
        gender=gender,
        weight=weight,
        height=height,
    )
    result = await service.process_diabetes(filename, content, demographics, selected_horizon)
    return _envelope(result)


@app.post("/api/glucose/cohort", tags=["Proxy"])
async def proxy_glucose_cohort(
    request: Request,
    client: PredictionClient = Depends(get_prediction_client),
):
    """Relay a cohort body to the glucose service, keeping its status and content type."""
    try:
        body = await request.json()
        upstream = await client.forward_glucose_cohort(body)
    except Exception as e:
        logger.error(f"Glucose cohort proxy failed: {e}")
        return JSONResponse(content={"error": str(e) or "Proxy error"}, status_code=500)

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "application/json"),
    )


# ---- Patients ----

@app.get("/api/v1/patients", response_model=PatientListResponse, tags=["Patients"])
async def list_patients(store: PatientStore = Depends(get_patient_store)):
    patients = store.get_patients()
    return PatientListResponse(patients=patients, total=len(patients))


@app.get("/api/v1/patients/stats", tags=["Patients"])
async def patient_stats(store: PatientStore = Depends(get_patient_store)):
    return store.get_patient_stats()


@app.post("/api/v1/patients/export", response_model=ExportResponse, tags=["Patients"])
async def export_patients(request: ExportRequest):
    """Dashboard patient list as CSV text."""
    result = UploadService.export_patients(
        [row.model_dump() for row in request.patients], request.condition
    )
    if not result["success"]:
        return JSONResponse(content=result, status_code=400)
    return result


@app.get("/api/v1/patients/{patient_id}", tags=["Patients"])
async def get_patient(patient_id: str, store: PatientStore = Depends(get_patient_store)):
    patient = store.get_patient_by_id(patient_id)
    if patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


@app.delete("/api/v1/patients/{patient_id}", response_model=MessageResponse, tags=["Patients"])
async def delete_patient(patient_id: str, store: PatientStore = Depends(get_patient_store)):
    try:
        store.delete_patient(patient_id)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return MessageResponse(message=f"Patient {patient_id} deleted")


@app.post("/api/v1/patients/{patient_id}/reports", response_model=ReportResponse, tags=["Patients"])
async def add_report(
    patient_id: str,
    report: ReportInput,
    store: PatientStore = Depends(get_patient_store),
):
    try:
        created = store.add_report_to_patient(patient_id, report)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    if created is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return ReportResponse(report=created)


@app.delete(
    "/api/v1/patients/{patient_id}/reports/{report_id}",
    response_model=MessageResponse,
    tags=["Patients"],
)
async def delete_report(
    patient_id: str,
    report_id: str,
    store: PatientStore = Depends(get_patient_store),
):
    try:
        store.delete_report(patient_id, report_id)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return MessageResponse(message=f"Report {report_id} deleted")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("caresight.main:app", host="0.0.0.0", port=8000, reload=False)
