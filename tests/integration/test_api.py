"""
Integration Tests for FastAPI Backend

Tests for API endpoints: health, uploads, glucose proxy, patients, export.
Uses async httpx for ASGI app testing; collaborators are swapped through
FastAPI dependency overrides.
"""
import json

import pytest
import httpx

from caresight.core.prediction import PredictionClient, PredictionClientConfig
from caresight.core.storage import InMemoryStorage, PatientStore
from caresight.main import (
    app,
    get_patient_store,
    get_prediction_client,
    get_recommendation_client,
)


BASE = "http://predict.test"


@pytest.fixture
def upstream(maternal_response, cardiovascular_response, diabetes_response):
    """Stubbed prediction services keyed by path; tests may replace entries."""
    return {
        "/api/maternal": httpx.Response(200, json=maternal_response),
        "/api/cardiovascular": httpx.Response(200, json=cardiovascular_response),
        "/api/glucose": httpx.Response(200, json=diabetes_response),
        "/api/glucose/cohort": httpx.Response(200, json={"patient_predictions": []}),
    }


@pytest.fixture
def store(fixed_now) -> PatientStore:
    return PatientStore(InMemoryStorage(), clock=lambda: fixed_now)


@pytest.fixture
async def async_client(upstream, store, recommendation_client):
    """Create async test client with stubbed collaborators."""
    config = PredictionClientConfig(
        maternal_url=f"{BASE}/api/maternal",
        cardiovascular_url=f"{BASE}/api/cardiovascular",
        glucose_url=f"{BASE}/api/glucose",
    )

    def handler(request: httpx.Request) -> httpx.Response:
        canned = upstream[request.url.path]
        # Fresh response per request; a Response instance cannot be sent twice
        return httpx.Response(canned.status_code, content=canned.content, headers=canned.headers)

    prediction_client = PredictionClient(config, transport=httpx.MockTransport(handler))

    app.dependency_overrides[get_prediction_client] = lambda: prediction_client
    app.dependency_overrides[get_recommendation_client] = lambda: recommendation_client
    app.dependency_overrides[get_patient_store] = lambda: store

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    async def test_root_endpoint(self, async_client):
        response = await async_client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert data["patients"]["total_patients"] == 0

    async def test_health_endpoint(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestUploadEndpoints:
    """Tests for the three CSV upload endpoints."""

    async def test_maternal_upload(self, async_client, maternal_csv):
        response = await async_client.post(
            "/api/v1/maternal/upload",
            files={"file": ("vitals.csv", maternal_csv.encode(), "text/csv")},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["prediction"]["prediction"] == "high risk"
        assert data["recommendations"]

    async def test_maternal_series_upload(self, async_client, maternal_csv):
        response = await async_client.post(
            "/api/v1/maternal/upload?series=true",
            files={"file": ("vitals.csv", maternal_csv.encode(), "text/csv")},
        )
        assert response.status_code == 200
        assert len(response.json()["series"]) == 2

    async def test_upload_routes_document_envelope(self, async_client):
        paths = (await async_client.get("/openapi.json")).json()["paths"]
        for domain in ("maternal", "cardiovascular", "diabetes"):
            schema = paths[f"/api/v1/{domain}/upload"]["post"]["responses"]["200"]["content"]["application/json"]["schema"]
            assert schema["$ref"].endswith("/UploadResponse")

    async def test_upload_without_file(self, async_client):
        response = await async_client.post("/api/v1/maternal/upload")
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "No file provided", "code": "INPUT_ERROR"}

    async def test_upload_wrong_extension(self, async_client, maternal_csv):
        response = await async_client.post(
            "/api/v1/cardiovascular/upload",
            files={"file": ("vitals.json", maternal_csv.encode(), "application/json")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Please upload a CSV file"

    async def test_upstream_failure_maps_to_502(self, async_client, upstream, cardiovascular_csv):
        upstream["/api/cardiovascular"] = httpx.Response(500, text="model offline")
        response = await async_client.post(
            "/api/v1/cardiovascular/upload",
            files={"file": ("cohort.csv", cardiovascular_csv.encode(), "text/csv")},
        )
        assert response.status_code == 502
        assert response.json()["code"] == "API_ERROR"

    async def test_diabetes_upload_saves_patient(self, async_client, diabetes_csv):
        response = await async_client.post(
            "/api/v1/diabetes/upload",
            files={"file": ("glucose.csv", diabetes_csv.encode(), "text/csv")},
            data={"name": "Jane Doe", "age": "45", "gender": "female", "weight": "70", "height": "165"},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert data["payload"]["patients"][0]["age"] == 45
        assert data["parsed"]["overall_risk"]["level"] == "moderate"

        patients = (await async_client.get("/api/v1/patients")).json()
        assert patients["total"] == 1
        assert patients["patients"][0]["id"] == data["patient_id"]

    async def test_diabetes_upload_requires_demographics(self, async_client, diabetes_csv):
        response = await async_client.post(
            "/api/v1/diabetes/upload",
            files={"file": ("glucose.csv", diabetes_csv.encode(), "text/csv")},
        )
        assert response.status_code == 422


class TestGlucoseProxy:
    """Tests for the glucose cohort passthrough."""

    async def test_passes_status_and_body_through(self, async_client, upstream):
        upstream["/api/glucose/cohort"] = httpx.Response(
            409, text='{"detail":"busy"}', headers={"content-type": "application/json"}
        )
        response = await async_client.post("/api/glucose/cohort", json={"patients": []})

        assert response.status_code == 409
        assert response.json() == {"detail": "busy"}
        assert response.headers["content-type"].startswith("application/json")

    async def test_proxy_failure_is_500(self, async_client):
        def boom(request):
            raise httpx.ConnectError("unreachable", request=request)

        upstream_client = PredictionClient(
            PredictionClientConfig(glucose_url=f"{BASE}/api/glucose"),
            transport=httpx.MockTransport(boom),
        )
        app.dependency_overrides[get_prediction_client] = lambda: upstream_client

        response = await async_client.post("/api/glucose/cohort", json={"patients": []})
        assert response.status_code == 500
        assert "error" in response.json()


class TestPatientEndpoints:
    """Tests for stored patient and report endpoints."""

    async def _create_patient(self, async_client, diabetes_csv) -> str:
        response = await async_client.post(
            "/api/v1/diabetes/upload",
            files={"file": ("glucose.csv", diabetes_csv.encode(), "text/csv")},
            data={"name": "Jane Doe", "age": "45", "gender": "female"},
        )
        return response.json()["patient_id"]

    async def test_get_patient(self, async_client, diabetes_csv):
        patient_id = await self._create_patient(async_client, diabetes_csv)
        response = await async_client.get(f"/api/v1/patients/{patient_id}")

        assert response.status_code == 200
        assert response.json()["name"] == "Jane Doe"
        assert len(response.json()["reports"]) == 1

    async def test_unknown_patient_is_404(self, async_client):
        response = await async_client.get("/api/v1/patients/patient_missing")
        assert response.status_code == 404

    async def test_add_report(self, async_client, diabetes_csv):
        patient_id = await self._create_patient(async_client, diabetes_csv)
        response = await async_client.post(
            f"/api/v1/patients/{patient_id}/reports",
            json={"risk_factors": {"hyper_risk": 0.4}, "ai_explanation": "Manual note"},
        )
        assert response.status_code == 200
        assert response.json()["report"]["id"].startswith("report_")

        stats = (await async_client.get("/api/v1/patients/stats")).json()
        assert stats["total_reports"] == 2

    async def test_add_report_to_unknown_patient_is_404(self, async_client):
        response = await async_client.post("/api/v1/patients/patient_missing/reports", json={})
        assert response.status_code == 404

    async def test_delete_report_and_patient(self, async_client, diabetes_csv):
        patient_id = await self._create_patient(async_client, diabetes_csv)
        report_id = (await async_client.get(f"/api/v1/patients/{patient_id}")).json()["reports"][0]["id"]

        response = await async_client.delete(f"/api/v1/patients/{patient_id}/reports/{report_id}")
        assert response.status_code == 200
        assert (await async_client.get(f"/api/v1/patients/{patient_id}")).json()["reports"] == []

        response = await async_client.delete(f"/api/v1/patients/{patient_id}")
        assert response.status_code == 200
        assert (await async_client.get(f"/api/v1/patients/{patient_id}")).status_code == 404


class TestExportEndpoint:
    """Tests for CSV export."""

    async def test_export(self, async_client):
        response = await async_client.post(
            "/api/v1/patients/export",
            json={
                "condition": "maternal",
                "patients": [{"name": "Ana", "age": 31, "riskScore": 18, "riskLevel": "low"}],
            },
        )
        assert response.status_code == 200

        data = response.json()
        assert data["filename"] == "caresight-maternal-patients.csv"
        assert data["data"].split("\n")[1] == "Ana,31,,18,low,"

    async def test_export_empty_list(self, async_client):
        response = await async_client.post(
            "/api/v1/patients/export", json={"condition": "maternal", "patients": []}
        )
        assert response.status_code == 400
        assert json.loads(response.text)["success"] is False
