"""
Pytest Configuration and Fixtures

Shared fixtures for CareSight backend tests.
"""
import pytest
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict
from unittest.mock import AsyncMock, Mock
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from caresight.core.ingestion import Demographics
from caresight.core.llm import GeminiClient, GeminiConfig, RecommendationClient
from caresight.core.storage import InMemoryStorage, PatientStore


MATERNAL_CSV = (
    "Age,SystolicBP,DiastolicBP,BS,BodyTemp,HeartRate\n"
    "29,130,80,7.5,98.6,76\n"
    "31,140,90,8.1,99.1,82\n"
)

CARDIOVASCULAR_CSV = (
    "patient_id,age,gender,diabetes,hypertension,systolic_bp,diastolic_bp,heart_rate,cholesterol,glucose\n"
    "C1,54,Male,Yes,No,142,91,78,230,110\n"
    "C2,61,Female,No,Yes,150,95,84,260,130\n"
)

DIABETES_CSV = (
    "date,glucose,missed_insulin,exercise_flag,pct_hypo,pct_hyper,insulin_adherence,sleep_quality\n"
    "2024-01-01,140,0,1,0.05,0.30,0.9,0.7\n"
    "2024-01-02,155,1,0,0.02,45,0.85,\n"
)


@pytest.fixture
def fixed_now() -> datetime:
    """A fixed UTC instant for deterministic timestamps."""
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def demographics() -> Demographics:
    """Uploader-entered patient details."""
    return Demographics(name="Jane Doe", age=45, gender="female", weight=70.0, height=165.0)


@pytest.fixture
def maternal_response() -> Dict[str, Any]:
    return {
        "prediction": "high risk",
        "probabilities": {"high risk": 0.7234, "low risk": 0.1, "mid risk": 0.1766},
        "shap_values": {
            "Age": 0.02,
            "BS": 0.41,
            "BodyTemp": -0.05,
            "DiastolicBP": 0.12,
            "HeartRate": 0.01,
            "SystolicBP": 0.3,
        },
    }


@pytest.fixture
def cardiovascular_response() -> Dict[str, Any]:
    return {
        "cohort_statistics": {
            "total_patients": 2,
            "high_risk_patients": 1,
            "medium_risk_patients": 1,
            "low_risk_patients": 0,
            "average_risk_score": 0.615,
            "high_risk_percentage": 50.0,
        },
        "patient_predictions": [
            {
                "patient_id": "C1",
                "prediction": "medium",
                "risk_level": "Medium",
                "risk_score": 0.48,
                "probabilities": {"low": 0.2, "medium": 0.5, "high": 0.3},
                "shap_values": {"cholesterol": 0.2, "systolic_bp": 0.15},
            },
            {
                "patient_id": "C2",
                "prediction": "high",
                "risk_level": "High",
                "risk_score": 0.75,
                "probabilities": {"low": 0.05, "medium": 0.2, "high": 0.75},
                "shap_values": {"cholesterol": 0.3, "systolic_bp": 0.25},
            },
        ],
    }


@pytest.fixture
def diabetes_response() -> Dict[str, Any]:
    """Single-patient glucose forecast response."""
    return {
        "patient_id": "Jane Doe",
        "pipeline_timestamp": "2024-06-01T12:00:05Z",
        "prediction_metadata": {"name": "Jane Doe", "age": 45, "gender": "female"},
        "model_info": {"name": "glucose-tft", "version": "2.1"},
        "glucose_predictions": {
            "horizons_days": [7, 14, 30],
            "p10_quantile": [110.0, 112.0, 115.0],
            "p50_quantile": [140.0, 145.0, 150.0],
            "p90_quantile": [170.0, 178.0],
        },
        "risk_assessment": {
            "overall_risk_score": 0.4249,
            "overall_risk_level": "moderate",
            "recommendations": ["Monitor fasting glucose"],
            "context_factors": {
                "insulin_adherence": {"value": 0.85, "impact": "slightly_increases_risk"},
            },
            "horizon_risks": {
                "horizon_7d": {"risk_score": 0.3, "risk_level": "low"},
                "horizon_90d": {"risk_score": 0.55, "risk_level": "moderate", "hyper_risk": 0.6},
            },
            "detailed_explanations": {
                "base_risk_components": {
                    "hyper_risk": [[0.5, 0.7]],
                    "hypo_risk": [[0.1, 0.1]],
                    "trend_high_risk": [[0.2]],
                    "trend_low_risk": [],
                    "volatility_risk": [[0.3, 0.5]],
                },
            },
        },
    }


@pytest.fixture
def mock_llm() -> Mock:
    """LangChain chat model stand-in with an async ``ainvoke``."""
    llm = Mock()
    llm.ainvoke = AsyncMock(return_value=Mock(content="- Rest\n- Hydrate", usage_metadata=None))
    return llm


@pytest.fixture
def recommendation_client(mock_llm) -> RecommendationClient:
    return RecommendationClient(GeminiClient(GeminiConfig(api_key="test-key"), llm=mock_llm))


@pytest.fixture
def offline_recommendation_client() -> RecommendationClient:
    """Recommendations with no API key configured."""
    return RecommendationClient(GeminiClient(GeminiConfig(api_key=None)))


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def patient_store(storage, fixed_now) -> PatientStore:
    return PatientStore(storage, clock=lambda: fixed_now)


@pytest.fixture
def maternal_csv() -> str:
    return MATERNAL_CSV


@pytest.fixture
def cardiovascular_csv() -> str:
    return CARDIOVASCULAR_CSV


@pytest.fixture
def diabetes_csv() -> str:
    return DIABETES_CSV
