"""
Prediction Response Models

Typed, total views over the JSON returned by the three prediction services.
Each domain has its own schema, so each gets its own model:

- MaternalPrediction        single class + probabilities + SHAP map
- CardiovascularPrediction  per-patient predictions + cohort statistics
- DiabetesAnalysis          glucose forecast + multi-horizon risk assessment

None of the accessors raise. A missing or malformed path reads as None for
scalars, {} for mappings and [] for sequences.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from caresight.utils import get_logger

logger = get_logger(__name__)

BASE_RISK_COMPONENTS = (
    "hyper_risk",
    "hypo_risk",
    "trend_high_risk",
    "trend_low_risk",
    "volatility_risk",
)


class PredictionDomain(str, Enum):
    """Prediction service families."""
    MATERNAL = "maternal"
    CARDIOVASCULAR = "cardiovascular"
    DIABETES = "diabetes"


# ── Safe navigation helpers ─────────────────────────────────────────────

def _dig(obj: Any, *keys: str) -> Any:
    """Walk nested dicts; None as soon as a step is not a dict or is absent."""
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _index(seq: Any, i: int) -> Any:
    if isinstance(seq, list) and 0 <= i < len(seq):
        return seq[i]
    return None


def to_number(value: Any, default: float = 0.0) -> float:
    """Lenient numeric coercion; anything unusable becomes ``default``."""
    if value is None:
        return default
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return default if math.isnan(number) else number


# ── Diabetes ────────────────────────────────────────────────────────────

class DiabetesAnalysis:
    """
    Read-only view over a diabetes prediction response.

    Every property is recomputed from ``raw`` on access, so repeated reads
    always agree and the wrapped response is never mutated.
    """

    def __init__(self, raw: Any):
        self.raw = raw

    @classmethod
    def from_api(cls, raw: Any) -> "DiabetesAnalysis":
        return cls(raw)

    @property
    def patient_id(self) -> Optional[Union[int, str]]:
        patient_id = _dig(self.raw, "patient_id")
        if patient_id is None:
            patient_id = _dig(self.raw, "prediction_metadata", "patient_id")
        return patient_id

    @property
    def pipeline_timestamp(self) -> Optional[str]:
        return _dig(self.raw, "pipeline_timestamp")

    @property
    def model_info(self) -> Optional[Dict[str, Any]]:
        value = _dig(self.raw, "model_info")
        return value if isinstance(value, dict) else None

    @property
    def prediction_metadata(self) -> Optional[Dict[str, Any]]:
        value = _dig(self.raw, "prediction_metadata")
        return value if isinstance(value, dict) else None

    @property
    def glucose_predictions(self) -> Optional[Dict[str, Any]]:
        value = _dig(self.raw, "glucose_predictions")
        return value if isinstance(value, dict) else None

    @property
    def risk_assessment(self) -> Optional[Dict[str, Any]]:
        value = _dig(self.raw, "risk_assessment")
        return value if isinstance(value, dict) else None

    @property
    def overall_risk_score(self) -> Optional[float]:
        value = _dig(self.raw, "risk_assessment", "overall_risk_score")
        return None if value is None else to_number(value)

    @property
    def overall_risk_level(self) -> Optional[str]:
        value = _dig(self.raw, "risk_assessment", "overall_risk_level")
        return None if value is None else str(value)

    @property
    def recommendations(self) -> List[str]:
        return [str(r) for r in _as_list(_dig(self.raw, "risk_assessment", "recommendations"))]

    @property
    def context_factors(self) -> Dict[str, Any]:
        return _as_dict(_dig(self.raw, "risk_assessment", "context_factors"))

    @property
    def base_risk_components(self) -> Dict[str, Any]:
        return _as_dict(
            _dig(self.raw, "risk_assessment", "detailed_explanations", "base_risk_components")
        )

    @property
    def horizon_risks(self) -> Dict[str, Any]:
        return _as_dict(_dig(self.raw, "risk_assessment", "horizon_risks"))

    @property
    def forecast_data(self) -> List[Dict[str, Any]]:
        """[{day, p10, p50, p90}] zipped by horizon index."""
        pred = self.glucose_predictions
        if not pred or not isinstance(pred.get("horizons_days"), list):
            return []
        return [
            {
                "day": day,
                "p10": _index(pred.get("p10_quantile"), i),
                "p50": _index(pred.get("p50_quantile"), i),
                "p90": _index(pred.get("p90_quantile"), i),
            }
            for i, day in enumerate(pred["horizons_days"])
        ]

    @property
    def horizon_risk_data(self) -> List[Dict[str, Any]]:
        """[{horizon: "7", risk, level}] from ``horizon_<N>d`` entries."""
        return [
            {
                "horizon": horizon_label(key),
                "risk": to_number(_dig(value, "risk_score")),
                "level": _level(_dig(value, "risk_level")),
            }
            for key, value in self.horizon_risks.items()
        ]

    @property
    def patient_analyses(self) -> List["DiabetesAnalysis"]:
        """Per-patient views when the response is a cohort (``patient_predictions``)."""
        return [
            DiabetesAnalysis(entry)
            for entry in _as_list(_dig(self.raw, "patient_predictions"))
            if isinstance(entry, dict)
        ]

    def horizon_risk(self, horizon: str) -> Dict[str, Any]:
        """Risk block for ``"90d"``-style or ``"horizon_90d"``-style keys."""
        key = horizon if horizon.startswith("horizon_") else f"horizon_{horizon}"
        return _as_dict(self.horizon_risks.get(key))


def horizon_label(key: str) -> str:
    """``horizon_7d`` -> ``7`` (first occurrence of each token only)."""
    return str(key).replace("horizon_", "", 1).replace("d", "", 1)


def _level(value: Any) -> str:
    return "unknown" if value is None else str(value)


@dataclass
class ParsedDiabetesData:
    """Chart-ready projection of a diabetes response."""
    forecast_data: List[Dict[str, Any]] = field(default_factory=list)
    horizon_risk_data: List[Dict[str, Any]] = field(default_factory=list)
    overall_risk: Optional[Dict[str, Any]] = None
    context_factors: Dict[str, Any] = field(default_factory=dict)
    base_risk_components: Dict[str, List[Any]] = field(
        default_factory=lambda: {name: [] for name in BASE_RISK_COMPONENTS}
    )
    horizon_risks: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    model_info: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "forecast_data": self.forecast_data,
            "horizon_risk_data": self.horizon_risk_data,
            "overall_risk": self.overall_risk,
            "context_factors": self.context_factors,
            "base_risk_components": self.base_risk_components,
            "horizon_risks": self.horizon_risks,
            "recommendations": self.recommendations,
            "model_info": self.model_info,
        }


@dataclass
class DiabetesPrediction:
    """Snapshot of a diabetes response with its top-level sections split out."""
    patient_id: Any = None
    pipeline_timestamp: Optional[str] = None
    prediction_metadata: Optional[Dict[str, Any]] = None
    glucose_predictions: Optional[Dict[str, Any]] = None
    model_info: Optional[Dict[str, Any]] = None
    risk_assessment: Optional[Dict[str, Any]] = None
    raw_api_response: Any = None

    @classmethod
    def from_api(cls, api_response: Any) -> Optional["DiabetesPrediction"]:
        """Build from raw JSON; None (with a warning) when it is not an object."""
        if not isinstance(api_response, dict):
            logger.warning(
                f"Invalid diabetes API response for parsing: {type(api_response).__name__}"
            )
            return None

        analysis = DiabetesAnalysis(api_response)
        return cls(
            patient_id=analysis.patient_id,
            pipeline_timestamp=analysis.pipeline_timestamp,
            prediction_metadata=analysis.prediction_metadata,
            glucose_predictions=analysis.glucose_predictions,
            model_info=analysis.model_info,
            risk_assessment=analysis.risk_assessment,
            raw_api_response=api_response,
        )

    @property
    def analysis(self) -> DiabetesAnalysis:
        return DiabetesAnalysis(self.raw_api_response)

    def get_forecast_data(self) -> List[Dict[str, Any]]:
        return self.analysis.forecast_data

    def get_risk_summary(self) -> Optional[Dict[str, Any]]:
        if not self.risk_assessment:
            return None
        return {
            "overall_risk_score": self.risk_assessment.get("overall_risk_score"),
            "overall_risk_level": self.risk_assessment.get("overall_risk_level"),
            "recommendations": self.analysis.recommendations,
        }

    def to_parsed_data(self) -> ParsedDiabetesData:
        analysis = self.analysis
        score = analysis.overall_risk_score
        level = analysis.overall_risk_level

        base = analysis.base_risk_components
        # Components arrive as 2-D arrays; charts use the first row
        components = {}
        for name in BASE_RISK_COMPONENTS:
            first_row = _index(base.get(name), 0)
            components[name] = first_row if isinstance(first_row, list) else []

        return ParsedDiabetesData(
            forecast_data=analysis.forecast_data,
            horizon_risk_data=analysis.horizon_risk_data,
            overall_risk={"score": score, "level": level} if score is not None and level is not None else None,
            context_factors=analysis.context_factors,
            base_risk_components=components,
            horizon_risks=analysis.horizon_risks,
            recommendations=analysis.recommendations,
            model_info=self.model_info,
        )


def parse_diabetes_response(response: Any) -> Optional[DiabetesPrediction]:
    prediction = DiabetesPrediction.from_api(response)
    if prediction is None:
        logger.warning("Failed to parse diabetes response into DiabetesPrediction")
    return prediction


# ── Maternal ────────────────────────────────────────────────────────────

MATERNAL_CLASSES = ("low risk", "mid risk", "high risk")


@dataclass
class MaternalPrediction:
    """Maternal risk classification."""
    prediction: Optional[str] = None
    probabilities: Dict[str, float] = field(default_factory=dict)
    shap_values: Dict[str, float] = field(default_factory=dict)
    raw: Any = None

    @classmethod
    def from_api(cls, raw: Any) -> "MaternalPrediction":
        prediction = _dig(raw, "prediction")
        return cls(
            prediction=None if prediction is None else str(prediction),
            probabilities={k: to_number(v) for k, v in _as_dict(_dig(raw, "probabilities")).items()},
            shap_values={k: to_number(v) for k, v in _as_dict(_dig(raw, "shap_values")).items()},
            raw=raw,
        )

    def probability(self, label: str) -> float:
        return self.probabilities.get(label, 0.0)

    def top_shap_factors(self, n: int = 3) -> List[Dict[str, Any]]:
        """Features ranked by absolute SHAP contribution."""
        ranked = sorted(self.shap_values.items(), key=lambda kv: abs(kv[1]), reverse=True)
        return [{"feature": k, "value": v} for k, v in ranked[:n]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prediction": self.prediction,
            "probabilities": self.probabilities,
            "shap_values": self.shap_values,
        }


# ── Cardiovascular ──────────────────────────────────────────────────────

@dataclass
class CardiovascularPatientPrediction:
    """One patient's entry in a cardiovascular cohort response."""
    patient_id: Optional[str] = None
    prediction: Optional[str] = None
    risk_level: str = "unknown"
    risk_score: float = 0.0
    probabilities: Dict[str, float] = field(default_factory=dict)
    shap_values: Dict[str, float] = field(default_factory=dict)
    model_info: Optional[Dict[str, Any]] = None

    @classmethod
    def from_api(cls, raw: Any) -> "CardiovascularPatientPrediction":
        patient_id = _dig(raw, "patient_id")
        prediction = _dig(raw, "prediction")
        model_info = _dig(raw, "model_info")
        return cls(
            patient_id=None if patient_id is None else str(patient_id),
            prediction=None if prediction is None else str(prediction),
            risk_level=_level(_dig(raw, "risk_level")),
            risk_score=to_number(_dig(raw, "risk_score")),
            probabilities={k: to_number(v) for k, v in _as_dict(_dig(raw, "probabilities")).items()},
            shap_values={k: to_number(v) for k, v in _as_dict(_dig(raw, "shap_values")).items()},
            model_info=model_info if isinstance(model_info, dict) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "prediction": self.prediction,
            "risk_level": self.risk_level,
            "risk_score": self.risk_score,
            "probabilities": self.probabilities,
            "shap_values": self.shap_values,
            "model_info": self.model_info,
        }


@dataclass
class CardiovascularPrediction:
    """Cardiovascular cohort response."""
    cohort_statistics: Dict[str, float] = field(default_factory=dict)
    patient_predictions: List[CardiovascularPatientPrediction] = field(default_factory=list)
    raw: Any = None

    @classmethod
    def from_api(cls, raw: Any) -> "CardiovascularPrediction":
        return cls(
            cohort_statistics={
                k: to_number(v) for k, v in _as_dict(_dig(raw, "cohort_statistics")).items()
            },
            patient_predictions=[
                CardiovascularPatientPrediction.from_api(p)
                for p in _as_list(_dig(raw, "patient_predictions"))
                if isinstance(p, dict)
            ],
            raw=raw,
        )

    def high_risk_patients(self) -> List[CardiovascularPatientPrediction]:
        return [p for p in self.patient_predictions if p.risk_level.lower() == "high"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cohort_statistics": self.cohort_statistics,
            "patient_predictions": [p.to_dict() for p in self.patient_predictions],
        }


PredictionResponse = Union[MaternalPrediction, CardiovascularPrediction, DiabetesAnalysis]


def parse_prediction(domain: PredictionDomain, raw: Any) -> PredictionResponse:
    """Dispatch raw JSON to the model for its domain."""
    domain = PredictionDomain(domain)
    if domain is PredictionDomain.MATERNAL:
        return MaternalPrediction.from_api(raw)
    if domain is PredictionDomain.CARDIOVASCULAR:
        return CardiovascularPrediction.from_api(raw)
    return DiabetesAnalysis.from_api(raw)
