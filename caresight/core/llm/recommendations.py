"""
Recommendation Client

Builds a compact, rounded summary of a prediction and asks Gemini for
markdown recommendations. The text generator only ever sees whole-percent
risks and rounded vitals, never raw high-precision floats.

This step is best effort: every failure is raised as RecommendationError so
upload flows can log it and continue without recommendations.
"""
from __future__ import annotations

import json
import math
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from caresight.core.ingestion.payload import Demographics
from caresight.core.prediction.models import (
    BASE_RISK_COMPONENTS,
    CardiovascularPrediction,
    DiabetesAnalysis,
    MaternalPrediction,
    to_number,
)
from caresight.core.llm.gemini_client import GeminiClient
from caresight.utils import get_logger, RecommendationError

logger = get_logger(__name__)


SYSTEM_INSTRUCTION = """You are a clinical decision support assistant. You EXPLAIN risk predictions that were already computed by validated models.

CRITICAL CONSTRAINTS:
1. Do NOT assign new risk scores or change the ones provided
2. Do NOT make diagnoses
3. Always recommend consulting a healthcare professional
4. Use general safety guidance only"""


MATERNAL_PROMPT = """Given maternal vital parameters, a model's risk classification, probabilities, and SHAP explanations, write concise, patient-friendly and clinician-actionable recommendations. Include:
- 3-5 personalized recommendations
- Monitoring suggestions tied to the top SHAP factors
- When to escalate or seek immediate care if relevant
Keep to <180 words. Use bullet points. Avoid duplicating data. Use US units and general safety guidance only.

Patient summary:
{summary}
"""

CARDIOVASCULAR_PROMPT = """Given a cardiovascular cohort summary produced by a risk model, write recommendations for the care team in markdown. Include:
- A 2-3 sentence overview of the cohort's risk profile
- 3-5 cohort-level interventions tied to the most influential factors
- Follow-up priorities for the highest-risk patients
- Red flags that warrant urgent review
Keep to <250 words. Use headings and bullet points.

Cohort summary:
{summary}
"""

DIABETES_PROMPT = """You are a diabetes care specialist. Create a friendly, plain-language report in **markdown** that an average person can easily understand. Avoid technical jargon; explain terms simply.

Provide:
- A warm greeting and a short, clear summary of the person's current diabetes risk using the actual numbers (use a few helpful emojis).
- 3-5 personalized insights in simple words explaining what's driving risk (e.g., average glucose, highs/lows, volatility).
- 5-7 day-to-day actions the person can start today (sleep, meals, activity, hydration, medication adherence, stress, routine). Use checkboxes.
- A lifestyle section that always mentions smoking and alcohol, even if not in the data, with practical guidance to quit smoking and concrete weekly alcohol limits.
- A brief note for the clinician with 2-3 intervention ideas (clearly labeled for clinicians).
- Clear guidance on when to seek medical help, with concrete examples.

If BMI is present and high or low, explain what that means and how it relates to glucose.

Patient Summary:
{summary}

Writing rules:
- Keep language friendly and encouraging.
- Reference the real numbers but explain them simply.
- Use short sections with headings, bold highlights, and lists.
- Aim for ~400-550 words.
"""


# ── Rounding helpers ────────────────────────────────────────────────────

def _round_half_up(value: float) -> Optional[int]:
    if not math.isfinite(value):
        return None
    return int(math.floor(value + 0.5))


def as_percent(value: Any) -> Optional[str]:
    """0.423 -> "42%"; None when the value is missing or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    number = to_number(value, default=math.nan)
    rounded = _round_half_up(number * 100)
    return None if rounded is None else f"{rounded}%"


def _round_or_none(value: Optional[float], digits: int = 0) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return _round_half_up(value) if digits == 0 else round(value, digits)


def _compact(summary: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in summary.items() if v is not None and v != ""}


def _to_json(summary: Dict[str, Any]) -> str:
    return json.dumps(summary, indent=2, default=str)


# ── Summary builders ────────────────────────────────────────────────────

def build_maternal_summary(record: Dict[str, float], prediction: MaternalPrediction) -> Dict[str, Any]:
    return _compact({
        "parameters": {k: _round_or_none(v, 1) for k, v in record.items()},
        "risk_class": prediction.prediction,
        "probabilities": {label: as_percent(p) for label, p in prediction.probabilities.items()},
        "top_factors": [
            {"feature": f["feature"], "contribution": round(f["value"], 2)}
            for f in prediction.top_shap_factors(3)
        ],
    })


def _mean(values: Sequence[float]) -> Optional[float]:
    clean = [v for v in values if v]
    return float(np.mean(clean)) if clean else None


def _share(value: Any) -> Optional[str]:
    rounded = _round_half_up(to_number(value, default=math.nan))
    return None if rounded is None else f"{rounded}%"


def build_cardiovascular_summary(
    patients: List[Dict[str, Any]],
    prediction: CardiovascularPrediction
) -> Dict[str, Any]:
    stats = prediction.cohort_statistics

    shap_totals: Dict[str, List[float]] = {}
    for p in prediction.patient_predictions:
        for feature, value in p.shap_values.items():
            shap_totals.setdefault(feature, []).append(abs(value))
    top_features = sorted(
        ((f, float(np.mean(v))) for f, v in shap_totals.items()),
        key=lambda kv: kv[1],
        reverse=True,
    )[:5]

    highest = sorted(prediction.patient_predictions, key=lambda p: p.risk_score, reverse=True)[:5]

    return _compact({
        "total_patients": _round_half_up(stats.get("total_patients", len(patients))),
        "average_risk": as_percent(stats.get("average_risk_score")),
        "high_risk_share": _share(stats.get("high_risk_percentage")),
        "risk_distribution": {
            "high": _round_half_up(stats.get("high_risk_patients", 0)),
            "medium": _round_half_up(stats.get("medium_risk_patients", 0)),
            "low": _round_half_up(stats.get("low_risk_patients", 0)),
        },
        "cohort_averages": _compact({
            "age": _round_or_none(_mean([p.get("age", 0) for p in patients])),
            "systolic_bp": _round_or_none(_mean([p.get("systolic_bp", 0) for p in patients])),
            "diastolic_bp": _round_or_none(_mean([p.get("diastolic_bp", 0) for p in patients])),
            "cholesterol": _round_or_none(_mean([p.get("cholesterol", 0) for p in patients])),
            "glucose": _round_or_none(_mean([p.get("glucose", 0) for p in patients])),
        }),
        "most_influential_factors": [f for f, _ in top_features],
        "highest_risk_patients": [
            {"patient_id": p.patient_id, "risk": as_percent(p.risk_score), "level": p.risk_level}
            for p in highest
        ],
    })


def _bmi(weight_kg: Any, height_cm: Any) -> Optional[float]:
    if not isinstance(weight_kg, (int, float)) or not isinstance(height_cm, (int, float)):
        return None
    if height_cm <= 0:
        return None
    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 1)


def _component_level(analysis: DiabetesAnalysis, horizon_risk: Dict[str, Any], name: str) -> Optional[float]:
    """Horizon-specific component, falling back to the mean of the base component row."""
    if horizon_risk.get(name) is not None:
        return to_number(horizon_risk[name])
    rows = analysis.base_risk_components.get(name)
    if isinstance(rows, list) and rows and isinstance(rows[0], list):
        values = [to_number(v) for v in rows[0]]
        return float(np.mean(values)) if values else None
    return None


def build_diabetes_summary(
    analysis: DiabetesAnalysis,
    demographics: Optional[Demographics] = None,
    selected_horizon: str = "90d",
    recent_trends: Optional[str] = None
) -> Dict[str, Any]:
    meta = analysis.prediction_metadata or {}
    info = demographics.to_dict() if demographics else {}

    name = info.get("name") or meta.get("name") or "Patient"
    age = info.get("age") or meta.get("age") or "N/A"
    gender = info.get("gender") or meta.get("gender") or "N/A"
    height = info.get("height") or meta.get("height")
    weight = info.get("weight") or meta.get("weight")

    horizon_risk = analysis.horizon_risk(selected_horizon)

    p50 = [to_number(point.get("p50")) for point in analysis.forecast_data]
    avg_glucose = float(np.mean(p50)) if p50 else None

    context = []
    for factor, detail in analysis.context_factors.items():
        if isinstance(detail, dict):
            impact = str(detail.get("impact", "unknown")).replace("_", " ")
            context.append(f"{factor.replace('_', ' ')}: {detail.get('value')} ({impact})")
        else:
            context.append(f"{factor.replace('_', ' ')}: {detail}")

    return _compact({
        "demographics": _compact({
            "name": name,
            "age": age,
            "gender": gender,
            "height_cm": height,
            "weight_kg": weight,
        }),
        "bmi": _bmi(weight, height),
        "selected_horizon": selected_horizon,
        "avg_glucose": _round_or_none(avg_glucose),
        "volatility": as_percent(_component_level(analysis, horizon_risk, "volatility_risk")),
        "hyper_risk": as_percent(_component_level(analysis, horizon_risk, "hyper_risk")),
        "hypo_risk": as_percent(_component_level(analysis, horizon_risk, "hypo_risk")),
        "horizon_risk": as_percent(horizon_risk.get("risk_score")),
        "horizon_risk_level": horizon_risk.get("risk_level"),
        "overall_risk_level": analysis.overall_risk_level,
        "overall_risk_score": as_percent(analysis.overall_risk_score),
        "context_factors": ", ".join(context),
        "recent_trends": recent_trends,
        "lifestyle": {"smoking_status": "unknown", "alcohol_use": "unknown"},
    })


def extract_risk_factors(analysis: DiabetesAnalysis, selected_horizon: str = "90d") -> Dict[str, float]:
    """Numeric risk components for a stored report (horizon first, base fallback)."""
    horizon_risk = analysis.horizon_risk(selected_horizon)
    factors = {}
    for name in BASE_RISK_COMPONENTS:
        value = _component_level(analysis, horizon_risk, name)
        if value is not None:
            factors[name] = value
    return factors


# ── Client ──────────────────────────────────────────────────────────────

class RecommendationClient:
    """Generates markdown recommendations for each prediction domain."""

    def __init__(self, gemini: Optional[GeminiClient] = None):
        self.gemini = gemini or GeminiClient()

    @property
    def is_available(self) -> bool:
        return self.gemini.is_available

    async def _generate(self, prompt: str, domain: str) -> str:
        try:
            response = await self.gemini.generate_async(prompt, system_instruction=SYSTEM_INSTRUCTION)
        except RecommendationError as e:
            raise RecommendationError(e.message, domain=domain) from e
        logger.info(
            f"Generated {domain} recommendations: {len(response.text.split())} words "
            f"in {response.latency_ms:.0f}ms"
        )
        return response.text

    @staticmethod
    def _render(template: str, builder: Callable[..., Dict[str, Any]], domain: str, *args: Any) -> str:
        """Build the summary and fill the prompt; any failure is a RecommendationError."""
        try:
            return template.format(summary=_to_json(builder(*args)))
        except Exception as e:
            logger.error(f"Failed to summarize {domain} prediction: {e}")
            raise RecommendationError(f"Failed to build {domain} summary: {e}", domain=domain) from e

    async def maternal_recommendations(
        self,
        record: Dict[str, float],
        prediction: MaternalPrediction
    ) -> str:
        prompt = self._render(MATERNAL_PROMPT, build_maternal_summary, "maternal", record, prediction)
        return await self._generate(prompt, "maternal")

    async def cardiovascular_recommendations(
        self,
        patients: List[Dict[str, Any]],
        prediction: CardiovascularPrediction
    ) -> str:
        prompt = self._render(
            CARDIOVASCULAR_PROMPT, build_cardiovascular_summary, "cardiovascular", patients, prediction
        )
        return await self._generate(prompt, "cardiovascular")

    async def diabetes_insights(
        self,
        analysis: DiabetesAnalysis,
        demographics: Optional[Demographics] = None,
        selected_horizon: str = "90d",
        recent_trends: Optional[str] = None
    ) -> str:
        prompt = self._render(
            DIABETES_PROMPT, build_diabetes_summary, "diabetes",
            analysis, demographics, selected_horizon, recent_trends
        )
        return await self._generate(prompt, "diabetes")
