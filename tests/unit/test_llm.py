"""
Unit Tests for LLM Recommendation Module

Tests for the Gemini client wrapper, the prompt summary builders and the
recommendation client. The LangChain model is replaced by a mock with an
async ``ainvoke``; no network calls are made.
"""
import pytest
from unittest.mock import AsyncMock, Mock

from caresight.core.llm import (
    GeminiClient,
    GeminiConfig,
    GeminiResponse,
    RecommendationClient,
    as_percent,
    build_cardiovascular_summary,
    build_diabetes_summary,
    build_maternal_summary,
    extract_risk_factors,
)
from caresight.core.prediction import CardiovascularPrediction, DiabetesAnalysis, MaternalPrediction
from caresight.utils import RecommendationError


@pytest.fixture
def gemini_config() -> GeminiConfig:
    return GeminiConfig(api_key="test-key", model="gemini-test")


class TestGeminiClient:
    """Tests for GeminiClient."""

    def test_init_without_api_key(self):
        client = GeminiClient(GeminiConfig(api_key=None))
        assert not client.is_available

    async def test_unavailable_raises(self):
        client = GeminiClient(GeminiConfig(api_key=None))
        with pytest.raises(RecommendationError, match="not configured"):
            await client.generate_async("Explain the risk.")

    async def test_generate_returns_response(self, gemini_config, mock_llm):
        client = GeminiClient(gemini_config, llm=mock_llm)
        response = await client.generate_async("Explain the risk.", system_instruction="Be brief.")

        assert isinstance(response, GeminiResponse)
        assert response.text == "- Rest\n- Hydrate"
        assert response.model == "gemini-test"
        prompt = mock_llm.ainvoke.call_args[0][0]
        assert prompt.startswith("Be brief.\n\nExplain the risk.")

    async def test_cache_hit_skips_model(self, gemini_config, mock_llm):
        client = GeminiClient(gemini_config, llm=mock_llm)
        await client.generate_async("Explain the risk.")
        cached = await client.generate_async("Explain   the risk.")

        assert mock_llm.ainvoke.await_count == 1
        assert cached.finish_reason == "CACHED"
        assert client.get_stats()["cached_prompts"] == 1

    async def test_cache_can_be_bypassed(self, gemini_config, mock_llm):
        client = GeminiClient(gemini_config, llm=mock_llm)
        await client.generate_async("Explain the risk.", use_cache=False)
        await client.generate_async("Explain the risk.", use_cache=False)
        assert mock_llm.ainvoke.await_count == 2

    async def test_model_failure_raises(self, gemini_config):
        llm = Mock()
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("quota exceeded"))
        client = GeminiClient(gemini_config, llm=llm)

        with pytest.raises(RecommendationError, match="quota exceeded"):
            await client.generate_async("Explain the risk.")

    async def test_empty_text_raises(self, gemini_config):
        llm = Mock()
        llm.ainvoke = AsyncMock(return_value=Mock(content="   ", usage_metadata=None))
        client = GeminiClient(gemini_config, llm=llm)

        with pytest.raises(RecommendationError, match="empty"):
            await client.generate_async("Explain the risk.")

    async def test_content_parts_are_joined(self, gemini_config):
        llm = Mock()
        llm.ainvoke = AsyncMock(return_value=Mock(
            content=[{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Part two."}],
            usage_metadata={"input_tokens": 12, "output_tokens": 5},
        ))
        client = GeminiClient(gemini_config, llm=llm)
        response = await client.generate_async("Explain the risk.")

        assert response.text == "Part one. Part two."
        assert response.prompt_tokens == 12
        assert response.completion_tokens == 5


class TestAsPercent:
    """Whole-percent rounding used in every prompt."""

    @pytest.mark.parametrize("value,expected", [
        (0.423, "42%"),
        (0.125, "13%"),
        (0.0, "0%"),
        (1, "100%"),
        ("0.5", "50%"),
    ])
    def test_rounds_to_whole_percent(self, value, expected):
        assert as_percent(value) == expected

    @pytest.mark.parametrize("value", [None, "abc", True, float("nan"), float("inf"), 1e308])
    def test_missing_values(self, value):
        assert as_percent(value) is None


class TestSummaryBuilders:
    """Tests for the per-domain prompt summaries."""

    def test_maternal_summary(self, maternal_response):
        record = {"Age": 29.0, "SystolicBP": 130.0, "DiastolicBP": 80.0, "BS": 7.456,
                  "BodyTemp": 98.6, "HeartRate": 76.0}
        summary = build_maternal_summary(record, MaternalPrediction.from_api(maternal_response))

        assert summary["risk_class"] == "high risk"
        assert summary["probabilities"] == {"high risk": "72%", "low risk": "10%", "mid risk": "18%"}
        assert summary["parameters"]["BS"] == 7.5
        assert [f["feature"] for f in summary["top_factors"]] == ["BS", "SystolicBP", "DiastolicBP"]

    def test_cardiovascular_summary(self, cardiovascular_response):
        patients = [
            {"patient_id": "C1", "age": 54.0, "systolic_bp": 142.0, "cholesterol": 230.0},
            {"patient_id": "C2", "age": 61.0, "systolic_bp": 150.0, "cholesterol": 260.0},
        ]
        summary = build_cardiovascular_summary(
            patients, CardiovascularPrediction.from_api(cardiovascular_response)
        )

        assert summary["total_patients"] == 2
        assert summary["high_risk_share"] == "50%"
        assert summary["risk_distribution"] == {"high": 1, "medium": 1, "low": 0}
        assert summary["most_influential_factors"] == ["cholesterol", "systolic_bp"]
        assert summary["highest_risk_patients"][0] == {"patient_id": "C2", "risk": "75%", "level": "High"}
        assert summary["cohort_averages"]["systolic_bp"] == 146

    def test_cardiovascular_summary_skips_non_finite_values(self, cardiovascular_response):
        patients = [
            {"patient_id": "C1", "age": 54, "cholesterol": float("inf")},
            {"patient_id": "C2", "age": 61, "cholesterol": 260},
        ]
        prediction = CardiovascularPrediction.from_api(cardiovascular_response)
        prediction.cohort_statistics["high_risk_percentage"] = float("inf")

        summary = build_cardiovascular_summary(patients, prediction)
        assert "cholesterol" not in summary["cohort_averages"]
        assert summary["cohort_averages"]["age"] == 58
        assert "high_risk_share" not in summary

    def test_diabetes_summary(self, diabetes_response, demographics):
        summary = build_diabetes_summary(DiabetesAnalysis(diabetes_response), demographics, "90d")

        assert summary["demographics"]["name"] == "Jane Doe"
        assert summary["bmi"] == 25.7
        assert summary["avg_glucose"] == 145
        assert summary["hyper_risk"] == "60%"
        # No horizon-specific value -> mean of the base component row
        assert summary["volatility"] == "40%"
        assert summary["hypo_risk"] == "10%"
        assert summary["horizon_risk"] == "55%"
        assert summary["overall_risk_score"] == "42%"
        assert summary["context_factors"] == "insulin adherence: 0.85 (slightly increases risk)"
        assert summary["lifestyle"] == {"smoking_status": "unknown", "alcohol_use": "unknown"}

    def test_diabetes_summary_without_demographics(self, diabetes_response):
        summary = build_diabetes_summary(DiabetesAnalysis(diabetes_response))
        assert summary["demographics"]["name"] == "Jane Doe"
        assert "bmi" not in summary

    def test_diabetes_summary_of_empty_response(self):
        summary = build_diabetes_summary(DiabetesAnalysis({}))
        assert summary["demographics"]["name"] == "Patient"
        assert "avg_glucose" not in summary

    def test_extract_risk_factors(self, diabetes_response):
        factors = extract_risk_factors(DiabetesAnalysis(diabetes_response), "90d")
        assert factors["hyper_risk"] == pytest.approx(0.6)
        assert factors["volatility_risk"] == pytest.approx(0.4)
        assert factors["trend_high_risk"] == pytest.approx(0.2)
        assert "trend_low_risk" not in factors


class TestRecommendationClient:
    """Tests for RecommendationClient."""

    async def test_maternal_prompt_has_rounded_values(self, recommendation_client, mock_llm, maternal_response):
        record = {"Age": 29.0, "SystolicBP": 130.0, "DiastolicBP": 80.0, "BS": 7.5,
                  "BodyTemp": 98.6, "HeartRate": 76.0}
        text = await recommendation_client.maternal_recommendations(
            record, MaternalPrediction.from_api(maternal_response)
        )

        assert text == "- Rest\n- Hydrate"
        prompt = mock_llm.ainvoke.call_args[0][0]
        assert "72%" in prompt
        assert "0.7234" not in prompt
        assert "<180 words" in prompt

    async def test_diabetes_insights(self, recommendation_client, mock_llm, diabetes_response, demographics):
        await recommendation_client.diabetes_insights(DiabetesAnalysis(diabetes_response), demographics)
        prompt = mock_llm.ainvoke.call_args[0][0]
        assert "400-550 words" in prompt
        assert "25.7" in prompt

    async def test_failure_carries_domain(self, offline_recommendation_client, cardiovascular_response):
        with pytest.raises(RecommendationError) as exc_info:
            await offline_recommendation_client.cardiovascular_recommendations(
                [], CardiovascularPrediction.from_api(cardiovascular_response)
            )
        assert exc_info.value.domain == "cardiovascular"

    async def test_summary_failure_is_a_recommendation_error(self, recommendation_client, mock_llm):
        prediction = CardiovascularPrediction(cohort_statistics={"total_patients": "many"})
        with pytest.raises(RecommendationError) as exc_info:
            await recommendation_client.cardiovascular_recommendations([], prediction)

        assert exc_info.value.domain == "cardiovascular"
        mock_llm.ainvoke.assert_not_called()
