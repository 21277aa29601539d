"""
LLM Recommendation Module

Uses Gemini to explain already-computed predictions.
LLM is NON-DECISIONAL - it explains, it does not score or diagnose.
"""
from .gemini_client import GeminiClient, GeminiConfig, GeminiResponse
from .recommendations import (
    RecommendationClient,
    as_percent,
    build_maternal_summary,
    build_cardiovascular_summary,
    build_diabetes_summary,
    extract_risk_factors,
)

__all__ = [
    "GeminiClient",
    "GeminiConfig",
    "GeminiResponse",
    "RecommendationClient",
    "as_percent",
    "build_maternal_summary",
    "build_cardiovascular_summary",
    "build_diabetes_summary",
    "extract_risk_factors",
]
