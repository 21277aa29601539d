"""
Prediction Module

HTTP client for the external prediction services and typed views over
their responses. Risk scores and levels are computed upstream; nothing
here recomputes them.
"""
from .client import PredictionClient, PredictionClientConfig, SeriesOutcome
from .models import (
    PredictionDomain,
    DiabetesAnalysis,
    DiabetesPrediction,
    ParsedDiabetesData,
    MaternalPrediction,
    CardiovascularPrediction,
    CardiovascularPatientPrediction,
    parse_diabetes_response,
    parse_prediction,
)

__all__ = [
    "PredictionClient",
    "PredictionClientConfig",
    "SeriesOutcome",
    "PredictionDomain",
    "DiabetesAnalysis",
    "DiabetesPrediction",
    "ParsedDiabetesData",
    "MaternalPrediction",
    "CardiovascularPrediction",
    "CardiovascularPatientPrediction",
    "parse_diabetes_response",
    "parse_prediction",
]
