"""
Utilities Package - Logging and Exception Handling
"""
from .logging import get_logger, setup_logging, log_api_response
from .exceptions import (
    CareSightError,
    InputError,
    ValidationError,
    NetworkError,
    ApiError,
    RecommendationError,
    PersistenceError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "log_api_response",
    "CareSightError",
    "InputError",
    "ValidationError",
    "NetworkError",
    "ApiError",
    "RecommendationError",
    "PersistenceError",
]
