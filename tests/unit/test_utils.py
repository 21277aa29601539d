"""
Unit Tests for Utilities

Tests for the exception hierarchy and the API response trace logger.
"""
import logging

from caresight.utils import (
    ApiError,
    CareSightError,
    InputError,
    NetworkError,
    PersistenceError,
    RecommendationError,
    ValidationError,
    get_logger,
    log_api_response,
)
from caresight.utils.logging import StructuredFormatter


class TestExceptions:
    """Tests for the error hierarchy."""

    def test_codes(self):
        assert InputError("x").code == "INPUT_ERROR"
        assert ValidationError("x").code == "VALIDATION_ERROR"
        assert NetworkError("x").code == "NETWORK_ERROR"
        assert ApiError(500, "x").code == "API_ERROR"
        assert RecommendationError("x").code == "RECOMMENDATION_ERROR"
        assert PersistenceError("x").code == "PERSISTENCE_ERROR"

    def test_hierarchy(self):
        assert issubclass(ValidationError, InputError)
        for cls in (InputError, NetworkError, ApiError, RecommendationError, PersistenceError):
            assert issubclass(cls, CareSightError)

    def test_network_prefix_not_doubled(self):
        assert NetworkError("timeout").message == "Network error: timeout"
        assert NetworkError("Network error: timeout").message == "Network error: timeout"

    def test_api_error_message(self):
        error = ApiError(404, "not here", url="http://x/api", reason="Not Found")
        assert error.message == "API request failed: 404 Not Found - not here"
        assert error.to_dict() == {
            "error": "API_ERROR",
            "message": "API request failed: 404 Not Found - not here",
            "details": {"status": 404, "body": "not here", "url": "http://x/api"},
        }

    def test_input_error_fields(self):
        error = InputError("Missing", fields=["Age"])
        assert error.fields == ["Age"]
        assert error.details["fields"] == ["Age"]


class TestLogging:
    """Tests for structured logging helpers."""

    def test_formatter_without_color(self):
        record = logging.LogRecord("caresight.test", logging.INFO, __file__, 1, "hello", None, None)
        line = StructuredFormatter(use_color=False).format(record)
        assert "INFO" in line
        assert "[caresight.test] hello" in line
        assert "\033[" not in line

    def test_api_response_trace_is_debug_only(self, caplog):
        logger = get_logger("caresight.test.trace")
        with caplog.at_level(logging.INFO, logger="caresight.test.trace"):
            log_api_response(logger, "http://x", {"a": 1})
        assert caplog.records == []

    def test_api_response_trace_truncates(self, caplog):
        logger = get_logger("caresight.test.trace")
        with caplog.at_level(logging.DEBUG, logger="caresight.test.trace"):
            log_api_response(logger, "http://x", {"blob": "y" * 5000}, context={"rows": 1})
        message = caplog.records[0].getMessage()
        assert message.endswith("...(truncated)")
        assert "context={'rows': 1}" in message
