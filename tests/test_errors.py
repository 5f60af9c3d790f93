# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for the application error hierarchy."""
from datetime import datetime, timezone

import pytest

from reverse_lens.common.errors import (
    AppError,
    BlockedHostError,
    CacheError,
    NetworkError,
    ProviderError,
    RateLimitError,
    SSRFError,
    ValidationError,
    error_to_response,
    format_error,
)


class TestErrorAttributes:
    """Tests for codes, status codes and context of each error type."""

    def test_validation_error(self):
        err = ValidationError("Invalid input", field="image_hash")
        assert (err.code, err.status_code) == ("VALIDATION_ERROR", 400)
        assert err.field == "image_hash"
        assert err.context == {"field": "image_hash"}
        assert str(err) == "Invalid input"

    def test_ssrf_errors_are_validation_errors(self):
        err = BlockedHostError("Blocked host: localhost")
        assert isinstance(err, SSRFError)
        assert isinstance(err, ValidationError)
        assert (err.code, err.status_code, err.field) == ("BLOCKED_HOST", 400, "image_url")

    def test_rate_limit_error(self):
        reset = datetime(2026, 1, 15, tzinfo=timezone.utc)
        err = RateLimitError("Daily limit reached", limit=10, remaining=0, reset_at=reset)
        assert err.status_code == 429
        assert err.context["reset_at"] == "2026-01-15T00:00:00+00:00"
        assert err.reset_at == reset

    def test_network_error(self):
        err = NetworkError("Request timeout after 30.0s", timeout=True)
        assert (err.code, err.status_code, err.timeout) == ("NETWORK_ERROR", 503, True)

    def test_cache_error(self):
        err = CacheError("write failed", "write")
        assert err.operation == "write"
        assert err.status_code == 500

    def test_app_error_overrides(self):
        err = AppError("teapot", code="TEAPOT", status_code=418)
        assert (err.code, err.status_code) == ("TEAPOT", 418)
        assert AppError.code == "APP_ERROR"


class TestProviderError:
    """Tests for provider error classification."""

    @pytest.mark.parametrize(
        "provider_status, status_code",
        [(None, 500), (401, 400), (404, 400), (429, 400), (502, 500), (503, 500)],
    )
    def test_status_code_is_rounded(self, provider_status, status_code):
        assert ProviderError("x", "http_error", provider_status).status_code == status_code

    def test_rate_limit(self):
        assert ProviderError("x", provider_status=429).is_rate_limit
        assert ProviderError("x", "rate_limit_exceeded").is_rate_limit
        assert not ProviderError("x", provider_status=500).is_rate_limit

    def test_timeout(self):
        assert ProviderError("x", provider_status=408).is_timeout
        assert ProviderError("x", "timeout").is_timeout

    def test_auth(self):
        assert ProviderError("x", provider_status=401).is_auth_error
        assert ProviderError("x", provider_status=403).is_auth_error
        assert not ProviderError("x", provider_status=404).is_auth_error

    @pytest.mark.parametrize(
        "provider_status, expected",
        [(400, True), (404, True), (429, False), (500, False), (None, False)],
    )
    def test_client_error(self, provider_status, expected):
        assert ProviderError("x", provider_status=provider_status).is_client_error is expected


class TestFormatting:
    """Tests for log and client renderings."""

    def test_to_dict_keeps_internal_context(self):
        err = ProviderError("failed", "http_error", 502, context={"attempt": 2})
        data = err.to_dict()
        assert data["name"] == "ProviderError"
        assert data["context"]["attempt"] == 2
        assert data["context"]["provider_status"] == 502

    def test_public_dict_filters_context(self):
        err = ProviderError("failed", "http_error", 502, context={"attempt": 2})
        assert err.to_public_dict()["context"] is None

    def test_error_to_response_with_public_context(self):
        err = ValidationError("Invalid input", field="image_url")
        assert error_to_response(err) == {
            "error": "Invalid input",
            "code": "VALIDATION_ERROR",
            "context": {"field": "image_url"},
        }

    def test_error_to_response_without_context(self):
        err = AppError("boom")
        assert error_to_response(err) == {"error": "boom", "code": "APP_ERROR"}

    def test_error_to_response_hides_unknown_errors(self):
        payload = error_to_response(RuntimeError("secret connection string"))
        assert payload == {"error": "An unexpected error occurred", "code": "UNKNOWN_ERROR"}

    def test_format_error_includes_traceback(self):
        try:
            raise KeyError("missing")
        except KeyError as e:
            data = format_error(e)
        assert data["code"] == "UNKNOWN_ERROR"
        assert data["context"]["name"] == "KeyError"
        assert "Traceback" in data["context"]["stack"]

    def test_format_error_app_error(self):
        err = NetworkError("down")
        assert format_error(err) == err.to_dict()
