"""
apiforge — Error Handler Tests
===============================

What we test:
    - exception normalization (taxonomy, provider errors, timeouts, defects)
    - envelope shape, request id and stack trace rules
    - redaction of sensitive body fields and headers before logging
"""

import asyncio
import logging

import pytest

from apiforge.exceptions import (
    ErrorCode,
    NotFoundError,
    ProviderError,
    ProviderErrorCode,
    RateLimitExceededError,
    ValidationError,
)
from apiforge.services.error_handler import REDACTED, ErrorHandler, redact, redact_headers


class TestNormalize:
    def test_api_error_passes_through(self):
        error = NotFoundError("foodEntry", "abc")
        assert ErrorHandler.normalize(error) is error

    @pytest.mark.parametrize(
        "code,status",
        [
            (ProviderErrorCode.UNIQUE_VIOLATION, 409),
            (ProviderErrorCode.RECORD_NOT_FOUND, 404),
            (ProviderErrorCode.FOREIGN_KEY_VIOLATION, 400),
            (ProviderErrorCode.INVALID_QUERY, 422),
            (ProviderErrorCode.UNKNOWN, 500),
        ],
    )
    def test_provider_errors(self, code, status):
        assert ErrorHandler.normalize(ProviderError(code, field="email"), "user").status == status

    def test_timeout(self):
        assert ErrorHandler.normalize(asyncio.TimeoutError()).code is ErrorCode.TIMEOUT

    def test_unexpected_exception_is_non_operational(self):
        error = ErrorHandler.normalize(KeyError("boom"))
        assert error.status == 500
        assert not error.is_operational
        assert error.context["exception"] == "KeyError"


class TestEnvelope:
    def setup_method(self):
        self.handler = ErrorHandler(expose_stack_trace=False)

    def test_shape(self):
        error = ValidationError(field_errors=[{"field": "email", "message": "email is required", "value": None}])
        body = self.handler.envelope(error, "/api/v1/user", "POST", request_id="abc123")["error"]
        assert body["status"] == 422
        assert body["code"] == "VALIDATION_ERROR"
        assert body["message"] == "Validation failed"
        assert body["path"] == "/api/v1/user"
        assert body["method"] == "POST"
        assert body["requestId"] == "abc123"
        assert body["details"][0]["field"] == "email"
        assert body["timestamp"].endswith("Z")
        assert "stack" not in body

    def test_empty_details_and_request_id_omitted(self):
        body = self.handler.envelope(NotFoundError(), "/x", "GET")["error"]
        assert "details" not in body
        assert "requestId" not in body

    def test_request_id_switch(self):
        handler = ErrorHandler(include_request_id=False)
        assert "requestId" not in handler.envelope(NotFoundError(), "/x", "GET", request_id="abc")["error"]

    def test_defect_message_is_generic(self):
        status, envelope, _ = self.handler.handle(RuntimeError("db password is hunter2"), "/x", "GET")
        assert status == 500
        assert "hunter2" not in envelope["error"]["message"]
        assert envelope["error"]["code"] == "INTERNAL_ERROR"


class TestStackTrace:
    @staticmethod
    def _raised():
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            return e

    def test_included_in_development(self):
        _, envelope, _ = ErrorHandler(expose_stack_trace=True).handle(self._raised(), "/x", "GET")
        assert "RuntimeError" in envelope["error"]["stack"]

    def test_never_in_production(self):
        handler = ErrorHandler(expose_stack_trace=True, is_production=True)
        _, envelope, _ = handler.handle(self._raised(), "/x", "GET")
        assert "stack" not in envelope["error"]


class TestHandle:
    def test_headers_returned(self):
        status, _, headers = ErrorHandler().handle(RateLimitExceededError(2500), "/x", "GET")
        assert status == 429
        assert headers == {"Retry-After": "3"}

    def test_logging_levels(self, caplog):
        handler = ErrorHandler(expose_stack_trace=False)
        with caplog.at_level(logging.WARNING, logger="apiforge.services.error_handler"):
            handler.handle(NotFoundError(), "/x", "GET", request_id="r1")
            handler.handle(RuntimeError("boom"), "/x", "GET", request_id="r2")
        levels = [record.levelno for record in caplog.records]
        assert levels == [logging.WARNING, logging.ERROR]

    def test_logged_request_is_redacted(self, caplog):
        handler = ErrorHandler(expose_stack_trace=False)
        info = handler.describe_request(
            "POST",
            "/api/v1/user",
            body={"email": "a@b.co", "password": "hunter2"},
            headers={"Authorization": "Bearer t0ken"},
        )
        with caplog.at_level(logging.WARNING, logger="apiforge.services.error_handler"):
            handler.handle(ValidationError(), "/api/v1/user", "POST", request_info=info)
        assert "hunter2" not in caplog.text
        assert "t0ken" not in caplog.text
        assert REDACTED in caplog.text


class TestRedact:
    def test_nested_and_case_insensitive(self):
        payload = {
            "user": {"Password": "x", "profile": {"apiKey": "k"}},
            "items": [{"creditCard": "4111"}, {"note": "ok"}],
            "TOKEN": "t",
        }
        assert redact(payload) == {
            "user": {"Password": REDACTED, "profile": {"apiKey": REDACTED}},
            "items": [{"creditCard": REDACTED}, {"note": "ok"}],
            "TOKEN": REDACTED,
        }

    def test_input_not_mutated(self):
        payload = {"secret": "s"}
        redact(payload)
        assert payload == {"secret": "s"}

    def test_headers(self):
        headers = redact_headers({"Authorization": "Bearer x", "Cookie": "c", "X-API-Key": "k", "Accept": "*/*"})
        assert headers == {
            "Authorization": REDACTED,
            "Cookie": REDACTED,
            "X-API-Key": REDACTED,
            "Accept": "*/*",
        }
