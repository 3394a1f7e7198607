"""Tests for the error taxonomy and classifier."""

import httpx
import pytest

from voice_expense.errors.classifier import (
    classify_exception,
    classify_http_status,
    classify_response,
)
from voice_expense.errors.taxonomy import (
    ERROR_MESSAGES,
    ClassifiedError,
    ErrorCode,
    ErrorPhase,
    create_error,
    is_retryable,
    parse_error_code,
)


class TestTaxonomy:
    """Every code has a message and a fixed retry affordance."""

    def test_every_code_has_a_message(self):
        for code in ErrorCode:
            assert ERROR_MESSAGES[code]

    @pytest.mark.parametrize("code", [
        ErrorCode.FILE_TOO_LARGE,
        ErrorCode.INVALID_REQUEST,
        ErrorCode.INVALID_AUDIO_FORMAT,
        ErrorCode.UNAUTHORIZED,
        ErrorCode.FORBIDDEN,
    ])
    def test_not_retryable(self, code):
        assert is_retryable(code) is False

    @pytest.mark.parametrize("code", [
        ErrorCode.MICROPHONE_ERROR,
        ErrorCode.RECORDING_TOO_SHORT,
        ErrorCode.SERVICE_UNAVAILABLE,
        ErrorCode.NETWORK_ERROR,
        ErrorCode.POLLING_ERROR,
        ErrorCode.TIMEOUT,
        ErrorCode.TRANSCRIPTION_FAILED,
        ErrorCode.PARSING_FAILED,
    ])
    def test_retryable(self, code):
        assert create_error(code).retryable is True

    def test_create_error_default_message(self):
        error = create_error(ErrorCode.TIMEOUT)
        assert error.message == ERROR_MESSAGES[ErrorCode.TIMEOUT]

    def test_create_error_custom_message_wins(self):
        error = create_error(ErrorCode.UPLOAD_FAILED, "Server error (502)")
        assert error.message == "Server error (502)"

    def test_parse_error_code(self):
        assert parse_error_code("FORBIDDEN") == ErrorCode.FORBIDDEN
        assert parse_error_code("SOMETHING_ELSE") is None
        assert parse_error_code(None) is None

    def test_classified_error_carries_code(self):
        exc = ClassifiedError(ErrorCode.TIMEOUT)
        assert exc.code == ErrorCode.TIMEOUT
        assert str(exc) == ERROR_MESSAGES[ErrorCode.TIMEOUT]


class TestHttpClassification:

    @pytest.mark.parametrize("status, code", [
        (400, ErrorCode.INVALID_REQUEST),
        (401, ErrorCode.UNAUTHORIZED),
        (403, ErrorCode.FORBIDDEN),
        (413, ErrorCode.FILE_TOO_LARGE),
        (503, ErrorCode.SERVICE_UNAVAILABLE),
        (500, ErrorCode.UPLOAD_FAILED),
        (502, ErrorCode.UPLOAD_FAILED),
    ])
    def test_upload_status_mapping(self, status, code):
        assert classify_http_status(status, ErrorPhase.UPLOAD).code == code

    @pytest.mark.parametrize("status, code", [
        (401, ErrorCode.UNAUTHORIZED),
        (404, ErrorCode.POLLING_ERROR),
        (500, ErrorCode.POLLING_ERROR),
    ])
    def test_polling_status_mapping(self, status, code):
        assert classify_http_status(status, ErrorPhase.POLLING).code == code

    def test_server_code_takes_precedence_on_upload(self):
        body = {"error": {"code": "INVALID_AUDIO_FORMAT", "message": "Unsupported audio format: text/plain"}}
        error = classify_response(400, body, ErrorPhase.UPLOAD)
        assert error.code == ErrorCode.INVALID_AUDIO_FORMAT
        assert error.message == "Unsupported audio format: text/plain"

    def test_unknown_server_code_falls_back_to_status(self):
        body = {"error": {"code": "WHATEVER", "message": "nope"}}
        error = classify_response(413, body, ErrorPhase.UPLOAD)
        assert error.code == ErrorCode.FILE_TOO_LARGE
        assert error.message == "nope"

    def test_non_json_body_uses_status(self):
        error = classify_response(503, None, ErrorPhase.UPLOAD)
        assert error.code == ErrorCode.SERVICE_UNAVAILABLE

    def test_polling_never_adopts_upload_codes(self):
        body = {"error": {"code": "FORBIDDEN", "message": "no"}}
        error = classify_response(403, body, ErrorPhase.POLLING)
        assert error.code == ErrorCode.POLLING_ERROR


class TestExceptionClassification:

    def test_transport_error_during_upload(self):
        error = classify_exception(httpx.ConnectError("refused"), ErrorPhase.UPLOAD)
        assert error.code == ErrorCode.NETWORK_ERROR

    def test_transport_error_during_polling(self):
        error = classify_exception(httpx.ReadTimeout("slow"), ErrorPhase.POLLING)
        assert error.code == ErrorCode.POLLING_ERROR

    def test_classified_error_passes_through(self):
        exc = ClassifiedError(ErrorCode.UNAUTHORIZED)
        assert classify_exception(exc, ErrorPhase.POLLING).code == ErrorCode.UNAUTHORIZED

    def test_os_error_during_capture(self):
        error = classify_exception(PermissionError("denied"), ErrorPhase.CAPTURE)
        assert error.code == ErrorCode.MICROPHONE_ERROR

    def test_anything_else_uses_phase_fallback(self):
        assert classify_exception(RuntimeError("x"), ErrorPhase.UPLOAD).code == ErrorCode.UPLOAD_FAILED
        assert classify_exception(RuntimeError("x"), ErrorPhase.CAPTURE).code == ErrorCode.RECORDING_ERROR
