"""
Error Classifier

Maps low-level failures (HTTP statuses, transport exceptions, device
errors) onto the closed ErrorCode taxonomy. The upload client and the task
poller both go through these functions, so the same cause always yields
the same code.
"""

from typing import Any, Optional

import httpx

from voice_expense.errors.taxonomy import (
    ClassifiedError,
    ErrorCode,
    ErrorPhase,
    TranscriptionError,
    create_error,
    parse_error_code,
)


UPLOAD_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    413: ErrorCode.FILE_TOO_LARGE,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}

POLLING_STATUS_CODES: dict[int, ErrorCode] = {
    401: ErrorCode.UNAUTHORIZED,
}

# Server error-body codes the client is allowed to adopt verbatim
_ADOPTABLE_UPLOAD_CODES = frozenset({
    ErrorCode.INVALID_REQUEST,
    ErrorCode.INVALID_AUDIO_FORMAT,
    ErrorCode.UNAUTHORIZED,
    ErrorCode.FORBIDDEN,
    ErrorCode.FILE_TOO_LARGE,
    ErrorCode.SERVICE_UNAVAILABLE,
})

_PHASE_FALLBACK: dict[ErrorPhase, ErrorCode] = {
    ErrorPhase.CAPTURE: ErrorCode.RECORDING_ERROR,
    ErrorPhase.UPLOAD: ErrorCode.UPLOAD_FAILED,
    ErrorPhase.POLLING: ErrorCode.POLLING_ERROR,
}


def classify_http_status(status_code: int, phase: ErrorPhase) -> TranscriptionError:
    """Classify a non-success HTTP status."""
    if phase == ErrorPhase.POLLING:
        code = POLLING_STATUS_CODES.get(status_code, ErrorCode.POLLING_ERROR)
        if code == ErrorCode.POLLING_ERROR:
            return create_error(code, f"Status check failed ({status_code})")
        return create_error(code)

    code = UPLOAD_STATUS_CODES.get(status_code)
    if code is None:
        return create_error(ErrorCode.UPLOAD_FAILED, f"Server error ({status_code})")
    return create_error(code)


def classify_response(
    status_code: int,
    body: Any,
    phase: ErrorPhase,
) -> TranscriptionError:
    """
    Classify a failed HTTP response, using the server's error body if present.

    The body is expected in the {"error": {"code": ..., "message": ...}} shape.
    A server code is only adopted when it is part of the taxonomy and makes
    sense for the phase; otherwise the status code decides.
    """
    classified = classify_http_status(status_code, phase)

    detail = _error_detail(body)
    if detail is None:
        return classified

    server_code = parse_error_code(detail.get("code"))
    server_message = detail.get("message") or None

    if phase == ErrorPhase.UPLOAD and server_code in _ADOPTABLE_UPLOAD_CODES:
        return create_error(server_code, server_message)

    if server_message:
        return create_error(classified.code, server_message)
    return classified


def classify_exception(exc: BaseException, phase: ErrorPhase) -> TranscriptionError:
    """Classify an exception raised while capturing, uploading or polling."""
    if isinstance(exc, ClassifiedError):
        return exc.error

    if isinstance(exc, httpx.TransportError):
        # Timeouts are a subclass of TransportError
        if phase == ErrorPhase.POLLING:
            return create_error(ErrorCode.POLLING_ERROR)
        return create_error(ErrorCode.NETWORK_ERROR)

    if phase == ErrorPhase.CAPTURE and isinstance(exc, (PermissionError, OSError)):
        return create_error(ErrorCode.MICROPHONE_ERROR)

    message = str(exc) or None
    return create_error(_PHASE_FALLBACK[phase], message)


def _error_detail(body: Any) -> Optional[dict]:
    if not isinstance(body, dict):
        return None
    detail = body.get("error")
    if isinstance(detail, dict):
        return detail
    return None
