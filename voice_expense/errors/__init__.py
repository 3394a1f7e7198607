"""Error taxonomy and classification package."""

from voice_expense.errors.classifier import (
    classify_exception,
    classify_http_status,
    classify_response,
)
from voice_expense.errors.taxonomy import (
    ERROR_MESSAGES,
    PIPELINE_STAGE_CODES,
    RETRYABLE_CODES,
    ClassifiedError,
    ErrorCode,
    ErrorPhase,
    TranscriptionError,
    create_error,
    is_retryable,
    parse_error_code,
)

__all__ = [
    "ERROR_MESSAGES",
    "PIPELINE_STAGE_CODES",
    "RETRYABLE_CODES",
    "ClassifiedError",
    "ErrorCode",
    "ErrorPhase",
    "TranscriptionError",
    "classify_exception",
    "classify_http_status",
    "classify_response",
    "create_error",
    "is_retryable",
    "parse_error_code",
]
