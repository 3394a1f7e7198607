"""
Error Taxonomy for Voice Expense

DESIGN DECISION: There is ONE closed set of error codes for the whole
voice-to-expense flow. Capture, upload, polling and the server pipeline all
speak in these codes, so "can the user retry?" is answered the same way
everywhere.

Every failure shown to a user carries:
1. A machine code (ErrorCode)
2. A human-readable message
3. A retryable flag that decides whether a retry button is shown
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Closed set of error kinds."""
    # Capture
    MICROPHONE_ERROR = "MICROPHONE_ERROR"
    RECORDING_ERROR = "RECORDING_ERROR"
    RECORDING_TOO_SHORT = "RECORDING_TOO_SHORT"

    # Upload validation
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_AUDIO_FORMAT = "INVALID_AUDIO_FORMAT"

    # Auth / ownership
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"

    # Transport
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    POLLING_ERROR = "POLLING_ERROR"
    TIMEOUT = "TIMEOUT"

    # Pipeline stages
    TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
    PARSING_FAILED = "PARSING_FAILED"

    # Server responses only
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ErrorPhase(str, Enum):
    """Where in the flow a failure happened."""
    CAPTURE = "capture"
    UPLOAD = "upload"
    POLLING = "polling"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.MICROPHONE_ERROR: "Could not access the microphone",
    ErrorCode.RECORDING_ERROR: "Recording failed",
    ErrorCode.RECORDING_TOO_SHORT: "The recording is too short. Please say a bit more.",
    ErrorCode.FILE_TOO_LARGE: "The recording is too large. Maximum size: 25MB.",
    ErrorCode.INVALID_REQUEST: "Invalid recording data",
    ErrorCode.INVALID_AUDIO_FORMAT: "Unsupported audio format",
    ErrorCode.UNAUTHORIZED: "Authentication required",
    ErrorCode.FORBIDDEN: "You do not have access to this group",
    ErrorCode.SERVICE_UNAVAILABLE: "The transcription service is temporarily unavailable",
    ErrorCode.UPLOAD_FAILED: "Could not upload the recording",
    ErrorCode.NETWORK_ERROR: "Connection error. Check your internet connection.",
    ErrorCode.POLLING_ERROR: "Error while checking the transcription status",
    ErrorCode.TIMEOUT: "Processing is taking too long. Please try again.",
    ErrorCode.TRANSCRIPTION_FAILED: "Could not transcribe the recording",
    ErrorCode.PARSING_FAILED: "Could not understand the expense in the recording",
    ErrorCode.NOT_FOUND: "Transcription task not found",
    ErrorCode.INTERNAL_SERVER_ERROR: "An unexpected server error occurred",
}

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"

RETRYABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.MICROPHONE_ERROR,
    ErrorCode.RECORDING_ERROR,
    ErrorCode.RECORDING_TOO_SHORT,
    ErrorCode.SERVICE_UNAVAILABLE,
    ErrorCode.UPLOAD_FAILED,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.POLLING_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.TRANSCRIPTION_FAILED,
    ErrorCode.PARSING_FAILED,
})

# Stage failures are recorded on the task, never raised to the client
PIPELINE_STAGE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.TRANSCRIPTION_FAILED,
    ErrorCode.PARSING_FAILED,
})


class TranscriptionError(BaseModel):
    """A classified, user-facing failure."""

    code: ErrorCode = Field(
        ...,
        description="Machine-readable error kind"
    )
    message: str = Field(
        ...,
        min_length=1,
        description="Human-readable explanation"
    )

    @property
    def retryable(self) -> bool:
        return is_retryable(self.code)


def is_retryable(code: ErrorCode) -> bool:
    """Check if an error kind should offer a retry affordance."""
    return code in RETRYABLE_CODES


def create_error(code: ErrorCode, message: Optional[str] = None) -> TranscriptionError:
    """
    Create a standardized error object.

    A custom message wins over the default message for the code.
    """
    return TranscriptionError(
        code=code,
        message=message or ERROR_MESSAGES.get(code, UNKNOWN_ERROR_MESSAGE),
    )


def parse_error_code(value: Optional[str]) -> Optional[ErrorCode]:
    """Map a raw string to an ErrorCode, or None if it is not part of the taxonomy."""
    if not value:
        return None
    try:
        return ErrorCode(value)
    except ValueError:
        return None


class ClassifiedError(Exception):
    """
    Base exception for failures that already know their error kind.

    Subclasses are raised by the capture session, the upload client and
    the poller's status fetcher.
    """

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.error = create_error(code, message)
        super().__init__(self.error.message)

    @property
    def code(self) -> ErrorCode:
        return self.error.code
