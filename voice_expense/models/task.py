"""
Transcription Task Models

A TranscriptionTask is the ONLY state shared between the client and the
server pipeline. The pipeline writes it, pollers read it.

DESIGN DECISION: The record validates its own invariants.
A task that claims to be completed without a result, or failed without an
error, cannot even be constructed. Terminal transitions build a whole new
record so the status and its payload are written together.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from voice_expense.errors.taxonomy import ErrorCode, TranscriptionError
from voice_expense.models.expense import ExpenseDraft


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """
    Task processing status.

    Transitions are one-way: processing -> completed or processing -> failed.
    """
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PROCESSING


class TranscriptionTask(BaseModel):
    """Persisted unit of work converting audio to an expense draft."""

    # Identity and ownership (immutable)
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique task identifier"
    )
    group_id: UUID
    user_id: UUID

    status: TaskStatus = Field(default=TaskStatus.PROCESSING)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = Field(
        default=None,
        description="Set exactly once, on entering a terminal state"
    )

    # Submitted audio
    audio_mime_type: Optional[str] = None
    audio_size_bytes: int = Field(default=0, ge=0)

    # Stage A output
    transcription_text: Optional[str] = None

    # Success payload
    result_data: Optional[ExpenseDraft] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    # Failure payload
    error_code: Optional[ErrorCode] = None
    error_message: Optional[str] = None

    @model_validator(mode='after')
    def validate_status_payload(self) -> 'TranscriptionTask':
        """Exactly one of {result, error} once the task is terminal."""
        has_result = self.result_data is not None or self.confidence is not None
        has_error = self.error_code is not None or self.error_message is not None

        if self.status == TaskStatus.PROCESSING:
            if has_result or has_error or self.completed_at is not None:
                raise ValueError("A processing task cannot carry a result, an error or completed_at")

        elif self.status == TaskStatus.COMPLETED:
            if has_error:
                raise ValueError("A completed task cannot carry error fields")
            if (
                self.result_data is None
                or self.confidence is None
                or not self.transcription_text
            ):
                raise ValueError("A completed task requires transcription, result and confidence")
            if self.completed_at is None:
                raise ValueError("A completed task requires completed_at")

        elif self.status == TaskStatus.FAILED:
            if has_result:
                raise ValueError("A failed task cannot carry result fields")
            if self.error_code is None or not self.error_message:
                raise ValueError("A failed task requires error_code and error_message")
            if self.completed_at is None:
                raise ValueError("A failed task requires completed_at")

        return self

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def completed(
        self,
        transcription_text: str,
        result_data: ExpenseDraft,
        confidence: float,
    ) -> 'TranscriptionTask':
        """Build the terminal success record for this task."""
        return TranscriptionTask(
            **self._identity(),
            status=TaskStatus.COMPLETED,
            completed_at=utcnow(),
            transcription_text=transcription_text,
            result_data=result_data,
            confidence=confidence,
        )

    def failed(
        self,
        error_code: ErrorCode,
        error_message: str,
        transcription_text: Optional[str] = None,
    ) -> 'TranscriptionTask':
        """Build the terminal failure record for this task."""
        return TranscriptionTask(
            **self._identity(),
            status=TaskStatus.FAILED,
            completed_at=utcnow(),
            transcription_text=transcription_text,
            error_code=error_code,
            error_message=error_message,
        )

    def _identity(self) -> dict:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "user_id": self.user_id,
            "created_at": self.created_at,
            "audio_mime_type": self.audio_mime_type,
            "audio_size_bytes": self.audio_size_bytes,
        }


# =============================================================================
# TRANSPORT MODELS
# =============================================================================

class TranscriptionResult(BaseModel):
    """Result block of a completed task."""

    transcription: str
    expense_data: ExpenseDraft
    confidence: float = Field(ge=0.0, le=1.0)


class TaskCreatedResponse(BaseModel):
    """Response returned after a successful upload."""

    task_id: UUID
    status: TaskStatus = TaskStatus.PROCESSING
    created_at: datetime


class TaskStatusResponse(BaseModel):
    """Response returned by the status endpoint."""

    task_id: UUID
    status: TaskStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    result: Optional[TranscriptionResult] = None
    error: Optional[TranscriptionError] = None

    @classmethod
    def from_task(cls, task: TranscriptionTask) -> 'TaskStatusResponse':
        result = None
        error = None

        if task.status == TaskStatus.COMPLETED:
            result = TranscriptionResult(
                transcription=task.transcription_text,
                expense_data=task.result_data,
                confidence=task.confidence,
            )
        elif task.status == TaskStatus.FAILED:
            error = TranscriptionError(
                code=task.error_code,
                message=task.error_message,
            )

        return cls(
            task_id=task.id,
            status=task.status,
            created_at=task.created_at,
            completed_at=task.completed_at,
            result=result,
            error=error,
        )


class ErrorResponse(BaseModel):
    """Error body returned by the API."""

    error: TranscriptionError
