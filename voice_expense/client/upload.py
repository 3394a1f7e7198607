"""
Upload Client

Validates a captured recording and submits it to the transcription API.
A successful upload creates exactly one new server-side task; each call
creates another one.

Size and duration are checked BEFORE any network call. A recording that
fails them never leaves the machine.
"""

from typing import Optional
from uuid import UUID

import httpx
import structlog
from pydantic import BaseModel

from voice_expense.client.http import TRANSCRIBE_PATH, ApiClientBase, json_or_none
from voice_expense.errors.classifier import classify_exception, classify_response
from voice_expense.errors.taxonomy import (
    ErrorCode,
    ErrorPhase,
    TranscriptionError,
    create_error,
)
from voice_expense.models.audio import CapturedAudio
from voice_expense.models.task import TaskCreatedResponse

logger = structlog.get_logger(__name__)


MAX_UPLOAD_SIZE_BYTES = 25 * 1024 * 1024
MIN_DURATION_SECONDS = 1


class UploadOutcome(BaseModel):
    """Either the created task or a classified error, never both."""

    task: Optional[TaskCreatedResponse] = None
    error: Optional[TranscriptionError] = None

    @property
    def ok(self) -> bool:
        return self.task is not None


class UploadClient(ApiClientBase):
    """Client for POST /expenses/transcribe."""

    def __init__(
        self,
        base_url: str,
        auth_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
        max_size_bytes: int = MAX_UPLOAD_SIZE_BYTES,
        min_duration_seconds: int = MIN_DURATION_SECONDS,
        timeout: float = 30.0,
    ):
        super().__init__(base_url, auth_token, http_client=http_client, timeout=timeout)
        self._max_size_bytes = max_size_bytes
        self._min_duration_seconds = min_duration_seconds

    def validate(self, audio: CapturedAudio) -> Optional[TranscriptionError]:
        """Check the preconditions of an upload. Returns None if they hold."""
        if audio.size_bytes > self._max_size_bytes:
            return create_error(ErrorCode.FILE_TOO_LARGE)
        if audio.duration_seconds < self._min_duration_seconds:
            return create_error(ErrorCode.RECORDING_TOO_SHORT)
        return None

    async def upload(self, audio: CapturedAudio, group_id: UUID) -> UploadOutcome:
        """
        Upload a recording for a group.

        Never raises for expected failures; the outcome carries the
        classified error instead. The caller must not poll without a task.
        """
        error = self.validate(audio)
        if error is not None:
            logger.info("upload_rejected", code=error.code.value, size_bytes=audio.size_bytes)
            return UploadOutcome(error=error)

        try:
            async with self.client() as client:
                response = await client.post(
                    self.url(TRANSCRIBE_PATH),
                    files={"audio": (audio.filename, audio.data, audio.mime_type)},
                    data={"group_id": str(group_id)},
                    headers=self.headers,
                )
        except httpx.HTTPError as exc:
            logger.warning("upload_transport_failed", error=str(exc))
            return UploadOutcome(error=classify_exception(exc, ErrorPhase.UPLOAD))

        if response.status_code not in (200, 201):
            error = classify_response(
                response.status_code,
                json_or_none(response),
                ErrorPhase.UPLOAD,
            )
            logger.warning("upload_failed", status_code=response.status_code, code=error.code.value)
            return UploadOutcome(error=error)

        try:
            task = TaskCreatedResponse.model_validate(response.json())
        except ValueError:
            return UploadOutcome(
                error=create_error(ErrorCode.UPLOAD_FAILED, "Unexpected response from the server")
            )

        logger.info("upload_succeeded", task_id=str(task.task_id))
        return UploadOutcome(task=task)
