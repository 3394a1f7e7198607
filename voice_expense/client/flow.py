"""
Voice Expense Client Flow

End-to-end client sequence for one recording:

1. Upload -> validate and submit, get a task id
2. Poll -> wait for the task to resolve
3. Result -> an expense draft for the form, or a classified error

Capture is driven separately by the UI (AudioCaptureSession); the flow
starts from a finished CapturedAudio.

A retry after an upload error uploads again (new task). A retry after a
failed task uploads again too. A retry after a polling error or TIMEOUT
re-polls the SAME task, since it may still resolve.
"""

import asyncio
from typing import Awaitable, Callable, Optional
from uuid import UUID

import httpx
import structlog
from pydantic import BaseModel

from voice_expense.client.poller import (
    CancellationToken,
    HttpStatusFetcher,
    PollingState,
    StatusFetcher,
    TaskPoller,
)
from voice_expense.client.upload import UploadClient
from voice_expense.config import ClientSettings, get_settings
from voice_expense.errors.taxonomy import ErrorCode, TranscriptionError
from voice_expense.models.audio import CapturedAudio
from voice_expense.models.task import TaskStatusResponse, TranscriptionResult

logger = structlog.get_logger(__name__)

# Only observation failures; the task itself may still resolve
REPOLL_CODES = frozenset({ErrorCode.TIMEOUT, ErrorCode.POLLING_ERROR})


class FlowResult(BaseModel):
    """Outcome of one upload-and-poll sequence."""

    task_id: Optional[UUID] = None
    result: Optional[TranscriptionResult] = None
    error: Optional[TranscriptionError] = None
    polling: Optional[PollingState] = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    @property
    def can_retry(self) -> bool:
        return self.error is not None and self.error.retryable

    @property
    def should_repoll(self) -> bool:
        """True when a retry should poll the existing task again."""
        return (
            self.task_id is not None
            and self.result is None
            and self.error is not None
            and self.error.code in REPOLL_CODES
        )


class VoiceExpenseFlow:
    """Upload, then poll, reporting progress along the way."""

    def __init__(
        self,
        upload_client: UploadClient,
        fetch_status: StatusFetcher,
        interval: float = 1.0,
        max_attempts: int = 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_progress: Optional[Callable[[PollingState], None]] = None,
    ):
        self._upload_client = upload_client
        self._outcome: dict = {}
        self._poller = TaskPoller(
            fetch_status=fetch_status,
            on_complete=self._handle_complete,
            on_error=self._handle_error,
            interval=interval,
            max_attempts=max_attempts,
            sleep=sleep,
            on_progress=on_progress,
        )

    @property
    def poller(self) -> TaskPoller:
        return self._poller

    async def submit(self, audio: CapturedAudio, group_id: UUID) -> FlowResult:
        """Upload a recording and wait for its task to resolve."""
        outcome = await self._upload_client.upload(audio, group_id)
        if not outcome.ok:
            return FlowResult(error=outcome.error)

        return await self._poll(outcome.task.task_id)

    async def repoll(self) -> FlowResult:
        """Poll the last task again from the first query."""
        if self._poller.task_id is None:
            raise RuntimeError("No task to poll")
        self._outcome = {}
        state = await self._poller.retry(CancellationToken())
        return self._result(self._poller.task_id, state)

    def cancel(self) -> None:
        """Stop observing the task. Server-side processing continues."""
        self._poller.cancel()

    async def _poll(self, task_id: UUID) -> FlowResult:
        self._outcome = {}
        state = await self._poller.run(task_id, CancellationToken())
        return self._result(task_id, state)

    def _result(self, task_id: UUID, state: PollingState) -> FlowResult:
        return FlowResult(
            task_id=task_id,
            result=self._outcome.get("result"),
            error=self._outcome.get("error"),
            polling=state,
        )

    def _handle_complete(self, response: TaskStatusResponse) -> None:
        self._outcome["result"] = response.result

    def _handle_error(self, error: TranscriptionError) -> None:
        self._outcome["error"] = error


def create_client_flow(
    settings: Optional[ClientSettings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    on_progress: Optional[Callable[[PollingState], None]] = None,
) -> VoiceExpenseFlow:
    """Build a flow against the configured API."""
    settings = settings or get_settings().client
    app_settings = get_settings().app

    upload_client = UploadClient(
        base_url=settings.api_base_url,
        auth_token=settings.auth_token,
        http_client=http_client,
        max_size_bytes=app_settings.max_upload_size_bytes,
        min_duration_seconds=app_settings.min_recording_seconds,
        timeout=settings.request_timeout_seconds,
    )
    fetcher = HttpStatusFetcher(
        base_url=settings.api_base_url,
        auth_token=settings.auth_token,
        http_client=http_client,
        timeout=settings.request_timeout_seconds,
    )
    return VoiceExpenseFlow(
        upload_client=upload_client,
        fetch_status=fetcher,
        interval=settings.polling_interval_seconds,
        max_attempts=settings.max_polling_attempts,
        on_progress=on_progress,
    )
