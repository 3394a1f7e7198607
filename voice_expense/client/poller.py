"""
Task Poller

Queries a task's status until it is terminal, the attempt bound is hit,
or the poller is torn down.

Protocol:
1. Query immediately, no initial delay
2. Terminal status -> exactly one callback, no further queries
3. Otherwise wait `interval` and query again, up to `max_attempts`
   non-terminal responses, then one TIMEOUT callback
4. A failed query -> one POLLING_ERROR (or UNAUTHORIZED) callback

A TIMEOUT is a client-side give-up. The server keeps processing and the
task can still be read later, e.g. through retry().
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional
from uuid import UUID

import httpx
import structlog
from pydantic import BaseModel, Field

from voice_expense.client.http import TRANSCRIBE_PATH, ApiClientBase, json_or_none
from voice_expense.errors.classifier import classify_exception, classify_response
from voice_expense.errors.taxonomy import (
    ClassifiedError,
    ErrorCode,
    ErrorPhase,
    TranscriptionError,
    create_error,
)
from voice_expense.models.task import TaskStatus, TaskStatusResponse

logger = structlog.get_logger(__name__)


# Attempt thresholds for the phase messages
EARLY_PHASE_ATTEMPTS = 10
MID_PHASE_ATTEMPTS = 30
# Progress is estimated against this many attempts and capped until completion
PROGRESS_SCALE_ATTEMPTS = 30
MAX_ESTIMATED_PROGRESS = 90

PHASE_TRANSCRIBING = "Transcribing recording..."
PHASE_ANALYZING = "Analyzing expense details..."
PHASE_FINALIZING = "Finalizing..."


def phase_message(attempts: int) -> str:
    if attempts < EARLY_PHASE_ATTEMPTS:
        return PHASE_TRANSCRIBING
    if attempts < MID_PHASE_ATTEMPTS:
        return PHASE_ANALYZING
    return PHASE_FINALIZING


def estimate_progress(attempts: int) -> int:
    """Cosmetic progress in percent. Never 100 before the task completes."""
    return min(int(attempts / PROGRESS_SCALE_ATTEMPTS * 100), MAX_ESTIMATED_PROGRESS)


class PollingStatus(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PollingState(BaseModel):
    """What a UI needs to render the polling phase."""

    status: PollingStatus = PollingStatus.IDLE
    message: str = ""
    progress: int = Field(default=0, ge=0, le=100)
    attempts: int = Field(default=0, ge=0)
    error: Optional[TranscriptionError] = None
    can_retry: bool = False


class CancellationToken:
    """Set once; checked by the poller after every await."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class PollingFailure(ClassifiedError):
    """A status query failed."""
    pass


StatusFetcher = Callable[[UUID], Awaitable[TaskStatusResponse]]


class HttpStatusFetcher(ApiClientBase):
    """StatusFetcher calling GET /expenses/transcribe/{task_id}."""

    async def __call__(self, task_id: UUID) -> TaskStatusResponse:
        try:
            async with self.client() as client:
                response = await client.get(
                    self.url(f"{TRANSCRIBE_PATH}/{task_id}"),
                    headers=self.headers,
                )
        except httpx.HTTPError as exc:
            error = classify_exception(exc, ErrorPhase.POLLING)
            raise PollingFailure(error.code, error.message) from exc

        if response.status_code != 200:
            error = classify_response(
                response.status_code,
                json_or_none(response),
                ErrorPhase.POLLING,
            )
            raise PollingFailure(error.code, error.message)

        try:
            return TaskStatusResponse.model_validate(response.json())
        except ValueError as exc:
            raise PollingFailure(ErrorCode.POLLING_ERROR, "Invalid status response") from exc


class TaskPoller:
    """
    Polls one task at a time.

    Args:
        fetch_status: Returns the current status of a task
        on_complete: Called once with the response of a completed task
        on_error: Called once with the classified error of a failed task,
            a timeout or a failed query
        interval: Seconds between queries
        max_attempts: Non-terminal responses tolerated before TIMEOUT
        sleep: Awaitable sleep, injectable for tests
        on_progress: Called with every state update while polling
    """

    def __init__(
        self,
        fetch_status: StatusFetcher,
        on_complete: Callable[[TaskStatusResponse], None],
        on_error: Callable[[TranscriptionError], None],
        interval: float = 1.0,
        max_attempts: int = 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_progress: Optional[Callable[[PollingState], None]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self._fetch_status = fetch_status
        self._on_complete = on_complete
        self._on_error = on_error
        self._interval = interval
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._on_progress = on_progress

        self._state = PollingState()
        self._task_id: Optional[UUID] = None
        self._token: Optional[CancellationToken] = None
        self._pending_sleep: Optional[asyncio.Future] = None

    @property
    def state(self) -> PollingState:
        return self._state

    @property
    def task_id(self) -> Optional[UUID]:
        return self._task_id

    def set_progress_callback(self, on_progress: Optional[Callable[[PollingState], None]]) -> None:
        self._on_progress = on_progress

    async def run(
        self,
        task_id: UUID,
        token: Optional[CancellationToken] = None,
    ) -> PollingState:
        """Poll until the task resolves, times out, fails to load or is torn down."""
        if self._token is not None and not self._token.cancelled and self._state.status == PollingStatus.POLLING:
            raise RuntimeError("Poller is already running")

        self._task_id = task_id
        token = token or CancellationToken()
        self._token = token
        attempts = 0

        self._update(PollingState(
            status=PollingStatus.POLLING,
            message=phase_message(0),
            progress=0,
        ))

        while True:
            try:
                response = await self._fetch_status(task_id)
            except Exception as exc:
                if token.cancelled:
                    return self._state
                error = classify_exception(exc, ErrorPhase.POLLING)
                logger.warning("polling_query_failed", task_id=str(task_id), code=error.code.value)
                return self._fail(error, attempts)

            if token.cancelled:
                return self._state

            if response.status == TaskStatus.COMPLETED:
                self._update(PollingState(
                    status=PollingStatus.COMPLETED,
                    message="Transcription complete",
                    progress=100,
                    attempts=attempts,
                ))
                self._on_complete(response)
                return self._state

            if response.status == TaskStatus.FAILED:
                error = response.error or create_error(ErrorCode.TRANSCRIPTION_FAILED)
                return self._fail(error, attempts)

            attempts += 1
            if attempts >= self._max_attempts:
                logger.info("polling_timed_out", task_id=str(task_id), attempts=attempts)
                return self._fail(create_error(ErrorCode.TIMEOUT), attempts)

            self._update(PollingState(
                status=PollingStatus.POLLING,
                message=phase_message(attempts),
                progress=estimate_progress(attempts),
                attempts=attempts,
            ))

            self._pending_sleep = asyncio.ensure_future(self._sleep(self._interval))
            try:
                await self._pending_sleep
            except asyncio.CancelledError:
                if token.cancelled:
                    return self._state
                raise
            finally:
                self._pending_sleep = None

            if token.cancelled:
                return self._state

    def cancel(self) -> None:
        """
        Tear the poller down.

        No callback fires after this returns and the pending query
        is never issued. The server-side task keeps running.
        """
        if self._token is not None:
            self._token.cancel()
        if self._pending_sleep is not None and not self._pending_sleep.done():
            self._pending_sleep.cancel()
        if self._state.status == PollingStatus.POLLING:
            self._state = self._state.model_copy(update={"status": PollingStatus.CANCELLED})
            logger.info("polling_cancelled", task_id=str(self._task_id), attempts=self._state.attempts)

    async def retry(self, token: Optional[CancellationToken] = None) -> PollingState:
        """Re-run the whole protocol against the same task id."""
        if self._task_id is None:
            raise RuntimeError("Nothing to retry: the poller has not run yet")
        logger.info("polling_retried", task_id=str(self._task_id))
        return await self.run(self._task_id, token=token)

    def _fail(self, error: TranscriptionError, attempts: int) -> PollingState:
        self._update(PollingState(
            status=PollingStatus.FAILED,
            message=error.message,
            progress=self._state.progress,
            attempts=attempts,
            error=error,
            can_retry=error.retryable,
        ))
        self._on_error(error)
        return self._state

    def _update(self, state: PollingState) -> None:
        self._state = state
        if self._on_progress is not None:
            self._on_progress(state)
