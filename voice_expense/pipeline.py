"""
Transcription Pipeline for Voice Expense

This module ties together the server-side components and defines the
flow that advances a task from processing to a terminal state:

    audio -> speech-to-text (stage A) -> expense extraction (stage B) -> task

DESIGN DECISION: The pipeline enforces the task invariants:
- Stage B never runs without a stage A result
- Every terminal transition is ONE store write (status + payload)
- Stage failures are recorded on the task, never raised to the caller
- Any other error ends in a failed record as long as the store accepts one
- The pipeline never retries; a retry from the user creates a new task

The pipeline is the only writer of task status after creation. Pollers
read the task through the store; nothing else couples the two sides.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import structlog

from voice_expense.audit import AuditLogger
from voice_expense.config import get_settings
from voice_expense.errors.taxonomy import ERROR_MESSAGES, ErrorCode
from voice_expense.models.audio import CapturedAudio
from voice_expense.models.group import GroupContext
from voice_expense.models.task import TranscriptionTask
from voice_expense.services.auth import AuthContextProvider, StaticAuthContextProvider
from voice_expense.services.extraction import (
    ExpenseExtractionService,
    GeminiExpenseExtractionService,
    final_confidence,
)
from voice_expense.services.speech import (
    GeminiSpeechToTextService,
    SpeechToTextService,
    build_vocabulary_prompt,
)
from voice_expense.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTaskStorage,
    InMemoryTaskStorage,
    TaskNotFoundError,
    TaskStorageInterface,
)

logger = structlog.get_logger(__name__)


STAGE_TRANSCRIPTION = "transcription"
STAGE_EXTRACTION = "extraction"


class TranscriptionPipeline:
    """
    Orchestrates one transcription task.

    Flow:
    1. create_task -> persist a processing record (membership already checked)
    2. process -> stage A, then stage B, then one terminal update
    """

    def __init__(
        self,
        store: TaskStorageInterface,
        speech_service: SpeechToTextService,
        extraction_service: ExpenseExtractionService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._speech = speech_service
        self._extraction = extraction_service
        self._audit_logger = audit_logger or AuditLogger()

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    async def create_task(
        self,
        group_context: GroupContext,
        audio: CapturedAudio,
    ) -> TranscriptionTask:
        """
        Persist a new task in the processing state.

        The group context was captured once by the caller after the
        membership check; it is reused by both stages and not re-validated.
        """
        task = TranscriptionTask(
            group_id=group_context.group_id,
            user_id=group_context.user_id,
            audio_mime_type=audio.mime_type,
            audio_size_bytes=audio.size_bytes,
        )
        await self._store.create_task(task)

        await self._audit_logger.log_task_created(
            task_id=task.id,
            group_id=task.group_id,
            user_id=task.user_id,
            audio_size_bytes=task.audio_size_bytes,
        )
        return task

    async def process(
        self,
        task_id: UUID,
        audio: CapturedAudio,
        group_context: GroupContext,
    ) -> TranscriptionTask:
        """
        Run both stages and write the terminal record.

        Returns the terminal task. A task that is already terminal is
        returned unchanged. Any unexpected error after the stages started
        (including a rejected terminal write) ends in a failed record.

        Raises:
            TaskNotFoundError: If the task was never created
            StorageError: If not even the failed record can be written
        """
        task = await self._store.find_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.is_terminal:
            logger.warning("pipeline_task_already_terminal", task_id=str(task_id), status=task.status.value)
            return task

        transcription_text: Optional[str] = None
        try:
            # Stage A: speech-to-text
            await self._audit_logger.log_stage_started(task_id, STAGE_TRANSCRIPTION)
            try:
                transcript = await self._speech.transcribe(
                    audio.data,
                    audio.mime_type,
                    prompt=build_vocabulary_prompt(group_context),
                )
            except Exception as e:
                logger.warning("transcription_stage_failed", task_id=str(task_id), error=str(e))
                return await self._fail(
                    task,
                    ErrorCode.TRANSCRIPTION_FAILED,
                    stage=STAGE_TRANSCRIPTION,
                    cause=e,
                )

            transcription_text = transcript.text
            await self._audit_logger.log_transcription_completed(task_id, len(transcript.text))

            # Stage B: structured extraction
            await self._audit_logger.log_stage_started(task_id, STAGE_EXTRACTION)
            try:
                draft = await self._extraction.extract(transcript.text, group_context)
            except Exception as e:
                logger.warning("extraction_stage_failed", task_id=str(task_id), error=str(e))
                return await self._fail(
                    task,
                    ErrorCode.PARSING_FAILED,
                    stage=STAGE_EXTRACTION,
                    cause=e,
                    transcription_text=transcript.text,
                )

            confidence = final_confidence(draft)
            draft = draft.model_copy(update={"extraction_confidence": confidence})
            await self._audit_logger.log_extraction_completed(task_id, confidence)

            completed = task.completed(
                transcription_text=transcript.text,
                result_data=draft,
                confidence=confidence,
            )
            await self._store.finish_task(completed)
            await self._audit_logger.log_task_completed(task_id, confidence)

        except Exception as e:
            logger.exception("pipeline_unexpected_error", task_id=str(task_id))
            return await self._fail_unfinished(task, e, transcription_text)

        logger.info("pipeline_completed", task_id=str(task_id), confidence=confidence)
        return completed

    async def _fail_unfinished(
        self,
        task: TranscriptionTask,
        cause: Exception,
        transcription_text: Optional[str],
    ) -> TranscriptionTask:
        """Write a failed record unless the store already holds a terminal one."""
        current = await self._store.find_task(task.id)
        if current is not None and current.is_terminal:
            return current

        if transcription_text is None:
            code, stage = ErrorCode.TRANSCRIPTION_FAILED, STAGE_TRANSCRIPTION
        else:
            code, stage = ErrorCode.PARSING_FAILED, STAGE_EXTRACTION
        return await self._fail(
            task,
            code,
            stage=stage,
            cause=cause,
            transcription_text=transcription_text,
        )

    async def _fail(
        self,
        task: TranscriptionTask,
        code: ErrorCode,
        stage: str,
        cause: Exception,
        transcription_text: Optional[str] = None,
    ) -> TranscriptionTask:
        message = ERROR_MESSAGES[code]
        await self._audit_logger.log_stage_failed(
            task_id=task.id,
            stage=stage,
            error_code=code.value,
            error_message=str(cause) or type(cause).__name__,
        )

        failed = task.failed(
            error_code=code,
            error_message=message,
            transcription_text=transcription_text,
        )
        await self._store.finish_task(failed)
        await self._audit_logger.log_task_failed(task.id, code.value, message)
        return failed


class PipelineRunner:
    """
    Runs pipelines detached from the request that created the task.

    Each submitted task becomes an asyncio.Task. The runner holds a strong
    reference until it finishes, so nothing is garbage-collected mid-flight.
    There is no cancel: once submitted, a pipeline runs to its terminal write.
    """

    def __init__(self, pipeline: TranscriptionPipeline):
        self._pipeline = pipeline
        self._jobs: set[asyncio.Task] = set()

    def submit(
        self,
        task_id: UUID,
        audio: CapturedAudio,
        group_context: GroupContext,
    ) -> asyncio.Task:
        """Schedule processing on the running event loop."""
        job = asyncio.get_running_loop().create_task(
            self._run(task_id, audio, group_context),
            name=f"transcription-{task_id}",
        )
        self._jobs.add(job)
        job.add_done_callback(self._jobs.discard)
        return job

    async def drain(self) -> None:
        """Wait until every submitted pipeline has finished."""
        while self._jobs:
            await asyncio.gather(*list(self._jobs), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._jobs)

    async def _run(
        self,
        task_id: UUID,
        audio: CapturedAudio,
        group_context: GroupContext,
    ) -> Optional[TranscriptionTask]:
        try:
            return await self._pipeline.process(task_id, audio, group_context)
        except Exception as e:
            # The store rejected even the failed record; the client will time out
            logger.exception("pipeline_crashed", task_id=str(task_id))
            await self._pipeline.audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                correlation_id=task_id,
            )
            return None


@dataclass
class AppComponents:
    """Everything the API needs, wired together."""

    store: TaskStorageInterface
    pipeline: TranscriptionPipeline
    runner: PipelineRunner
    auth_provider: AuthContextProvider
    audit_logger: AuditLogger


def create_app_components(
    store: Optional[TaskStorageInterface] = None,
    speech_service: Optional[SpeechToTextService] = None,
    extraction_service: Optional[ExpenseExtractionService] = None,
    auth_provider: Optional[AuthContextProvider] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> AppComponents:
    """
    Factory function to create all server-side components.

    Anything not passed in is built from settings. Tests pass fakes for
    the collaborators and get the in-memory store by default.
    """
    app_settings = get_settings().app

    if store is None:
        if app_settings.storage_backend == "google_sheets":
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsTaskStorage(sheets_client)
            if audit_logger is None:
                audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        else:
            store = InMemoryTaskStorage()

    audit_logger = audit_logger or AuditLogger()  # Local-only logging

    pipeline = TranscriptionPipeline(
        store=store,
        speech_service=speech_service or GeminiSpeechToTextService(),
        extraction_service=extraction_service or GeminiExpenseExtractionService(),
        audit_logger=audit_logger,
    )

    return AppComponents(
        store=store,
        pipeline=pipeline,
        runner=PipelineRunner(pipeline),
        auth_provider=auth_provider or StaticAuthContextProvider.from_file(
            app_settings.auth_directory_path
        ),
        audit_logger=audit_logger,
    )
