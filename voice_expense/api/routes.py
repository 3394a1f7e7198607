"""Expense transcription endpoints."""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, File, Form, UploadFile

from voice_expense.api.dependencies import AppSettingsDep, ComponentsDep, CurrentUserDep
from voice_expense.api.errors import ApiError
from voice_expense.errors.taxonomy import ErrorCode
from voice_expense.models.audio import CapturedAudio
from voice_expense.models.task import ErrorResponse, TaskCreatedResponse, TaskStatusResponse
from voice_expense.services.auth import GroupAccessDeniedError
from voice_expense.services.storage import ConnectionError, StorageError, TaskNotFoundError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/expenses", tags=["expenses"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _parse_uuid(value: Optional[str], field: str) -> UUID:
    try:
        return UUID(value or "")
    except ValueError:
        raise ApiError(400, ErrorCode.INVALID_REQUEST, f"Invalid {field}") from None


def _base_mime_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";")[0].strip().lower()


@router.post(
    "/transcribe",
    status_code=201,
    response_model=TaskCreatedResponse,
    responses=ERROR_RESPONSES,
)
async def create_transcription(
    components: ComponentsDep,
    app_settings: AppSettingsDep,
    user_id: CurrentUserDep,
    audio: Optional[UploadFile] = File(default=None),
    group_id: Optional[str] = Form(default=None),
) -> TaskCreatedResponse:
    """
    Accepts a recording and starts a transcription task.

    Returns as soon as the task is persisted; processing continues in the
    background and is observed through the status endpoint.
    """
    group_uuid = _parse_uuid(group_id, "group_id")
    if audio is None:
        raise ApiError(400, ErrorCode.INVALID_REQUEST, "Audio file is required")

    mime_type = _base_mime_type(audio.content_type)
    if mime_type not in app_settings.supported_formats_list:
        raise ApiError(
            400,
            ErrorCode.INVALID_AUDIO_FORMAT,
            f"Unsupported audio format: {audio.content_type or 'unknown'}",
        )

    max_size = app_settings.max_upload_size_bytes
    data = await audio.read(max_size + 1)
    if len(data) > max_size:
        raise ApiError(413, ErrorCode.FILE_TOO_LARGE)
    if not data:
        raise ApiError(400, ErrorCode.INVALID_REQUEST, "Audio file is empty")

    try:
        context = await components.auth_provider.get_group_context(group_uuid, user_id)
    except GroupAccessDeniedError as e:
        await components.audit_logger.log_access_denied(group_uuid, user_id, str(e))
        raise ApiError(403, ErrorCode.FORBIDDEN) from e

    recording = CapturedAudio(data=data, mime_type=audio.content_type or mime_type)

    try:
        task = await components.pipeline.create_task(context, recording)
    except ConnectionError as e:
        logger.error("task_store_unavailable", error=str(e))
        raise ApiError(503, ErrorCode.SERVICE_UNAVAILABLE) from e
    except StorageError as e:
        logger.error("task_create_failed", error=str(e))
        raise ApiError(500, ErrorCode.INTERNAL_SERVER_ERROR) from e

    components.runner.submit(task.id, recording, context)

    logger.info(
        "transcription_requested",
        task_id=str(task.id),
        group_id=str(group_uuid),
        user_id=str(user_id),
        size_bytes=len(data),
        mime_type=mime_type,
    )

    return TaskCreatedResponse(
        task_id=task.id,
        status=task.status,
        created_at=task.created_at,
    )


@router.get(
    "/transcribe/{task_id}",
    response_model=TaskStatusResponse,
    responses=ERROR_RESPONSES,
)
async def get_transcription(
    task_id: str,
    components: ComponentsDep,
    user_id: CurrentUserDep,
) -> TaskStatusResponse:
    """Returns the current state of a task owned by the caller."""
    task_uuid = _parse_uuid(task_id, "task_id")

    try:
        task = await components.store.get_task(task_uuid, user_id)
    except TaskNotFoundError as e:
        raise ApiError(404, ErrorCode.NOT_FOUND) from e
    except StorageError as e:
        logger.error("task_read_failed", task_id=task_id, error=str(e))
        raise ApiError(500, ErrorCode.INTERNAL_SERVER_ERROR) from e

    return TaskStatusResponse.from_task(task)
