"""
Audit Logger

DESIGN DECISION: Every step of a transcription task is logged.
This provides:
1. Traceability from upload to terminal state
2. Debugging capability when a stage fails
3. A record of every rejected (non-member) request

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't break the pipeline if logging fails)
- Uses the task id as the correlation id for all events of a task
"""

import logging
import sys
from typing import Optional
from uuid import UUID

import structlog

from voice_expense.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from voice_expense.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug: bool = False) -> None:
    """Route stdlib logging (and so structlog) to stdout."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if debug else logging.INFO,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("voice_expense.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_task_created(
        self,
        task_id: UUID,
        group_id: UUID,
        user_id: UUID,
        audio_size_bytes: int,
    ) -> None:
        """Log task creation."""
        await self.log(AuditEventBuilder.task_created(
            task_id=task_id,
            group_id=group_id,
            user_id=user_id,
            audio_size_bytes=audio_size_bytes,
        ))

    async def log_stage_started(self, task_id: UUID, stage: str) -> None:
        await self.log(AuditEventBuilder.stage_started(task_id=task_id, stage=stage))

    async def log_transcription_completed(self, task_id: UUID, text_length: int) -> None:
        await self.log(AuditEventBuilder.transcription_completed(
            task_id=task_id,
            text_length=text_length,
        ))

    async def log_extraction_completed(self, task_id: UUID, confidence: float) -> None:
        await self.log(AuditEventBuilder.extraction_completed(
            task_id=task_id,
            confidence=confidence,
        ))

    async def log_stage_failed(
        self,
        task_id: UUID,
        stage: str,
        error_code: str,
        error_message: str,
    ) -> None:
        """Log a failed pipeline stage."""
        await self.log(AuditEventBuilder.stage_failed(
            task_id=task_id,
            stage=stage,
            error_code=error_code,
            error_message=error_message,
        ))

    async def log_task_completed(self, task_id: UUID, confidence: float) -> None:
        await self.log(AuditEventBuilder.task_completed(task_id=task_id, confidence=confidence))

    async def log_task_failed(self, task_id: UUID, error_code: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.task_failed(
            task_id=task_id,
            error_code=error_code,
            error_message=error_message,
        ))

    async def log_access_denied(self, group_id: UUID, user_id: UUID, reason: str) -> None:
        """Log a rejected request from a non-member."""
        await self.log(AuditEventBuilder.access_denied(
            group_id=group_id,
            user_id=user_id,
            reason=reason,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))
