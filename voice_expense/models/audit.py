"""
Audit Models for Voice Expense

Every significant step of a transcription task is logged for audit purposes.
This provides:
1. Traceability of every task from upload to terminal state
2. Debugging information when a stage fails
3. Visibility into external service failures (and their cost)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the transcription pipeline has its own event type.
    """
    # Task lifecycle
    TASK_CREATED = "task_created"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"

    # Stage A
    TRANSCRIPTION_STARTED = "transcription_started"
    TRANSCRIPTION_COMPLETED = "transcription_completed"
    TRANSCRIPTION_FAILED = "transcription_failed"

    # Stage B
    EXTRACTION_STARTED = "extraction_started"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"

    # Access
    ACCESS_DENIED = "access_denied"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'task', 'group')"
    )
    entity_id: Optional[UUID] = None

    # The task id doubles as the correlation id for all its events
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_code, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_code or "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.task_created(task_id, group_id, user_id, size)
        event = AuditEventBuilder.task_failed(task_id, "TRANSCRIPTION_FAILED", "...")
    """

    @staticmethod
    def task_created(
        task_id: UUID,
        group_id: UUID,
        user_id: UUID,
        audio_size_bytes: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_CREATED,
            entity_type="task",
            entity_id=task_id,
            correlation_id=task_id,
            description="Transcription task created",
            details={
                "group_id": str(group_id),
                "user_id": str(user_id),
                "audio_size_bytes": audio_size_bytes,
            },
            is_user_action=True,
        )

    @staticmethod
    def stage_started(task_id: UUID, stage: str) -> AuditEvent:
        event_type = (
            AuditEventType.TRANSCRIPTION_STARTED
            if stage == "transcription"
            else AuditEventType.EXTRACTION_STARTED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="task",
            entity_id=task_id,
            correlation_id=task_id,
            description=f"{stage.capitalize()} stage started",
            details={"stage": stage},
        )

    @staticmethod
    def transcription_completed(task_id: UUID, text_length: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSCRIPTION_COMPLETED,
            entity_type="task",
            entity_id=task_id,
            correlation_id=task_id,
            description=f"Transcription completed ({text_length} characters)",
            details={"text_length": text_length},
        )

    @staticmethod
    def extraction_completed(task_id: UUID, confidence: float) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="task",
            entity_id=task_id,
            correlation_id=task_id,
            description=f"Expense extracted with {confidence:.0%} confidence",
            details={"confidence": confidence},
        )

    @staticmethod
    def stage_failed(
        task_id: UUID,
        stage: str,
        error_code: str,
        error_message: str,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.TRANSCRIPTION_FAILED
            if stage == "transcription"
            else AuditEventType.EXTRACTION_FAILED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING,
            entity_type="task",
            entity_id=task_id,
            correlation_id=task_id,
            description=f"{stage.capitalize()} stage failed",
            details={"stage": stage},
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def task_completed(task_id: UUID, confidence: float) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_COMPLETED,
            entity_type="task",
            entity_id=task_id,
            correlation_id=task_id,
            description="Transcription task completed",
            details={"confidence": confidence},
        )

    @staticmethod
    def task_failed(task_id: UUID, error_code: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="task",
            entity_id=task_id,
            correlation_id=task_id,
            description=f"Transcription task failed: {error_code}",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def access_denied(group_id: UUID, user_id: UUID, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            entity_type="group",
            entity_id=group_id,
            description="Transcription request rejected: not an active group member",
            details={
                "user_id": str(user_id),
                "reason": reason,
            },
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
