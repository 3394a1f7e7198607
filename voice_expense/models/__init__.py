"""
Data Models Package

This package contains all Pydantic models used in Voice Expense.
All data crossing the client/server boundary must conform to these schemas.
"""

from voice_expense.models.audio import CapturedAudio
from voice_expense.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from voice_expense.models.expense import ExpenseDraft, ExpenseSplit
from voice_expense.models.group import GroupContext, GroupCurrency, GroupMember
from voice_expense.models.task import (
    ErrorResponse,
    TaskCreatedResponse,
    TaskStatus,
    TaskStatusResponse,
    TranscriptionResult,
    TranscriptionTask,
)

__all__ = [
    # Audio
    "CapturedAudio",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Expense models
    "ExpenseDraft",
    "ExpenseSplit",
    # Group models
    "GroupContext",
    "GroupCurrency",
    "GroupMember",
    # Task models
    "ErrorResponse",
    "TaskCreatedResponse",
    "TaskStatus",
    "TaskStatusResponse",
    "TranscriptionResult",
    "TranscriptionTask",
]
