"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for task storage.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the pipeline decoupled from the storage engine

The task store has exactly one writer (the pipeline) and many readers
(pollers through the API). Implementations MUST:
- write a terminal transition as ONE update (status + payload together)
- refuse any write against a task that is already terminal
- check ownership on every read
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from voice_expense.models.audit import AuditEvent
from voice_expense.models.task import TranscriptionTask


class TaskStorageInterface(ABC):
    """
    Abstract interface for transcription task storage.

    Any storage implementation (in-memory, Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def create_task(self, task: TranscriptionTask) -> TranscriptionTask:
        """
        Persist a new task in the processing state.

        Raises:
            StorageError: If the write fails
            DuplicateError: If a task with the same id exists
        """
        pass

    @abstractmethod
    async def get_task(self, task_id: UUID, user_id: UUID) -> TranscriptionTask:
        """
        Retrieve a task owned by user_id.

        Raises:
            TaskNotFoundError: If the task does not exist OR belongs to someone else
        """
        pass

    @abstractmethod
    async def find_task(self, task_id: UUID) -> Optional[TranscriptionTask]:
        """
        Retrieve a task without an ownership check.

        Only the pipeline uses this; it must never back a client-facing read.
        """
        pass

    @abstractmethod
    async def finish_task(self, task: TranscriptionTask) -> TranscriptionTask:
        """
        Atomically replace a processing task with its terminal record.

        Args:
            task: The terminal record (status completed or failed)

        Raises:
            TaskNotFoundError: If the task doesn't exist
            TaskTransitionError: If the stored task is already terminal
                or the new record is not terminal
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event to the log. Returns True on success."""
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class TaskNotFoundError(StorageError):
    """Task not found, or not visible to the caller."""

    def __init__(self, task_id: UUID):
        self.task_id = task_id
        super().__init__(f"Transcription task not found: {task_id}")


class TaskTransitionError(StorageError):
    """Attempted a status transition that would break monotonicity."""

    def __init__(self, task_id: UUID, current: str, requested: str):
        self.task_id = task_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Task {task_id} cannot move from '{current}' to '{requested}'"
        )


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
