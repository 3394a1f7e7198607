"""
In-Memory Storage Implementation

Default backend for development and the backend used by the tests.
A single asyncio.Lock serializes writes, which makes every terminal
transition linearizable: once a reader sees a terminal record it never
changes again.
"""

import asyncio
from typing import Optional
from uuid import UUID

from voice_expense.models.audit import AuditEvent
from voice_expense.models.task import TaskStatus, TranscriptionTask
from voice_expense.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    TaskNotFoundError,
    TaskStorageInterface,
    TaskTransitionError,
)


class InMemoryTaskStorage(TaskStorageInterface):
    """Keeps tasks in a dict keyed by task id."""

    def __init__(self):
        self._tasks: dict[UUID, TranscriptionTask] = {}
        self._lock = asyncio.Lock()

    async def create_task(self, task: TranscriptionTask) -> TranscriptionTask:
        if task.status != TaskStatus.PROCESSING:
            raise TaskTransitionError(task.id, "new", task.status.value)
        async with self._lock:
            if task.id in self._tasks:
                raise DuplicateError(f"Task already exists: {task.id}")
            self._tasks[task.id] = task
        return task

    async def get_task(self, task_id: UUID, user_id: UUID) -> TranscriptionTask:
        task = self._tasks.get(task_id)
        # A task owned by someone else looks exactly like a missing one
        if task is None or task.user_id != user_id:
            raise TaskNotFoundError(task_id)
        return task

    async def find_task(self, task_id: UUID) -> Optional[TranscriptionTask]:
        return self._tasks.get(task_id)

    async def finish_task(self, task: TranscriptionTask) -> TranscriptionTask:
        if not task.is_terminal:
            raise TaskTransitionError(task.id, "processing", task.status.value)
        async with self._lock:
            current = self._tasks.get(task.id)
            if current is None:
                raise TaskNotFoundError(task.id)
            if current.is_terminal:
                raise TaskTransitionError(task.id, current.status.value, task.status.value)
            self._tasks[task.id] = task
        return task

    def __len__(self) -> int:
        return len(self._tasks)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)
