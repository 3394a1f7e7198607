"""
Storage Services Package

Provides abstract interfaces and concrete implementations for task storage.
In-memory storage is the default; Google Sheets is the durable backend.
"""

from voice_expense.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    StorageError,
    TaskNotFoundError,
    TaskStorageInterface,
    TaskTransitionError,
)
from voice_expense.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryTaskStorage,
)
from voice_expense.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTaskStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "TaskStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "StorageError",
    "TaskNotFoundError",
    "TaskTransitionError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryTaskStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTaskStorage",
]
