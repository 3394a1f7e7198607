"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets can back the task store because:
1. Task volume per group is tiny (one row per voice note)
2. No database setup required
3. Operators can inspect failed tasks directly in the sheet

TRADEOFFS:
- No transactions. A terminal transition is written as ONE full-row
  update, so a reader never sees a status without its payload.
- Limited query capabilities (we scan rows in Python)
- gspread is blocking, so calls run in a worker thread
"""

import asyncio
import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, stop_after_attempt, wait_exponential

from voice_expense.config import GoogleSheetsSettings, get_settings
from voice_expense.errors.taxonomy import ErrorCode
from voice_expense.models.audit import AuditEvent, AuditEventType, AuditSeverity
from voice_expense.models.expense import ExpenseDraft
from voice_expense.models.task import TaskStatus, TranscriptionTask
from voice_expense.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    StorageError,
    TaskNotFoundError,
    TaskStorageInterface,
    TaskTransitionError,
)

logger = structlog.get_logger(__name__)


# Column mappings for the tasks sheet
TASK_COLUMNS = [
    "id",
    "group_id",
    "user_id",
    "status",
    "created_at",
    "completed_at",
    "audio_mime_type",
    "audio_size_bytes",
    "transcription_text",
    "result_data_json",
    "confidence",
    "error_code",
    "error_message",
]

# Column mappings for the audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound as e:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def get_tasks_sheet(self) -> gspread.Worksheet:
        """Get or create the tasks worksheet."""
        return self._get_or_create(self._settings.tasks_sheet_name, TASK_COLUMNS, rows=1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the audit worksheet."""
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


def task_to_row(task: TranscriptionTask) -> list:
    """Convert a TranscriptionTask to a spreadsheet row."""
    return [
        str(task.id),
        str(task.group_id),
        str(task.user_id),
        task.status.value,
        task.created_at.isoformat(),
        task.completed_at.isoformat() if task.completed_at else "",
        task.audio_mime_type or "",
        str(task.audio_size_bytes),
        task.transcription_text or "",
        task.result_data.model_dump_json() if task.result_data else "",
        str(task.confidence) if task.confidence is not None else "",
        task.error_code.value if task.error_code else "",
        task.error_message or "",
    ]


def row_to_task(row: list) -> TranscriptionTask:
    """Convert a spreadsheet row to a TranscriptionTask."""
    # Handle missing trailing columns gracefully
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default

    result_json = safe_get(9)

    return TranscriptionTask(
        id=UUID(safe_get(0)),
        group_id=UUID(safe_get(1)),
        user_id=UUID(safe_get(2)),
        status=TaskStatus(safe_get(3)),
        created_at=datetime.fromisoformat(safe_get(4)),
        completed_at=datetime.fromisoformat(safe_get(5)) if safe_get(5) else None,
        audio_mime_type=safe_get(6) or None,
        audio_size_bytes=int(safe_get(7, "0")),
        transcription_text=safe_get(8) or None,
        result_data=ExpenseDraft.model_validate_json(result_json) if result_json else None,
        confidence=float(safe_get(10)) if safe_get(10) else None,
        error_code=ErrorCode(safe_get(11)) if safe_get(11) else None,
        error_message=safe_get(12) or None,
    )


class GoogleSheetsTaskStorage(TaskStorageInterface):
    """
    Google Sheets implementation of task storage.

    One task per row. Rows are never deleted by this service.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._write_lock = asyncio.Lock()

    async def create_task(self, task: TranscriptionTask) -> TranscriptionTask:
        if task.status != TaskStatus.PROCESSING:
            raise TaskTransitionError(task.id, "new", task.status.value)
        try:
            sheet = await asyncio.to_thread(self._client.get_tasks_sheet)
            await asyncio.to_thread(
                sheet.append_row, task_to_row(task), value_input_option="RAW"
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create task: {e}") from e
        return task

    async def get_task(self, task_id: UUID, user_id: UUID) -> TranscriptionTask:
        task = await self.find_task(task_id)
        if task is None or task.user_id != user_id:
            raise TaskNotFoundError(task_id)
        return task

    async def find_task(self, task_id: UUID) -> Optional[TranscriptionTask]:
        _, row = await self._locate(task_id)
        if row is None:
            return None
        return row_to_task(row)

    async def finish_task(self, task: TranscriptionTask) -> TranscriptionTask:
        if not task.is_terminal:
            raise TaskTransitionError(task.id, "processing", task.status.value)

        async with self._write_lock:
            row_index, row = await self._locate(task.id)
            if row is None:
                raise TaskNotFoundError(task.id)

            current = row_to_task(row)
            if current.is_terminal:
                raise TaskTransitionError(task.id, current.status.value, task.status.value)

            try:
                sheet = await asyncio.to_thread(self._client.get_tasks_sheet)
                first = rowcol_to_a1(row_index, 1)
                last = rowcol_to_a1(row_index, len(TASK_COLUMNS))
                await asyncio.to_thread(
                    sheet.update,
                    range_name=f"{first}:{last}",
                    values=[task_to_row(task)],
                    value_input_option="RAW",
                )
            except Exception as e:
                raise StorageError(f"Failed to update task: {e}") from e

        logger.info("task_row_updated", task_id=str(task.id), status=task.status.value)
        return task

    async def _locate(self, task_id: UUID) -> tuple[int, Optional[list]]:
        """Find the 1-based sheet row of a task."""
        try:
            sheet = await asyncio.to_thread(self._client.get_tasks_sheet)
            all_rows = await asyncio.to_thread(sheet.get_all_values)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read tasks: {e}") from e

        # Start from 2 (row 1 is header)
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == str(task_id):
                return idx, row
        return -1, None


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_code=safe_get(9) or None,
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        sheet = await asyncio.to_thread(self._client.get_audit_sheet)
        await asyncio.to_thread(
            sheet.append_row, event.to_sheets_row(), value_input_option="RAW"
        )
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            sheet = await asyncio.to_thread(self._client.get_audit_sheet)
            all_rows = await asyncio.to_thread(sheet.get_all_values)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events = []
        for row in all_rows[1:]:
            if row and len(row) > 6 and row[6] == str(correlation_id):
                try:
                    events.append(self._row_to_event(row))
                except (ValueError, json.JSONDecodeError):
                    logger.warning("audit_row_malformed", row_id=row[0])

        events.sort(key=lambda e: e.timestamp)
        return events
