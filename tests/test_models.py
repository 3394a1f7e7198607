"""
Tests for Voice Expense models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with faked external services)
3. No real API calls in tests
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from voice_expense.errors.taxonomy import ErrorCode
from voice_expense.models.audio import CapturedAudio
from voice_expense.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from voice_expense.models.expense import ExpenseDraft, ExpenseSplit
from voice_expense.models.task import (
    TaskStatus,
    TaskStatusResponse,
    TranscriptionTask,
    utcnow,
)


class TestExpenseModels:
    """Tests for expense draft models."""

    def test_draft_creation(self, draft):
        """Test ExpenseDraft model creation."""
        assert draft.description == "Dinner"
        assert draft.amount == Decimal("120")
        assert draft.splits_total == Decimal("120")
        assert draft.splits_match_amount()

    def test_draft_strips_whitespace(self):
        """Test that whitespace is stripped from the description."""
        draft = ExpenseDraft(description="  Taxi  ", amount=Decimal("30"))
        assert draft.description == "Taxi"

    def test_currency_is_uppercased(self):
        draft = ExpenseDraft(description="Taxi", amount=Decimal("30"), currency_code="eur")
        assert draft.currency_code == "EUR"

    def test_draft_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        with pytest.raises(ValueError):
            ExpenseDraft(description="Taxi", amount=Decimal("0"))

    def test_split_rejects_negative_amount(self):
        with pytest.raises(ValueError):
            ExpenseSplit(profile_id=uuid4(), amount=Decimal("-1"))

    def test_draft_rejects_bad_date_format(self):
        with pytest.raises(ValueError):
            ExpenseDraft(description="Taxi", amount=Decimal("30"), expense_date="yesterday")

    def test_draft_accepts_date_with_time(self):
        draft = ExpenseDraft(description="Taxi", amount=Decimal("30"), expense_date="2024-12-01T12:00")
        assert draft.expense_date == "2024-12-01T12:00"

    def test_confidence_bounds(self):
        """Test confidence must be between 0 and 1."""
        with pytest.raises(ValueError):
            ExpenseDraft(description="Taxi", amount=Decimal("30"), extraction_confidence=1.5)


class TestTaskInvariants:
    """A task carries a result XOR an error once terminal, and nothing before."""

    def _task(self):
        return TranscriptionTask(group_id=uuid4(), user_id=uuid4())

    def test_new_task_is_processing(self):
        task = self._task()
        assert task.status == TaskStatus.PROCESSING
        assert task.is_terminal is False
        assert task.completed_at is None

    def test_processing_task_cannot_carry_result(self, draft):
        with pytest.raises(ValueError):
            TranscriptionTask(group_id=uuid4(), user_id=uuid4(), result_data=draft)

    def test_processing_task_cannot_carry_error(self):
        with pytest.raises(ValueError):
            TranscriptionTask(
                group_id=uuid4(),
                user_id=uuid4(),
                error_code=ErrorCode.TRANSCRIPTION_FAILED,
            )

    def test_completed_record(self, draft):
        task = self._task()
        done = task.completed("I paid 120", draft, 0.8)

        assert done.id == task.id
        assert done.status == TaskStatus.COMPLETED
        assert done.completed_at is not None
        assert done.error_code is None
        assert done.created_at == task.created_at

    def test_completed_requires_transcription(self, draft):
        with pytest.raises(ValueError):
            TranscriptionTask(
                group_id=uuid4(),
                user_id=uuid4(),
                status=TaskStatus.COMPLETED,
                completed_at=utcnow(),
                result_data=draft,
                confidence=0.5,
            )

    def test_completed_cannot_carry_error(self, draft):
        with pytest.raises(ValueError):
            TranscriptionTask(
                group_id=uuid4(),
                user_id=uuid4(),
                status=TaskStatus.COMPLETED,
                completed_at=utcnow(),
                transcription_text="text",
                result_data=draft,
                confidence=0.5,
                error_code=ErrorCode.PARSING_FAILED,
            )

    def test_failed_record_keeps_transcription(self):
        task = self._task()
        failed = task.failed(ErrorCode.PARSING_FAILED, "Could not parse", transcription_text="hello")

        assert failed.status == TaskStatus.FAILED
        assert failed.transcription_text == "hello"
        assert failed.result_data is None
        assert failed.confidence is None

    def test_failed_requires_message(self):
        with pytest.raises(ValueError):
            TranscriptionTask(
                group_id=uuid4(),
                user_id=uuid4(),
                status=TaskStatus.FAILED,
                completed_at=utcnow(),
                error_code=ErrorCode.TRANSCRIPTION_FAILED,
            )


class TestStatusResponse:
    """Tests for TaskStatusResponse.from_task."""

    def test_processing_has_neither_result_nor_error(self):
        task = TranscriptionTask(group_id=uuid4(), user_id=uuid4())
        response = TaskStatusResponse.from_task(task)
        assert response.status == TaskStatus.PROCESSING
        assert response.result is None
        assert response.error is None

    def test_completed_has_result(self, draft):
        task = TranscriptionTask(group_id=uuid4(), user_id=uuid4()).completed("text", draft, 0.75)
        response = TaskStatusResponse.from_task(task)
        assert response.result.transcription == "text"
        assert response.result.expense_data == draft
        assert response.result.confidence == 0.75
        assert response.error is None

    def test_failed_has_error(self):
        task = TranscriptionTask(group_id=uuid4(), user_id=uuid4()).failed(
            ErrorCode.TRANSCRIPTION_FAILED, "Could not transcribe the recording"
        )
        response = TaskStatusResponse.from_task(task)
        assert response.result is None
        assert response.error.code == ErrorCode.TRANSCRIPTION_FAILED
        assert response.error.retryable is True


class TestCapturedAudio:

    def test_size_and_filename(self):
        audio = CapturedAudio(data=b"abcd", mime_type="audio/webm;codecs=opus")
        assert audio.size_bytes == 4
        assert audio.filename == "recording.webm"

    def test_is_immutable(self):
        audio = CapturedAudio(data=b"abcd")
        with pytest.raises(ValueError):
            audio.data = b"other"


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TASK_CREATED,
            description="Task created",
        )
        assert event.event_type == AuditEventType.TASK_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.TASK_COMPLETED,
            description="Task completed",
            details={"confidence": 0.8},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "task_completed"
        assert log_dict["details"]["confidence"] == 0.8

    def test_builder_task_created(self):
        task_id = uuid4()
        event = AuditEventBuilder.task_created(
            task_id=task_id,
            group_id=uuid4(),
            user_id=uuid4(),
            audio_size_bytes=1024,
        )
        assert event.event_type == AuditEventType.TASK_CREATED
        assert event.entity_id == task_id
        assert event.correlation_id == task_id
        assert event.is_user_action is True

    def test_builder_stage_failed(self):
        event = AuditEventBuilder.stage_failed(
            task_id=uuid4(),
            stage="transcription",
            error_code="TRANSCRIPTION_FAILED",
            error_message="boom",
        )
        assert event.event_type == AuditEventType.TRANSCRIPTION_FAILED
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "TRANSCRIPTION_FAILED"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
