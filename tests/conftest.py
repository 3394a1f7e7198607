"""
Shared fixtures for Voice Expense tests.

No test talks to a real microphone, Gemini or Google Sheets; every
external collaborator is replaced by one of the fakes below.
"""

import threading
from decimal import Decimal
from typing import Optional
from uuid import uuid4

import pytest

from voice_expense.capture.devices import AudioInputDevice
from voice_expense.models.expense import ExpenseDraft, ExpenseSplit
from voice_expense.models.group import GroupContext, GroupCurrency, GroupMember
from voice_expense.services.auth import AuthDirectory, GroupRecord, StaticAuthContextProvider
from voice_expense.services.extraction import ExpenseExtractionService
from voice_expense.services.speech import SpeechToTextService, SpeechTranscript


class FakeMicrophone(AudioInputDevice):
    """Counts opens and closes; never touches real hardware."""

    def __init__(self, open_error: Optional[Exception] = None):
        self.open_error = open_error
        self.read_error: Optional[Exception] = None
        self.open_calls = 0
        self.close_calls = 0

    @property
    def mime_type(self) -> str:
        return "audio/wav"

    def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error

    def read_chunk(self) -> bytes:
        if self.read_error is not None:
            raise self.read_error
        return b"\x01\x02"

    def flush(self) -> bytes:
        return b"\x03\x04"

    def close(self) -> None:
        self.close_calls += 1

    def encode(self, frames: bytes) -> bytes:
        return b"RIFF" + frames


class SlowMicrophone(FakeMicrophone):
    """Blocks in open() until the test lets it finish."""

    def __init__(self):
        super().__init__()
        self.opening = threading.Event()
        self.proceed = threading.Event()

    def open(self) -> None:
        super().open()
        self.opening.set()
        self.proceed.wait(2.0)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSpeechService(SpeechToTextService):
    def __init__(self, text: str = "I paid 120 for dinner with Anna"):
        self.text = text
        self.error: Optional[Exception] = None
        self.calls: list[tuple[bytes, str, Optional[str]]] = []

    async def transcribe(self, audio_bytes, mime_type, prompt=None):
        self.calls.append((audio_bytes, mime_type, prompt))
        if self.error is not None:
            raise self.error
        return SpeechTranscript(text=self.text)


class FakeExtractionService(ExpenseExtractionService):
    def __init__(self, draft: Optional[ExpenseDraft] = None):
        self.draft = draft
        self.error: Optional[Exception] = None
        self.calls: list[str] = []

    async def extract(self, transcription, context):
        self.calls.append(transcription)
        if self.error is not None:
            raise self.error
        return self.draft


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def friend_id():
    return uuid4()


@pytest.fixture
def group_id():
    return uuid4()


@pytest.fixture
def members(user_id, friend_id):
    return [
        GroupMember(id=user_id, name="Jan", email="jan@example.com"),
        GroupMember(id=friend_id, name="Anna", email="anna@example.com"),
    ]


@pytest.fixture
def group_context(group_id, user_id, members):
    return GroupContext(
        group_id=group_id,
        group_name="Trip",
        base_currency="PLN",
        user_id=user_id,
        members=members,
        currencies=[GroupCurrency(code="PLN", rate=1.0), GroupCurrency(code="EUR", rate=4.3)],
    )


@pytest.fixture
def draft(user_id, friend_id):
    return ExpenseDraft(
        description="Dinner",
        amount=Decimal("120"),
        currency_code="PLN",
        payer_id=user_id,
        splits=[
            ExpenseSplit(profile_id=user_id, amount=Decimal("60")),
            ExpenseSplit(profile_id=friend_id, amount=Decimal("60")),
        ],
        extraction_confidence=0.9,
    )


@pytest.fixture
def speech_service():
    return FakeSpeechService()


@pytest.fixture
def extraction_service(draft):
    return FakeExtractionService(draft)


@pytest.fixture
def microphone():
    return FakeMicrophone()


@pytest.fixture
def slow_microphone():
    return SlowMicrophone()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def auth_provider(group_id, user_id, friend_id, members):
    directory = AuthDirectory(
        tokens={"jan-token": user_id, "anna-token": friend_id, "stranger-token": uuid4()},
        groups=[
            GroupRecord(id=group_id, name="Trip", base_currency="PLN", members=members),
        ],
    )
    return StaticAuthContextProvider(directory)
