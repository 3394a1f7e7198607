"""Client side of the transcription API: upload, polling and the combined flow."""

from voice_expense.client.flow import FlowResult, VoiceExpenseFlow, create_client_flow
from voice_expense.client.poller import (
    CancellationToken,
    HttpStatusFetcher,
    PollingFailure,
    PollingState,
    PollingStatus,
    TaskPoller,
    estimate_progress,
    phase_message,
)
from voice_expense.client.upload import UploadClient, UploadOutcome

__all__ = [
    "CancellationToken",
    "FlowResult",
    "HttpStatusFetcher",
    "PollingFailure",
    "PollingState",
    "PollingStatus",
    "TaskPoller",
    "UploadClient",
    "UploadOutcome",
    "VoiceExpenseFlow",
    "create_client_flow",
    "estimate_progress",
    "phase_message",
]
