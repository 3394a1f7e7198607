"""HTTP API for voice expense transcription."""

from voice_expense.api.app import create_app

__all__ = ["create_app"]
