"""Speech-to-text services (pipeline stage A)."""

from voice_expense.services.speech.interface import (
    EmptyTranscriptError,
    SpeechToTextError,
    SpeechToTextService,
    SpeechTranscript,
)
from voice_expense.services.speech.gemini_service import (
    GeminiSpeechToTextService,
    build_vocabulary_prompt,
)

__all__ = [
    "EmptyTranscriptError",
    "GeminiSpeechToTextService",
    "SpeechToTextError",
    "SpeechToTextService",
    "SpeechTranscript",
    "build_vocabulary_prompt",
]
