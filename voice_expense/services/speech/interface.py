"""
Speech-to-Text Interface

Stage A of the transcription pipeline. An implementation receives the raw
audio bytes exactly as uploaded and returns plain text. It knows nothing
about tasks, groups or expenses beyond the optional prompt.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field


class SpeechTranscript(BaseModel):
    """Output of a speech-to-text call."""

    text: str = Field(..., min_length=1)
    language: Optional[str] = None
    duration_seconds: Optional[float] = Field(default=None, ge=0.0)


class SpeechToTextError(Exception):
    """Base exception for speech-to-text failures."""
    pass


class EmptyTranscriptError(SpeechToTextError):
    """The service returned no usable text."""
    pass


class SpeechToTextService(ABC):
    """Converts audio to text."""

    @abstractmethod
    async def transcribe(
        self,
        audio_bytes: bytes,
        mime_type: str,
        prompt: Optional[str] = None,
    ) -> SpeechTranscript:
        """
        Transcribe an audio buffer.

        Args:
            audio_bytes: Encoded audio exactly as uploaded
            mime_type: MIME type of the buffer
            prompt: Vocabulary hint (group name, member names)

        Raises:
            SpeechToTextError: If the audio could not be transcribed
        """
        pass
