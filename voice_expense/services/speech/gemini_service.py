"""
Speech-to-Text using Gemini

DESIGN DECISION: We use Gemini for transcription because:
1. The same SDK and API key already power the extraction stage
2. Audio can be sent inline, so no file hosting is needed
3. A text prompt can carry the group's vocabulary (member names)

The model is asked to transcribe VERBATIM. It must not interpret,
summarize or translate. Interpretation is stage B's job.
"""

from typing import Optional

import google.generativeai as genai
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from voice_expense.config import GeminiSettings, get_settings
from voice_expense.models.group import GroupContext
from voice_expense.services.speech.interface import (
    EmptyTranscriptError,
    SpeechToTextError,
    SpeechToTextService,
    SpeechTranscript,
)

logger = structlog.get_logger(__name__)


TRANSCRIPTION_INSTRUCTIONS = """Transcribe the attached audio recording word for word.

Rules:
- Output ONLY the spoken words, with no commentary, labels or quotes
- Keep the original language ({language}); do NOT translate
- Write numbers as digits and keep currency words as spoken
- If nothing intelligible is said, output an empty response"""


def build_vocabulary_prompt(context: GroupContext) -> str:
    """Vocabulary hint with the group name and its member names."""
    member_names = ", ".join(m.name for m in context.members)
    currencies = ", ".join(
        [context.base_currency] + [c.code for c in context.currencies if c.code != context.base_currency]
    )
    return f"Group: {context.group_name}. Members: {member_names}. Currencies: {currencies}."


class GeminiSpeechToTextService(SpeechToTextService):
    """Gemini-backed transcription with inline audio."""

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Optional[genai.GenerativeModel] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._model = model or self._create_model()

    def _create_model(self) -> genai.GenerativeModel:
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.speech_model_name,
            generation_config={
                "temperature": 0.0,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    async def transcribe(
        self,
        audio_bytes: bytes,
        mime_type: str,
        prompt: Optional[str] = None,
    ) -> SpeechTranscript:
        if not audio_bytes:
            raise SpeechToTextError("Audio buffer is empty")

        instructions = TRANSCRIPTION_INSTRUCTIONS.format(
            language=self._settings.transcription_language
        )
        if prompt:
            instructions = f"{instructions}\n\nContext: {prompt}"

        try:
            text = await self._generate(instructions, audio_bytes, mime_type)
        except Exception as e:
            logger.warning("speech_to_text_failed", error=str(e), mime_type=mime_type)
            raise SpeechToTextError(f"Speech-to-text call failed: {e}") from e

        text = text.strip()
        if not text:
            raise EmptyTranscriptError("No speech detected in the recording")

        return SpeechTranscript(
            text=text,
            language=self._settings.transcription_language,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, instructions: str, audio_bytes: bytes, mime_type: str) -> str:
        # Parameters after ';' (e.g. codecs) are not accepted by the API
        base_mime_type = mime_type.split(";")[0].strip()
        response = await self._model.generate_content_async(
            [
                instructions,
                {"mime_type": base_mime_type, "data": audio_bytes},
            ]
        )
        return response.text or ""
