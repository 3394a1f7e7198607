"""
Expense Extraction using Gemini

The model is a TRANSLATOR, not an ORACLE.
It converts a spoken sentence into the structured fields of an expense
using ONLY the members and currencies of the caller's group.

Output is requested as JSON and validated against ExpenseDraft. Anything
that does not validate, or that references someone outside the group, is
rejected rather than repaired.
"""

import json
from datetime import date
from typing import Callable, Optional

import google.generativeai as genai
import structlog
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from voice_expense.config import GeminiSettings, get_settings
from voice_expense.models.expense import ExpenseDraft
from voice_expense.models.group import GroupContext
from voice_expense.services.extraction.interface import (
    ExpenseExtractionService,
    ExtractionError,
    InvalidModelResponseError,
)

logger = structlog.get_logger(__name__)


EXTRACTION_INSTRUCTIONS = """You extract a single shared expense from a spoken sentence for a bill-splitting app.

{context}

EXTRACTION INSTRUCTIONS:

1. DESCRIPTION & AMOUNT (required):
   - What was purchased or paid for, and the total amount
   - Example: "dinner at the restaurant for 300" -> description: "Dinner at the restaurant", amount: 300

2. CURRENCY (optional):
   - If a currency is mentioned, normalize it to a 3-letter ISO code (PLN, EUR, USD)
   - If none is mentioned, use {base_currency}

3. PAYER (optional):
   - "I paid" / "me" -> the CURRENT USER ({user_id})
   - A named member -> that member's ID from the list above
   - Nobody mentioned -> payer_id: null

4. DATE (optional):
   - "today" -> {today}; "yesterday" -> 1 day ago; "N days ago" -> N days ago
   - A weekday -> its most recent occurrence
   - Format: YYYY-MM-DDTHH:MM, use 12:00 when no time is given
   - Nothing mentioned -> expense_date: null

5. PARTICIPANTS & SPLITS (required):
   - "everyone" / "split equally" -> all members, equal split
   - "me and NAME" -> the CURRENT USER ({user_id}) and that member
   - Nobody mentioned -> all members, equal split
   - Explicit shares ("me 100, him 200") are used as spoken
   - The last participant absorbs rounding differences
   - Splits MUST sum to the amount (0.01 tolerance)

6. OUTPUT:
   - Use member IDs, never names
   - NEVER reference anyone outside the member list
   - Report extraction_confidence between 0.0 and 1.0

Respond with ONLY a JSON object in this exact format:
{{"description": "...", "amount": 0.0, "currency_code": "PLN", "expense_date": null, "payer_id": null, "splits": [{{"profile_id": "...", "amount": 0.0}}], "extraction_confidence": 0.9}}

Sentence: "{transcription}"
"""


def build_extraction_context(context: GroupContext, today: date) -> str:
    """Describe the caller's group for the extraction model."""
    current = context.current_member
    current_name = current.name if current else "Unknown User"

    member_lines = []
    for idx, member in enumerate(context.members, start=1):
        marker = " <- CURRENT USER (speaking)" if member.id == context.user_id else ""
        member_lines.append(f"{idx}. {member.name} (ID: {member.id}){marker}")

    currencies = ", ".join(f"{c.code}: {c.rate}" for c in context.currencies) or context.base_currency

    return "\n".join([
        f'Group: "{context.group_name}"',
        f"Group ID: {context.group_id}",
        f"Base Currency: {context.base_currency}",
        f"Today's Date: {today.isoformat()}",
        "",
        f"CURRENT USER (person speaking): {current_name} (ID: {context.user_id})",
        "",
        "Available Group Members:",
        "\n".join(member_lines),
        "",
        "Available Currencies with Exchange Rates:",
        currencies,
    ])


def parse_draft(text: str, context: GroupContext) -> ExpenseDraft:
    """
    Parse and validate the model's JSON answer.

    Raises:
        InvalidModelResponseError: If the answer is not a valid draft
    """
    # Find JSON in response
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise InvalidModelResponseError("Model response contains no JSON object", text)

    try:
        draft = ExpenseDraft.model_validate_json(text[start:end])
    except ValidationError as e:
        raise InvalidModelResponseError(
            f"Model response is not a valid expense: {e.error_count()} validation error(s)",
            text,
        ) from e

    member_ids = {m.id for m in context.members}
    if draft.payer_id is not None and draft.payer_id not in member_ids:
        raise InvalidModelResponseError("Payer is not a member of the group", text)
    unknown = [s.profile_id for s in draft.splits if s.profile_id not in member_ids]
    if unknown:
        raise InvalidModelResponseError(
            f"Splits reference {len(unknown)} non-member(s)", text
        )

    return draft


class GeminiExpenseExtractionService(ExpenseExtractionService):
    """Gemini-backed structured extraction with JSON output."""

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Optional[genai.GenerativeModel] = None,
        today: Callable[[], date] = date.today,
    ):
        self._settings = settings or get_settings().gemini
        self._model = model or self._create_model()
        self._today = today

    def _create_model(self) -> genai.GenerativeModel:
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.extraction_model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            },
        )

    async def extract(
        self,
        transcription: str,
        context: GroupContext,
    ) -> ExpenseDraft:
        if not transcription.strip():
            raise ExtractionError("Transcription is empty")

        prompt = EXTRACTION_INSTRUCTIONS.format(
            context=build_extraction_context(context, self._today()),
            base_currency=context.base_currency,
            user_id=context.user_id,
            today=self._today().isoformat(),
            # The sentence is embedded in quotes
            transcription=json.dumps(transcription)[1:-1],
        )

        try:
            text = await self._generate(prompt)
        except Exception as e:
            logger.warning("extraction_call_failed", error=str(e))
            raise ExtractionError(f"Extraction call failed: {e}") from e

        draft = parse_draft(text, context)

        # The model may omit the currency even when told to default it
        if draft.currency_code is None:
            draft = draft.model_copy(update={"currency_code": context.base_currency})

        return draft

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, prompt: str) -> str:
        response = await self._model.generate_content_async(prompt)
        return (response.text or "").strip()
