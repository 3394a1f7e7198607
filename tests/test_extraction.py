"""Tests for expense extraction, confidence scoring and speech prompts."""

import asyncio
import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from voice_expense.config import GeminiSettings
from voice_expense.models.expense import ExpenseDraft, ExpenseSplit
from voice_expense.services.extraction import (
    ExtractionError,
    GeminiExpenseExtractionService,
    InvalidModelResponseError,
    build_extraction_context,
    final_confidence,
    heuristic_confidence,
    parse_draft,
)
from voice_expense.services.speech import (
    EmptyTranscriptError,
    GeminiSpeechToTextService,
    build_vocabulary_prompt,
)


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text):
        self.text = text
        self.prompts = []

    async def generate_content_async(self, contents):
        self.prompts.append(contents)
        return FakeResponse(self.text)


def gemini_settings():
    return GeminiSettings(api_key="test-key")


def draft_json(payer_id, splits, **overrides):
    payload = {
        "description": "Dinner",
        "amount": 120,
        "currency_code": "PLN",
        "expense_date": None,
        "payer_id": str(payer_id),
        "splits": [{"profile_id": str(pid), "amount": amount} for pid, amount in splits],
        "extraction_confidence": 0.9,
    }
    payload.update(overrides)
    return json.dumps(payload)


class TestConfidence:

    def test_complete_consistent_draft_scores_high(self, draft):
        # base + required + currency + payer + splits present + splits match
        assert heuristic_confidence(draft) == pytest.approx(1.0)

    def test_mismatched_splits_are_penalized(self, draft, user_id):
        bad = draft.model_copy(update={"splits": [ExpenseSplit(profile_id=user_id, amount=Decimal("10"))]})
        assert heuristic_confidence(bad) < heuristic_confidence(draft)

    def test_minimal_draft(self):
        draft = ExpenseDraft(description="Taxi", amount=Decimal("30"))
        assert heuristic_confidence(draft) == pytest.approx(0.7)

    def test_blend_with_model_confidence(self, draft):
        expected = 0.7 * 0.9 + 0.3 * heuristic_confidence(draft)
        assert final_confidence(draft) == pytest.approx(expected)

    def test_heuristic_only_without_model_confidence(self, draft):
        plain = draft.model_copy(update={"extraction_confidence": None})
        assert final_confidence(plain) == heuristic_confidence(plain)

    def test_always_within_bounds(self, draft):
        low = draft.model_copy(update={"extraction_confidence": 0.0})
        high = draft.model_copy(update={"extraction_confidence": 1.0})
        assert 0.0 <= final_confidence(low) <= 1.0
        assert 0.0 <= final_confidence(high) <= 1.0


class TestParseDraft:

    def test_parses_json_with_surrounding_text(self, group_context, user_id, friend_id):
        text = "Here you go:\n" + draft_json(user_id, [(user_id, 60), (friend_id, 60)]) + "\nDone."
        draft = parse_draft(text, group_context)
        assert draft.amount == Decimal("120")
        assert len(draft.splits) == 2

    def test_no_json(self, group_context):
        with pytest.raises(InvalidModelResponseError) as exc_info:
            parse_draft("I could not understand that", group_context)
        assert exc_info.value.raw_response == "I could not understand that"

    def test_invalid_fields(self, group_context, user_id):
        text = draft_json(user_id, [(user_id, 120)], amount=-5)
        with pytest.raises(InvalidModelResponseError):
            parse_draft(text, group_context)

    def test_rejects_unknown_payer(self, group_context, user_id):
        text = draft_json(uuid4(), [(user_id, 120)])
        with pytest.raises(InvalidModelResponseError, match="Payer"):
            parse_draft(text, group_context)

    def test_rejects_unknown_split_member(self, group_context, user_id):
        text = draft_json(user_id, [(user_id, 60), (uuid4(), 60)])
        with pytest.raises(InvalidModelResponseError, match="non-member"):
            parse_draft(text, group_context)


class TestGeminiExtraction:

    def test_context_marks_current_user(self, group_context, user_id):
        context = build_extraction_context(group_context, date(2024, 12, 15))
        assert f"Jan (ID: {user_id}) <- CURRENT USER" in context
        assert "Today's Date: 2024-12-15" in context
        assert "EUR: 4.3" in context

    def test_extract_defaults_currency(self, group_context, user_id, friend_id):
        model = FakeModel(draft_json(user_id, [(user_id, 60), (friend_id, 60)], currency_code=None))
        service = GeminiExpenseExtractionService(
            settings=gemini_settings(),
            model=model,
            today=lambda: date(2024, 12, 15),
        )

        draft = asyncio.run(service.extract('Dinner "120" with Anna', group_context))

        assert draft.currency_code == "PLN"
        assert 'Sentence: "Dinner \\"120\\" with Anna"' in model.prompts[0]

    def test_extract_rejects_empty_transcription(self, group_context):
        service = GeminiExpenseExtractionService(settings=gemini_settings(), model=FakeModel("{}"))
        with pytest.raises(ExtractionError):
            asyncio.run(service.extract("   ", group_context))


class TestGeminiSpeech:

    def test_vocabulary_prompt(self, group_context):
        prompt = build_vocabulary_prompt(group_context)
        assert "Members: Jan, Anna" in prompt
        assert "Currencies: PLN, EUR" in prompt

    def test_transcribe_sends_inline_audio(self):
        model = FakeModel("  I paid 120 for dinner  ")
        service = GeminiSpeechToTextService(settings=gemini_settings(), model=model)

        transcript = asyncio.run(
            service.transcribe(b"audio", "audio/webm;codecs=opus", prompt="Members: Jan")
        )

        assert transcript.text == "I paid 120 for dinner"
        instructions, blob = model.prompts[0]
        assert "Members: Jan" in instructions
        assert blob == {"mime_type": "audio/webm", "data": b"audio"}

    def test_empty_transcript(self):
        service = GeminiSpeechToTextService(settings=gemini_settings(), model=FakeModel("   "))
        with pytest.raises(EmptyTranscriptError):
            asyncio.run(service.transcribe(b"audio", "audio/wav"))
