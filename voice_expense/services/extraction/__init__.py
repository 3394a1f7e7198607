"""Expense extraction services (pipeline stage B)."""

from voice_expense.services.extraction.confidence import (
    final_confidence,
    heuristic_confidence,
)
from voice_expense.services.extraction.gemini_service import (
    GeminiExpenseExtractionService,
    build_extraction_context,
    parse_draft,
)
from voice_expense.services.extraction.interface import (
    ExpenseExtractionService,
    ExtractionError,
    InvalidModelResponseError,
)

__all__ = [
    "ExpenseExtractionService",
    "ExtractionError",
    "GeminiExpenseExtractionService",
    "InvalidModelResponseError",
    "build_extraction_context",
    "final_confidence",
    "heuristic_confidence",
    "parse_draft",
]
