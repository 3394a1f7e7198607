"""
Confidence Scoring for Expense Drafts

The extraction model may report its own confidence. We never trust it
alone: a completeness heuristic is blended in so a self-confident model
that returns splits which do not add up still gets marked down.
"""

from decimal import Decimal

from voice_expense.models.expense import ExpenseDraft


LLM_WEIGHT = 0.7
HEURISTIC_WEIGHT = 0.3

BASE_SCORE = 0.5
REQUIRED_FIELDS_BONUS = 0.2
OPTIONAL_FIELD_BONUS = 0.05
SPLITS_PRESENT_BONUS = 0.1
SPLITS_MATCH_BONUS = 0.1
SPLITS_MISMATCH_PENALTY = 0.15

SPLITS_TOLERANCE = Decimal("0.01")
# Splits off by more than this share of the amount are penalized
SPLITS_MISMATCH_RATIO = Decimal("0.1")


def heuristic_confidence(draft: ExpenseDraft) -> float:
    """
    Score a draft by completeness and internal consistency.

    Returns a value between 0.0 and 1.0.
    """
    score = BASE_SCORE

    if draft.description.strip() and draft.amount > 0:
        score += REQUIRED_FIELDS_BONUS

    if draft.currency_code:
        score += OPTIONAL_FIELD_BONUS
    if draft.expense_date:
        score += OPTIONAL_FIELD_BONUS
    if draft.payer_id:
        score += OPTIONAL_FIELD_BONUS

    if draft.splits:
        score += SPLITS_PRESENT_BONUS

        difference = abs(draft.splits_total - draft.amount)
        if difference <= SPLITS_TOLERANCE:
            score += SPLITS_MATCH_BONUS
        elif difference > draft.amount * SPLITS_MISMATCH_RATIO:
            score -= SPLITS_MISMATCH_PENALTY

    return max(0.0, min(score, 1.0))


def final_confidence(draft: ExpenseDraft) -> float:
    """
    Overall confidence stored on a completed task.

    70% model assessment, 30% heuristic when the model reported one;
    the heuristic alone otherwise.
    """
    heuristic = heuristic_confidence(draft)
    if draft.extraction_confidence is None:
        return heuristic

    blended = LLM_WEIGHT * draft.extraction_confidence + HEURISTIC_WEIGHT * heuristic
    return max(0.0, min(blended, 1.0))
