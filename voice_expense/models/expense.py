"""
Expense Draft Models

The extraction stage turns a transcription into an ExpenseDraft.

CRITICAL: A draft is PROPOSED data, NOT a saved expense.
The user reviews it in the expense form before anything is persisted.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExpenseSplit(BaseModel):
    """One participant's share of an expense."""

    profile_id: UUID = Field(
        ...,
        description="Group member who owes this share"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Share of the total amount"
    )


class ExpenseDraft(BaseModel):
    """
    Structured expense extracted from speech.

    Only description, amount and splits are required. Everything else
    may be missing from what the user said and is filled in by the form.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What was purchased or paid for"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Total amount of the expense"
    )
    currency_code: Optional[str] = Field(
        default=None,
        min_length=3,
        max_length=3,
        description="ISO 4217 currency code"
    )
    expense_date: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2})?$",
        description="When the expense happened (YYYY-MM-DDTHH:MM)"
    )
    payer_id: Optional[UUID] = Field(
        default=None,
        description="Member who paid; None means the speaking user"
    )
    splits: list[ExpenseSplit] = Field(
        default_factory=list,
        description="How the amount is divided between members"
    )
    extraction_confidence: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Confidence reported by the extraction model"
    )

    @field_validator('currency_code')
    @classmethod
    def normalize_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @property
    def splits_total(self) -> Decimal:
        return sum((split.amount for split in self.splits), Decimal("0"))

    def splits_match_amount(self, tolerance: Decimal = Decimal("0.01")) -> bool:
        """Check whether the splits add up to the total amount."""
        return abs(self.splits_total - self.amount) <= tolerance
