"""
Expense Extraction Interface

Stage B of the transcription pipeline. Turns a transcription plus the
group context into a structured ExpenseDraft.

CRITICAL BOUNDARIES:
- CAN: Map spoken names to member ids from the provided context
- CANNOT: Invent members, currencies or amounts not present in the text
- CANNOT: Persist anything. The draft is reviewed by the user.
"""

from abc import ABC, abstractmethod

from voice_expense.models.expense import ExpenseDraft
from voice_expense.models.group import GroupContext


class ExtractionError(Exception):
    """Base exception for extraction failures."""
    pass


class InvalidModelResponseError(ExtractionError):
    """The model returned something that is not a valid expense draft."""

    def __init__(self, message: str, raw_response: str = ""):
        self.raw_response = raw_response
        super().__init__(message)


class ExpenseExtractionService(ABC):
    """Extracts a structured expense from free text."""

    @abstractmethod
    async def extract(
        self,
        transcription: str,
        context: GroupContext,
    ) -> ExpenseDraft:
        """
        Extract an expense draft.

        Raises:
            ExtractionError: If no valid draft could be produced
        """
        pass
