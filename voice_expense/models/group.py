"""
Group Context Models

The group context is captured ONCE when a task is created (after the
membership check) and reused by both pipeline stages. It is never
re-validated per stage.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class GroupMember(BaseModel):
    """An active member of a group."""

    id: UUID
    name: str = Field(..., min_length=1)
    email: str = ""


class GroupCurrency(BaseModel):
    """A currency enabled for a group with its rate to the base currency."""

    code: str = Field(..., min_length=3, max_length=3)
    rate: float = Field(..., gt=0)


class GroupContext(BaseModel):
    """Everything the pipeline needs to know about the caller's group."""

    group_id: UUID
    group_name: str
    base_currency: str = Field(..., min_length=3, max_length=3)
    user_id: UUID = Field(
        ...,
        description="The member who is speaking"
    )
    members: list[GroupMember] = Field(default_factory=list)
    currencies: list[GroupCurrency] = Field(default_factory=list)

    @property
    def current_member(self) -> Optional[GroupMember]:
        return next((m for m in self.members if m.id == self.user_id), None)
