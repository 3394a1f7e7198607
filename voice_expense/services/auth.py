"""
Authentication and Group Membership

DESIGN DECISION: Identity and membership live behind one small interface.
The API layer resolves the caller from a bearer token, then captures the
GroupContext ONCE per task. The pipeline never re-checks membership.

StaticAuthContextProvider reads a JSON directory file:

    {
      "tokens": {"<token>": "<user uuid>"},
      "groups": [
        {
          "id": "<group uuid>",
          "name": "Trip",
          "base_currency": "PLN",
          "members": [{"id": "<uuid>", "name": "Anna", "email": "anna@example.com"}],
          "currencies": [{"code": "EUR", "rate": 4.3}]
        }
      ]
    }
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from voice_expense.models.group import GroupContext, GroupCurrency, GroupMember

logger = structlog.get_logger(__name__)


class GroupAccessDeniedError(Exception):
    """The user is not an active member of the group (or it does not exist)."""

    def __init__(self, group_id: UUID, user_id: UUID):
        self.group_id = group_id
        self.user_id = user_id
        super().__init__(f"User is not an active member of group {group_id}")


class AuthContextProvider(ABC):
    """Resolves callers and their group membership."""

    @abstractmethod
    async def authenticate(self, token: str) -> Optional[UUID]:
        """Return the user id for a bearer token, or None if invalid."""
        pass

    @abstractmethod
    async def get_group_context(self, group_id: UUID, user_id: UUID) -> GroupContext:
        """
        Build the group context for a member.

        Raises:
            GroupAccessDeniedError: If user_id is not an active member
        """
        pass


class GroupRecord(BaseModel):
    """A group as stored in the directory file."""

    id: UUID
    name: str
    base_currency: str = Field(..., min_length=3, max_length=3)
    members: list[GroupMember] = Field(default_factory=list)
    currencies: list[GroupCurrency] = Field(default_factory=list)


class AuthDirectory(BaseModel):
    """Contents of the directory file."""

    tokens: dict[str, UUID] = Field(default_factory=dict)
    groups: list[GroupRecord] = Field(default_factory=list)


class StaticAuthContextProvider(AuthContextProvider):
    """Token and membership lookups against an in-memory directory."""

    def __init__(self, directory: AuthDirectory):
        self._tokens = dict(directory.tokens)
        self._groups = {g.id: g for g in directory.groups}

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "StaticAuthContextProvider":
        """Load a directory file. A missing file yields an empty directory."""
        path = Path(path)
        if not path.exists():
            logger.warning("auth_directory_missing", path=str(path))
            return cls(AuthDirectory())
        with path.open(encoding="utf-8") as fh:
            return cls(AuthDirectory.model_validate(json.load(fh)))

    async def authenticate(self, token: str) -> Optional[UUID]:
        if not token:
            return None
        return self._tokens.get(token)

    async def get_group_context(self, group_id: UUID, user_id: UUID) -> GroupContext:
        group = self._groups.get(group_id)
        if group is None or all(m.id != user_id for m in group.members):
            raise GroupAccessDeniedError(group_id, user_id)

        return GroupContext(
            group_id=group.id,
            group_name=group.name,
            base_currency=group.base_currency,
            user_id=user_id,
            members=list(group.members),
            currencies=list(group.currencies),
        )
