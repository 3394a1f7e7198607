"""Tests for caller authentication and group membership."""

import asyncio
import json
from uuid import uuid4

import pytest

from voice_expense.services.auth import GroupAccessDeniedError, StaticAuthContextProvider


class TestStaticAuthContextProvider:

    def test_authenticate(self, auth_provider, user_id):
        assert asyncio.run(auth_provider.authenticate("jan-token")) == user_id
        assert asyncio.run(auth_provider.authenticate("nope")) is None
        assert asyncio.run(auth_provider.authenticate("")) is None

    def test_group_context_for_member(self, auth_provider, group_id, user_id):
        context = asyncio.run(auth_provider.get_group_context(group_id, user_id))
        assert context.group_id == group_id
        assert context.user_id == user_id
        assert context.current_member.name == "Jan"
        assert context.base_currency == "PLN"

    def test_non_member_is_denied(self, auth_provider, group_id):
        with pytest.raises(GroupAccessDeniedError):
            asyncio.run(auth_provider.get_group_context(group_id, uuid4()))

    def test_unknown_group_is_denied(self, auth_provider, user_id):
        with pytest.raises(GroupAccessDeniedError):
            asyncio.run(auth_provider.get_group_context(uuid4(), user_id))

    def test_from_file(self, tmp_path):
        user_id = uuid4()
        group_id = uuid4()
        path = tmp_path / "auth_directory.json"
        path.write_text(json.dumps({
            "tokens": {"secret": str(user_id)},
            "groups": [{
                "id": str(group_id),
                "name": "Flat",
                "base_currency": "EUR",
                "members": [{"id": str(user_id), "name": "Ola"}],
            }],
        }))

        provider = StaticAuthContextProvider.from_file(path)

        assert asyncio.run(provider.authenticate("secret")) == user_id
        context = asyncio.run(provider.get_group_context(group_id, user_id))
        assert context.group_name == "Flat"

    def test_missing_file_gives_empty_directory(self, tmp_path):
        provider = StaticAuthContextProvider.from_file(tmp_path / "missing.json")
        assert asyncio.run(provider.authenticate("anything")) is None
