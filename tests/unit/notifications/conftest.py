from __future__ import annotations

from uuid import uuid4

import pytest

from src.domain.models.push_token import PushToken


class InMemoryTokenStore:
    def __init__(self) -> None:
        self.rows: dict[str, PushToken] = {}

    async def upsert(self, *, user_id, token, platform, organization_id=None, app_version=None):
        row = PushToken(
            id=uuid4(),
            user_id=user_id,
            token=token,
            platform=platform,
            organization_id=organization_id,
            app_version=app_version,
        )
        self.rows[token] = row
        return row

    async def list_for_user(self, *, user_id):
        return [r for r in self.rows.values() if r.user_id == user_id]

    async def remove_by_token(self, *, user_id, token):
        row = self.rows.get(token)
        if row is None or row.user_id != user_id:
            return 0
        del self.rows[token]
        return 1

    async def delete_tokens(self, tokens):
        removed = 0
        for token in tokens:
            if self.rows.pop(token, None) is not None:
                removed += 1
        return removed


@pytest.fixture()
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()
