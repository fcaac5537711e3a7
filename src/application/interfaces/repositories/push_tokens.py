from __future__ import annotations

from typing import Protocol
from uuid import UUID

from src.domain.models.push_token import PushToken


class PushTokenStore(Protocol):
    async def upsert(
        self,
        *,
        user_id: UUID,
        token: str,
        platform: str,
        organization_id: UUID | None = None,
        app_version: str | None = None,
    ) -> PushToken: ...

    async def list_for_user(self, *, user_id: UUID) -> list[PushToken]: ...

    async def remove_by_token(self, *, user_id: UUID, token: str) -> int: ...

    async def delete_tokens(self, tokens: list[str]) -> int: ...
