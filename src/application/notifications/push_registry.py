from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from src.application.interfaces.repositories.push_tokens import PushTokenStore
from src.domain.models.push_token import PushToken

logger = logging.getLogger(__name__)


class PushRegistry:
    """User -> set of delivery tokens, backed by an injectable store."""

    def __init__(self, store: PushTokenStore) -> None:
        self.store = store

    async def register_token(
        self,
        user_id: UUID,
        token: str,
        *,
        platform: str = "web",
        organization_id: UUID | None = None,
        app_version: str | None = None,
    ) -> PushToken:
        record = await self.store.upsert(
            user_id=user_id,
            token=token,
            platform=platform,
            organization_id=organization_id,
            app_version=app_version,
        )
        logger.info("Push token registered: user=%s platform=%s", user_id, platform)
        return record

    async def get_tokens(self, user_id: UUID) -> set[str]:
        return {t.token for t in await self.store.list_for_user(user_id=user_id) if not t.disabled}

    async def get_tokens_for(self, user_ids: Iterable[UUID]) -> set[str]:
        tokens: set[str] = set()
        for user_id in user_ids:
            tokens |= await self.get_tokens(user_id)
        return tokens

    async def unregister_token(self, user_id: UUID, token: str) -> bool:
        return await self.store.remove_by_token(user_id=user_id, token=token) > 0

    async def evict_tokens(self, tokens: Iterable[str]) -> int:
        """Drop tokens the transport reported as no longer registered."""
        stale = sorted(set(tokens))
        if not stale:
            return 0
        removed = await self.store.delete_tokens(stale)
        logger.info("Evicted %s stale push tokens", removed)
        return removed
