from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.application.errors import NotFound, PermissionDenied
from src.application.interfaces.repositories.entities import (
    CategoryQuery,
    ErrorCallback,
    SnapshotCallback,
)
from src.domain.models.viewable import EntityRef, ViewableEntity
from src.infrastructure.realtime.change_feed import ChangeFeed, EntityChange
from src.infrastructure.realtime.live_query import LiveQuery
from src.infrastructure.repos.entities_sqlalchemy import (
    EntitiesSQLAlchemyRepository,
    EntityScope,
)
from src.infrastructure.repos.entity_views_sqlalchemy import EntityViewsSQLAlchemyRepository
from src.infrastructure.repos.memberships_sqlalchemy import MembershipsSQLAlchemyRepository


class SQLAlchemyLiveStore:
    """Live queries over the relational store, driven by the in-process change feed."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], feed: ChangeFeed):
        self.session_factory = session_factory
        self.feed = feed

    async def snapshot(self, query: CategoryQuery) -> list[ViewableEntity]:
        async with self.session_factory() as session:
            return await EntitiesSQLAlchemyRepository(session).list_for_query(query)

    def subscribe(
        self,
        query: CategoryQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> LiveQuery:
        return LiveQuery(self.feed, self.snapshot, query, on_snapshot, on_error)


class SQLAlchemyViewedSetStore:
    """Additive writes to an entity's viewed set, one short transaction per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], feed: ChangeFeed):
        self.session_factory = session_factory
        self.feed = feed

    async def add_view(self, ref: EntityRef, user_id: UUID) -> bool:
        async with self.session_factory() as session:
            scope = await EntitiesSQLAlchemyRepository(session).get_scope(ref)
            if scope is None:
                raise NotFound(
                    "Entity not found",
                    details={"category": ref.category.value, "entity_id": str(ref.entity_id)},
                )
            await self._authorize(session, scope, user_id)
            added = await EntityViewsSQLAlchemyRepository(session).add(ref, user_id)
            if not added:
                return False
            await session.commit()
        change = EntityChange(ref.category, scope.organization_id, ref.entity_id, "viewed")
        self.feed.publish(change)
        return True

    @staticmethod
    async def _authorize(session: AsyncSession, scope: EntityScope, user_id: UUID) -> None:
        if scope.organization_id is None:
            if user_id not in (scope.actor_id, scope.receiver_id):
                raise PermissionDenied("Not a participant of this conversation")
            return
        role = await MembershipsSQLAlchemyRepository(session).get_role(
            user_id, scope.organization_id
        )
        if role is None:
            raise PermissionDenied("User does not belong to organization")
