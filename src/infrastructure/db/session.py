from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.application.interfaces.unit_of_work import UnitOfWork
from src.infrastructure.realtime.change_feed import ChangeFeed, EntityChange


def create_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, echo=False, future=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


class SQLAlchemyUnitOfWork(UnitOfWork):
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        change_feed: ChangeFeed | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._change_feed = change_feed
        self.session: AsyncSession | None = None
        self.entities = None
        self.entity_views = None
        self.memberships = None
        self.device_tokens = None
        self.events: list = []
        self.changes: list[EntityChange] = []

    async def __aenter__(self) -> UnitOfWork:
        self.session = self._session_factory()
        from src.infrastructure.repos.device_tokens_sqlalchemy import (
            DeviceTokensSQLAlchemyRepository,
        )
        from src.infrastructure.repos.entities_sqlalchemy import EntitiesSQLAlchemyRepository
        from src.infrastructure.repos.entity_views_sqlalchemy import (
            EntityViewsSQLAlchemyRepository,
        )
        from src.infrastructure.repos.memberships_sqlalchemy import MembershipsSQLAlchemyRepository

        self.entities = EntitiesSQLAlchemyRepository(self.session, self.changes)
        self.entity_views = EntityViewsSQLAlchemyRepository(self.session)
        self.memberships = MembershipsSQLAlchemyRepository(self.session)
        self.device_tokens = DeviceTokensSQLAlchemyRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self.session:
            return
        try:
            if exc:
                await self.session.rollback()
        finally:
            await self.session.close()
            self.session = None
            self.entities = None
            self.entity_views = None
            self.memberships = None
            self.device_tokens = None
            self.changes.clear()

    async def commit(self) -> None:
        if not self.session:
            return
        await self.session.commit()
        # Live queries only ever see committed state.
        changes = list(self.changes)
        self.changes.clear()
        if self._change_feed is not None:
            self._change_feed.publish_all(changes)

    async def rollback(self) -> None:
        if not self.session:
            return
        await self.session.rollback()
        self.changes.clear()

    def add_event(self, event: object) -> None:
        self.events.append(event)

    def drain_events(self) -> list:
        events, self.events = self.events, []
        return events
