from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.models.viewable import EntityRef
from src.infrastructure.db.orm.entity_view import EntityViewORM


class EntityViewsSQLAlchemyRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, ref: EntityRef, user_id: UUID) -> bool:
        """Insert the (entity, viewer) pair. Returns False when it already exists."""
        key = (ref.category.value, ref.entity_id, user_id)
        if await self.session.get(EntityViewORM, key) is not None:
            return False
        self.session.add(EntityViewORM(category=key[0], entity_id=ref.entity_id, user_id=user_id))
        try:
            await self.session.flush()
        except IntegrityError:
            # Concurrent writer got there first; the set already holds the user.
            await self.session.rollback()
            return False
        return True

    async def viewers(self, ref: EntityRef) -> set[UUID]:
        stmt = select(EntityViewORM.user_id).where(
            EntityViewORM.category == ref.category.value,
            EntityViewORM.entity_id == ref.entity_id,
        )
        return set((await self.session.execute(stmt)).scalars())
