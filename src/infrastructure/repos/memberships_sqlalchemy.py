from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.models.membership import Membership
from src.domain.value_objects.role import Role
from src.infrastructure.db.orm.membership import MembershipORM


class MembershipsSQLAlchemyRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, membership: Membership) -> None:
        self.session.add(
            MembershipORM(
                user_id=membership.user_id,
                organization_id=membership.organization_id,
                role=membership.role,
            )
        )
        await self.session.flush()

    async def list_user_ids(
        self, organization_id: UUID, *, roles: Iterable[Role] | None = None
    ) -> list[UUID]:
        stmt = select(MembershipORM.user_id).where(
            MembershipORM.organization_id == organization_id
        )
        if roles is not None:
            stmt = stmt.where(MembershipORM.role.in_(list(roles)))
        result = await self.session.execute(stmt.order_by(MembershipORM.user_id))
        return list(result.scalars())

    async def get_role(self, user_id: UUID, organization_id: UUID) -> Role | None:
        row = await self.session.get(MembershipORM, (user_id, organization_id))
        return row.role if row else None
