from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.application.errors import PermissionDenied
from src.domain.value_objects.role import Role
from src.infrastructure.repos.memberships_sqlalchemy import MembershipsSQLAlchemyRepository


@dataclass(slots=True)
class AuthContext:
    user_id: UUID
    organization_id: UUID
    role: Role
    claims: dict[str, Any]


async def resolve_role(session: AsyncSession, user_id: UUID, organization_id: UUID) -> Role:
    role = await MembershipsSQLAlchemyRepository(session).get_role(user_id, organization_id)
    if role is None:
        raise PermissionDenied("User does not belong to organization")
    return role
