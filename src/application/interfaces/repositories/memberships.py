from __future__ import annotations

from typing import Iterable, Protocol
from uuid import UUID

from src.domain.models.membership import Membership
from src.domain.value_objects.role import Role


class MembershipRepository(Protocol):
    async def add(self, membership: Membership) -> None: ...

    async def list_user_ids(
        self, organization_id: UUID, *, roles: Iterable[Role] | None = None
    ) -> list[UUID]: ...

    async def get_role(self, user_id: UUID, organization_id: UUID) -> Role | None: ...
