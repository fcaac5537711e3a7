from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.models.push_token import PushToken
from src.infrastructure.db.orm.device_token import DeviceTokenORM


class DeviceTokensSQLAlchemyRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @staticmethod
    def _to_domain(orm: DeviceTokenORM) -> PushToken:
        return PushToken(
            id=orm.id,
            user_id=orm.user_id,
            token=orm.token,
            platform=orm.platform,
            organization_id=orm.organization_id,
            app_version=orm.app_version,
            disabled=orm.disabled,
            last_active_at=orm.last_active_at,
        )

    async def upsert(
        self,
        *,
        user_id: UUID,
        token: str,
        platform: str,
        organization_id: UUID | None = None,
        app_version: str | None = None,
    ) -> PushToken:
        # Tokens are unique per device; a re-registration moves it to the new owner.
        stmt = select(DeviceTokenORM).where(DeviceTokenORM.token == token)
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        now = datetime.now(timezone.utc)
        if row is not None:
            row.user_id = user_id
            row.organization_id = organization_id
            row.platform = platform
            row.app_version = app_version
            row.disabled = False
            row.last_active_at = now
            await self.session.flush()
            return self._to_domain(row)
        obj = DeviceTokenORM(
            id=uuid4(),
            user_id=user_id,
            organization_id=organization_id,
            platform=platform,
            token=token,
            app_version=app_version,
            disabled=False,
            last_active_at=now,
        )
        self.session.add(obj)
        await self.session.flush()
        return self._to_domain(obj)

    async def remove_by_token(self, *, user_id: UUID, token: str) -> int:
        stmt = delete(DeviceTokenORM).where(
            DeviceTokenORM.user_id == user_id, DeviceTokenORM.token == token
        )
        res = await self.session.execute(stmt)
        return res.rowcount or 0

    async def list_for_user(self, *, user_id: UUID) -> list[PushToken]:
        stmt = select(DeviceTokenORM).where(DeviceTokenORM.user_id == user_id)
        res = await self.session.execute(stmt)
        return [self._to_domain(row) for row in res.scalars()]

    async def delete_tokens(self, tokens: list[str]) -> int:
        """Remove tokens the push service no longer accepts."""
        if not tokens:
            return 0
        stmt = delete(DeviceTokenORM).where(DeviceTokenORM.token.in_(tokens))
        res = await self.session.execute(stmt)
        return res.rowcount or 0
