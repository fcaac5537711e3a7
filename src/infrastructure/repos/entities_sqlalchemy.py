from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.application.interfaces.repositories.entities import CategoryQuery
from src.domain.models.viewable import EntityRef, ViewableEntity
from src.domain.value_objects.entity_category import EntityCategory
from src.infrastructure.db.base import Base
from src.infrastructure.db.orm.bill import BillORM
from src.infrastructure.db.orm.entity_view import EntityViewORM
from src.infrastructure.db.orm.message import MessageORM
from src.infrastructure.db.orm.organization_document import OrganizationDocumentORM
from src.infrastructure.db.orm.payment import PaymentORM
from src.infrastructure.realtime.change_feed import EntityChange


@dataclass(frozen=True)
class CategorySource:
    """Where a category lives and which column names its actor."""

    model: type[Base]
    actor_column: str
    filters: Callable[[], list[Any]] = field(default=lambda: [])

    def actor_of(self, row: Any) -> UUID | None:
        return getattr(row, self.actor_column)


CATEGORY_SOURCES: dict[EntityCategory, CategorySource] = {
    EntityCategory.CHAT: CategorySource(
        MessageORM, "user_id", lambda: [MessageORM.is_announcement.is_(False)]
    ),
    EntityCategory.ANNOUNCEMENT: CategorySource(
        MessageORM, "user_id", lambda: [MessageORM.is_announcement.is_(True)]
    ),
    EntityCategory.DOCUMENT: CategorySource(OrganizationDocumentORM, "uploaded_by"),
    EntityCategory.BILL: CategorySource(
        BillORM, "created_by", lambda: [BillORM.payment_status == "unpaid"]
    ),
    EntityCategory.PAYMENT: CategorySource(PaymentORM, "payer_id"),
}


@dataclass(slots=True, frozen=True)
class EntityScope:
    organization_id: UUID | None
    actor_id: UUID | None
    receiver_id: UUID | None


class EntitiesSQLAlchemyRepository:
    def __init__(self, session: AsyncSession, changes: list[EntityChange] | None = None) -> None:
        self.session = session
        # Changes recorded here are published by the unit of work after commit.
        self.changes = changes if changes is not None else []

    async def list_for_query(self, query: CategoryQuery) -> list[ViewableEntity]:
        source = CATEGORY_SOURCES[query.category]
        model = source.model
        if query.direct:
            if model is not MessageORM:
                return []
            scope = [
                MessageORM.organization_id.is_(None),
                MessageORM.receiver_id == query.receiver_id,
            ]
        else:
            scope = [model.organization_id == query.organization_id]
        stmt = (
            select(model)
            .where(*scope, *source.filters())
            .order_by(model.created_at.desc())
            .limit(query.limit)
        )
        rows = list((await self.session.execute(stmt)).scalars())
        viewers = await self._viewers(query.category, [r.id for r in rows])
        return [
            ViewableEntity.from_record(
                query.category,
                {
                    "id": row.id,
                    "organization_id": row.organization_id,
                    "actor_id": source.actor_of(row),
                    "viewed_by": viewers.get(row.id, ()),
                    "receiver_id": getattr(row, "receiver_id", None),
                    "created_at": row.created_at,
                },
            )
            for row in rows
        ]

    async def get_scope(self, ref: EntityRef) -> EntityScope | None:
        source = CATEGORY_SOURCES[ref.category]
        row = await self.session.get(source.model, ref.entity_id)
        if row is None:
            return None
        # A chat ref must not resolve to an announcement row and vice versa.
        if isinstance(row, MessageORM):
            if row.is_announcement != (ref.category is EntityCategory.ANNOUNCEMENT):
                return None
        return EntityScope(
            organization_id=row.organization_id,
            actor_id=source.actor_of(row),
            receiver_id=getattr(row, "receiver_id", None),
        )

    async def _viewers(
        self, category: EntityCategory, entity_ids: list[UUID]
    ) -> dict[UUID, set[UUID]]:
        if not entity_ids:
            return {}
        stmt = select(EntityViewORM.entity_id, EntityViewORM.user_id).where(
            EntityViewORM.category == category.value,
            EntityViewORM.entity_id.in_(entity_ids),
        )
        out: dict[UUID, set[UUID]] = defaultdict(set)
        for entity_id, user_id in (await self.session.execute(stmt)).all():
            out[entity_id].add(user_id)
        return out

    async def add_message(
        self,
        *,
        organization_id: UUID | None,
        sender_id: UUID,
        text: str,
        receiver_id: UUID | None = None,
        is_announcement: bool = False,
        title: str | None = None,
        priority: str | None = None,
    ) -> ViewableEntity:
        category = EntityCategory.ANNOUNCEMENT if is_announcement else EntityCategory.CHAT
        orm = MessageORM(
            id=uuid4(),
            organization_id=organization_id,
            user_id=sender_id,
            receiver_id=receiver_id,
            text=text,
            title=title,
            is_announcement=is_announcement,
            priority=priority,
        )
        return await self._add(category, orm, sender_id)

    async def add_document(
        self,
        *,
        organization_id: UUID,
        uploaded_by: UUID,
        title: str,
        file_name: str | None = None,
    ) -> ViewableEntity:
        orm = OrganizationDocumentORM(
            id=uuid4(),
            organization_id=organization_id,
            uploaded_by=uploaded_by,
            title=title,
            file_name=file_name,
        )
        return await self._add(EntityCategory.DOCUMENT, orm, uploaded_by)

    async def add_bill(
        self,
        *,
        organization_id: UUID,
        created_by: UUID,
        title: str,
        amount: Decimal,
        member_ids: list[UUID] | None = None,
    ) -> ViewableEntity:
        orm = BillORM(
            id=uuid4(),
            organization_id=organization_id,
            created_by=created_by,
            title=title,
            amount=amount,
            payment_status="unpaid",
            member_ids=[str(m) for m in member_ids] if member_ids else None,
        )
        return await self._add(EntityCategory.BILL, orm, created_by)

    async def add_payment(
        self,
        *,
        organization_id: UUID,
        payer_id: UUID,
        amount: Decimal,
        bill_id: UUID | None = None,
        status: str = "pending",
    ) -> ViewableEntity:
        orm = PaymentORM(
            id=uuid4(),
            organization_id=organization_id,
            payer_id=payer_id,
            bill_id=bill_id,
            amount=amount,
            status=status,
        )
        return await self._add(EntityCategory.PAYMENT, orm, payer_id)

    async def _add(self, category: EntityCategory, orm: Any, actor_id: UUID) -> ViewableEntity:
        if orm.created_at is None:
            orm.created_at = datetime.now(timezone.utc)
        self.session.add(orm)
        await self.session.flush()
        self.changes.append(EntityChange(category, orm.organization_id, orm.id, "created"))
        return ViewableEntity(
            id=orm.id,
            category=category,
            organization_id=orm.organization_id,
            actor_id=actor_id,
            receiver_id=getattr(orm, "receiver_id", None),
            created_at=getattr(orm, "created_at", None),
        )
