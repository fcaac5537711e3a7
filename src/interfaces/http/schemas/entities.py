from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from src.domain.value_objects.entity_category import EntityCategory


class EntityCreate(BaseModel):
    """Fields are category dependent; the router validates what each category needs."""

    text: str | None = Field(None, max_length=4000)
    title: str | None = Field(None, max_length=200)
    receiver_id: UUID | None = None
    priority: str | None = Field(None, max_length=20)
    file_name: str | None = Field(None, max_length=255)
    amount: Decimal | None = Field(None, gt=0)
    member_ids: list[UUID] | None = None
    bill_id: UUID | None = None
    sender_name: str | None = Field(None, max_length=120)
    organization_name: str | None = Field(None, max_length=120)
    payer_name: str | None = Field(None, max_length=120)


class EntityResponse(BaseModel):
    id: UUID
    category: EntityCategory
    organization_id: UUID | None
    actor_id: UUID | None
    receiver_id: UUID | None = None
    created_at: datetime | None = None
