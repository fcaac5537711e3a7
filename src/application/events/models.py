from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class ChatMessagePostedEvent:
    organization_id: UUID
    actor_user_id: UUID
    message_id: UUID
    text: str
    sender_name: str | None = None
    organization_name: str | None = None
    # Direct messages notify only the receiver.
    receiver_id: UUID | None = None


@dataclass(frozen=True)
class AnnouncementPostedEvent:
    organization_id: UUID
    actor_user_id: UUID
    announcement_id: UUID
    title: str
    priority: str = "normal"


@dataclass(frozen=True)
class DocumentUploadedEvent:
    organization_id: UUID
    actor_user_id: UUID
    document_id: UUID
    title: str


@dataclass(frozen=True)
class BillCreatedEvent:
    organization_id: UUID
    actor_user_id: UUID
    bill_id: UUID
    title: str
    amount: Decimal | float | str
    # Members the bill is assigned to; empty means the whole organization.
    member_ids: tuple[UUID, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PaymentRecordedEvent:
    organization_id: UUID
    actor_user_id: UUID
    payment_id: UUID
    amount: Decimal | float | str
    bill_id: UUID | None = None
    payer_name: str | None = None
