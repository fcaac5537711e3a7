from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, status

from src.application.errors import PermissionDenied, ValidationError
from src.application.events.dispatcher import dispatch_events
from src.application.events.models import (
    AnnouncementPostedEvent,
    BillCreatedEvent,
    ChatMessagePostedEvent,
    DocumentUploadedEvent,
    PaymentRecordedEvent,
)
from src.domain.models.viewable import ViewableEntity
from src.domain.value_objects.entity_category import EntityCategory
from src.infrastructure.auth.context import AuthContext
from src.infrastructure.db.session import SQLAlchemyUnitOfWork
from src.interfaces.http.deps import get_auth_context, get_notification_service, get_uow
from src.interfaces.http.schemas.entities import EntityCreate, EntityResponse

router = APIRouter(prefix="/entities", tags=["entities"])

PUBLISHER_ONLY = {EntityCategory.ANNOUNCEMENT, EntityCategory.DOCUMENT, EntityCategory.BILL}


def _require(payload: EntityCreate, *fields: str) -> None:
    missing = [name for name in fields if getattr(payload, name) in (None, "")]
    if missing:
        raise ValidationError("Missing required fields", details={"missing": missing})


async def _record(
    category: EntityCategory,
    payload: EntityCreate,
    context: AuthContext,
    uow: SQLAlchemyUnitOfWork,
) -> ViewableEntity:
    org = context.organization_id
    actor = context.user_id
    if category is EntityCategory.CHAT:
        _require(payload, "text")
        # Direct messages carry no organization
        entity = await uow.entities.add_message(
            organization_id=None if payload.receiver_id else org,
            sender_id=actor,
            text=payload.text,
            receiver_id=payload.receiver_id,
        )
        uow.add_event(
            ChatMessagePostedEvent(
                organization_id=org,
                actor_user_id=actor,
                message_id=entity.id,
                text=payload.text,
                sender_name=payload.sender_name,
                organization_name=payload.organization_name,
                receiver_id=payload.receiver_id,
            )
        )
    elif category is EntityCategory.ANNOUNCEMENT:
        _require(payload, "title")
        entity = await uow.entities.add_message(
            organization_id=org,
            sender_id=actor,
            text=payload.text or "",
            is_announcement=True,
            title=payload.title,
            priority=payload.priority or "normal",
        )
        uow.add_event(
            AnnouncementPostedEvent(
                organization_id=org,
                actor_user_id=actor,
                announcement_id=entity.id,
                title=payload.title,
                priority=payload.priority or "normal",
            )
        )
    elif category is EntityCategory.DOCUMENT:
        _require(payload, "title")
        entity = await uow.entities.add_document(
            organization_id=org, uploaded_by=actor, title=payload.title, file_name=payload.file_name
        )
        uow.add_event(
            DocumentUploadedEvent(
                organization_id=org, actor_user_id=actor, document_id=entity.id, title=payload.title
            )
        )
    elif category is EntityCategory.BILL:
        _require(payload, "title", "amount")
        entity = await uow.entities.add_bill(
            organization_id=org,
            created_by=actor,
            title=payload.title,
            amount=payload.amount,
            member_ids=payload.member_ids,
        )
        uow.add_event(
            BillCreatedEvent(
                organization_id=org,
                actor_user_id=actor,
                bill_id=entity.id,
                title=payload.title,
                amount=payload.amount,
                member_ids=tuple(payload.member_ids or ()),
            )
        )
    else:
        _require(payload, "amount")
        entity = await uow.entities.add_payment(
            organization_id=org, payer_id=actor, amount=payload.amount, bill_id=payload.bill_id
        )
        uow.add_event(
            PaymentRecordedEvent(
                organization_id=org,
                actor_user_id=actor,
                payment_id=entity.id,
                amount=payload.amount,
                bill_id=payload.bill_id,
                payer_name=payload.payer_name,
            )
        )
    return entity


@router.post("/{category}", response_model=EntityResponse, status_code=status.HTTP_201_CREATED)
async def create_entity(
    category: EntityCategory,
    payload: EntityCreate,
    background_tasks: BackgroundTasks,
    context: AuthContext = Depends(get_auth_context),
    uow: SQLAlchemyUnitOfWork = Depends(get_uow),
    service=Depends(get_notification_service),
) -> EntityResponse:
    if category in PUBLISHER_ONLY and not context.role.can_publish():
        raise PermissionDenied(f"Role not allowed to publish {category.value}")
    entity = await _record(category, payload, context, uow)
    await uow.commit()
    events = uow.drain_events()
    if events:
        background_tasks.add_task(dispatch_events, service, events)
    return EntityResponse(
        id=entity.id,
        category=entity.category,
        organization_id=entity.organization_id,
        actor_id=entity.actor_id,
        receiver_id=entity.receiver_id,
        created_at=entity.created_at,
    )
