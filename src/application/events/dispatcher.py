from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from src.application.events.models import (
    AnnouncementPostedEvent,
    BillCreatedEvent,
    ChatMessagePostedEvent,
    DocumentUploadedEvent,
    PaymentRecordedEvent,
)
from src.application.notifications.dispatcher import DispatchResult, NotificationEvent
from src.application.notifications.factory import BuiltNotification, build_notification
from src.application.notifications.types import NotificationType
from src.domain.value_objects.role import Role
from src.infrastructure.repos.memberships_sqlalchemy import MembershipsSQLAlchemyRepository
from src.infrastructure.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


async def dispatch_events(
    service: NotificationService, events: Iterable[object]
) -> list[DispatchResult]:
    """
    Dispatch events post-commit. Uses a transient session to resolve audiences.
    Safe to call in a background task.
    """
    events = list(events)
    if not events:
        return []

    results: list[DispatchResult] = []
    for event in events:
        try:
            notification = await _to_notification(service, event)
            if notification is None:
                continue
            results.append(await service.dispatch(notification))
        except Exception as e:
            logger.error("Error dispatching event %s: %s", type(event).__name__, e, exc_info=True)
    return results


async def _audience(
    service: NotificationService, organization_id: UUID, *, roles: Iterable[Role] | None = None
) -> list[UUID]:
    async with service.session_factory() as session:
        repo = MembershipsSQLAlchemyRepository(session)
        return await repo.list_user_ids(organization_id, roles=roles)


def _event(
    built: BuiltNotification, organization_id: UUID | None, actor_id: UUID, audience: list[UUID]
) -> NotificationEvent:
    return NotificationEvent(
        category=built.category,
        organization_id=organization_id,
        actor_id=actor_id,
        audience_user_ids=audience,
        title=built.title,
        body=built.message,
        data=built.data,
    )


async def _to_notification(service: NotificationService, e: object) -> NotificationEvent | None:
    if isinstance(e, ChatMessagePostedEvent):
        built = build_notification(
            NotificationType.CHAT_MESSAGE,
            sender_name=e.sender_name,
            organization_name=e.organization_name,
            text=e.text,
            message_id=e.message_id,
        )
        if e.receiver_id is not None:
            # Direct messages carry no organization.
            return _event(built, None, e.actor_user_id, [e.receiver_id])
        audience = await _audience(service, e.organization_id)
        return _event(built, e.organization_id, e.actor_user_id, audience)

    if isinstance(e, AnnouncementPostedEvent):
        built = build_notification(
            NotificationType.ANNOUNCEMENT,
            title=e.title,
            priority=e.priority,
            announcement_id=e.announcement_id,
        )
        audience = await _audience(service, e.organization_id)
        return _event(built, e.organization_id, e.actor_user_id, audience)

    if isinstance(e, DocumentUploadedEvent):
        built = build_notification(
            NotificationType.DOCUMENT_UPLOADED, title=e.title, document_id=e.document_id
        )
        audience = await _audience(service, e.organization_id)
        return _event(built, e.organization_id, e.actor_user_id, audience)

    if isinstance(e, BillCreatedEvent):
        built = build_notification(
            NotificationType.BILL_CREATED, title=e.title, amount=e.amount, bill_id=e.bill_id
        )
        # Only the members the bill is assigned to
        audience = list(e.member_ids) or await _audience(service, e.organization_id)
        return _event(built, e.organization_id, e.actor_user_id, audience)

    if isinstance(e, PaymentRecordedEvent):
        built = build_notification(
            NotificationType.PAYMENT_RECORDED,
            amount=e.amount,
            payer_name=e.payer_name,
            payment_id=e.payment_id,
            bill_id=e.bill_id,
        )
        # Payments go to whoever manages billing
        audience = await _audience(service, e.organization_id, roles=(Role.OWNER, Role.ADMIN))
        return _event(built, e.organization_id, e.actor_user_id, audience)

    logger.debug("No notification mapping for event %s", type(e).__name__)
    return None
