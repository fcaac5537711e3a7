from __future__ import annotations

from src.domain.value_objects.entity_category import EntityCategory


class NotificationType:
    """Canonical notification type names used across backend/frontend."""

    CHAT_MESSAGE = "chat"
    ANNOUNCEMENT = "announcement"
    DOCUMENT_UPLOADED = "document"
    BILL_CREATED = "bill"
    PAYMENT_RECORDED = "payment"


ALL_TYPES = {
    NotificationType.CHAT_MESSAGE,
    NotificationType.ANNOUNCEMENT,
    NotificationType.DOCUMENT_UPLOADED,
    NotificationType.BILL_CREATED,
    NotificationType.PAYMENT_RECORDED,
}

TYPE_CATEGORY = {
    NotificationType.CHAT_MESSAGE: EntityCategory.CHAT,
    NotificationType.ANNOUNCEMENT: EntityCategory.ANNOUNCEMENT,
    NotificationType.DOCUMENT_UPLOADED: EntityCategory.DOCUMENT,
    NotificationType.BILL_CREATED: EntityCategory.BILL,
    NotificationType.PAYMENT_RECORDED: EntityCategory.PAYMENT,
}

# Route the client opens when the notification is clicked.
CLICK_ACTIONS = {
    NotificationType.CHAT_MESSAGE: "/chat",
    NotificationType.ANNOUNCEMENT: "/announcements",
    NotificationType.DOCUMENT_UPLOADED: "/documents",
    NotificationType.BILL_CREATED: "/billing",
    NotificationType.PAYMENT_RECORDED: "/payments",
}
