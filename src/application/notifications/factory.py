from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from .types import CLICK_ACTIONS, TYPE_CATEGORY, NotificationType

PRIORITY_ICONS = {"urgent": "🚨", "high": "❗", "normal": "📢"}


@dataclass
class BuiltNotification:
    type: str
    title: str
    message: str
    data: dict[str, Any]

    @property
    def category(self):
        return TYPE_CATEGORY[self.type]


def _money(value: Any) -> str:
    try:
        return f"{Decimal(str(value)):.2f}"
    except (InvalidOperation, ValueError):
        return str(value)


def _truncate(text: str | None, *, max_len: int = 100) -> str:
    """Push bodies are cut to ``max_len`` with a trailing ellipsis."""
    if not text:
        return ""
    text = str(text)
    return text if len(text) <= max_len else text[: max_len - 3] + "..."


def _with_click(ntype: str, data: dict[str, Any]) -> dict[str, Any]:
    data["click_action"] = CLICK_ACTIONS[ntype]
    return data


def build_notification(ntype: str, **kwargs: Any) -> BuiltNotification:
    """
    Central place to build notification title/message/data from templates.
    Keep strings easy to find and translate.
    """
    if ntype == NotificationType.CHAT_MESSAGE:
        sender_name: str = kwargs.get("sender_name") or "Someone"
        organization_name: str = kwargs.get("organization_name") or "Chat"
        title = f"{sender_name} in {organization_name}"
        message = _truncate(kwargs.get("text"))
        data = {
            "message_id": str(kwargs["message_id"]) if kwargs.get("message_id") else None,
            "sender_name": sender_name,
        }
        return BuiltNotification(ntype, title, message, _with_click(ntype, data))

    if ntype == NotificationType.ANNOUNCEMENT:
        priority: str = kwargs.get("priority") or "normal"
        icon = PRIORITY_ICONS.get(priority, PRIORITY_ICONS["normal"])
        title = f"{icon} New Announcement"
        message = _truncate(kwargs.get("title"))
        data = {
            "announcement_id": (
                str(kwargs["announcement_id"]) if kwargs.get("announcement_id") else None
            ),
            "priority": priority,
        }
        return BuiltNotification(ntype, title, message, _with_click(ntype, data))

    if ntype == NotificationType.DOCUMENT_UPLOADED:
        title = "📄 New Document Uploaded"
        message = _truncate(kwargs.get("title"))
        data = {"document_id": str(kwargs["document_id"]) if kwargs.get("document_id") else None}
        return BuiltNotification(ntype, title, message, _with_click(ntype, data))

    if ntype == NotificationType.BILL_CREATED:
        amount = kwargs.get("amount", "0")
        title = "💰 New Bill Posted"
        message = f"{kwargs.get('title') or 'Bill'} - ${_money(amount)}"
        data = {
            "bill_id": str(kwargs["bill_id"]) if kwargs.get("bill_id") else None,
            "amount": str(amount),
        }
        return BuiltNotification(ntype, title, message, _with_click(ntype, data))

    if ntype == NotificationType.PAYMENT_RECORDED:
        amount = kwargs.get("amount", "0")
        payer_name: str = kwargs.get("payer_name") or "A member"
        title = "✅ Payment Received"
        message = f"{payer_name} paid ${_money(amount)}"
        data = {
            "payment_id": str(kwargs["payment_id"]) if kwargs.get("payment_id") else None,
            "bill_id": str(kwargs["bill_id"]) if kwargs.get("bill_id") else None,
            "amount": str(amount),
        }
        return BuiltNotification(ntype, title, message, _with_click(ntype, data))

    raise ValueError(f"Unknown notification type: {ntype}")
