from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from src.application.notifications.factory import build_notification
from src.application.notifications.types import ALL_TYPES, CLICK_ACTIONS, NotificationType
from src.domain.value_objects.entity_category import EntityCategory


def test_every_type_has_a_click_action():
    assert set(CLICK_ACTIONS) == ALL_TYPES


def test_chat_message_truncates_long_text():
    built = build_notification(
        NotificationType.CHAT_MESSAGE,
        sender_name="Ana",
        organization_name="Oak Street HOA",
        text="x" * 150,
        message_id=uuid4(),
    )
    assert built.title == "Ana in Oak Street HOA"
    assert len(built.message) == 100
    assert built.message.endswith("...")
    assert built.category is EntityCategory.CHAT
    assert built.data["click_action"] == "/chat"


def test_announcement_icon_follows_priority():
    urgent = build_notification(
        NotificationType.ANNOUNCEMENT, title="Pool closed", priority="urgent"
    )
    unknown = build_notification(NotificationType.ANNOUNCEMENT, title="Hi", priority="whatever")
    assert urgent.title == "🚨 New Announcement"
    assert urgent.message == "Pool closed"
    assert unknown.title == "📢 New Announcement"


def test_bill_and_payment_format_amounts():
    bill = build_notification(
        NotificationType.BILL_CREATED, title="Water", amount=Decimal("40"), bill_id=uuid4()
    )
    payment = build_notification(NotificationType.PAYMENT_RECORDED, amount="12.5")
    assert bill.title == "💰 New Bill Posted"
    assert bill.message == "Water - $40.00"
    assert payment.title == "✅ Payment Received"
    assert payment.message == "A member paid $12.50"
    assert payment.data["bill_id"] is None


def test_unknown_type_is_rejected():
    with pytest.raises(ValueError):
        build_notification("poll")
