from __future__ import annotations

import json
from uuid import uuid4

import pytest

from src.application.interfaces.push import PushMessage
from src.domain.value_objects.entity_category import EntityCategory
from src.infrastructure.websocket.connection_manager import ConnectionManager


class FakeWebSocket:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.accepted = False
        self.sent: list[str] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("closed")
        self.sent.append(text)


@pytest.mark.asyncio
async def test_focus_state_reflects_any_focused_connection():
    manager = ConnectionManager()
    org, user = uuid4(), uuid4()
    assert manager.focus_state(org, user) is None

    tab_a, tab_b = FakeWebSocket(), FakeWebSocket()
    await manager.connect(org, user, tab_a)
    await manager.connect(org, user, tab_b)
    assert tab_a.accepted and manager.get_connection_count() == 2

    manager.set_focus(tab_a, False)
    assert manager.focus_state(org, user) is True
    manager.set_focus(tab_b, False)
    assert manager.focus_state(org, user) is False
    assert manager.focus_state(None, user) is False

    manager.disconnect(org, user, tab_a)
    manager.disconnect(org, user, tab_b)
    assert manager.focus_state(org, user) is None
    assert not manager.is_connected(org, user)


@pytest.mark.asyncio
async def test_move_keeps_focus_and_rekeys_connection():
    manager = ConnectionManager()
    old_org, new_org, user = uuid4(), uuid4(), uuid4()
    ws = FakeWebSocket()
    await manager.connect(old_org, user, ws)
    manager.set_focus(ws, False)

    manager.move(old_org, new_org, user, ws)

    assert not manager.is_connected(old_org, user)
    assert manager.focus_state(new_org, user) is False


@pytest.mark.asyncio
async def test_show_sends_local_notification_and_tolerates_dead_sockets():
    manager = ConnectionManager()
    org, user = uuid4(), uuid4()
    good, dead = FakeWebSocket(), FakeWebSocket(fail=True)
    await manager.connect(org, user, good)
    await manager.connect(org, user, dead)
    message = PushMessage(
        title="✅ Payment Received",
        body="Ana paid $12.50",
        category=EntityCategory.PAYMENT,
        organization_id=org,
    )

    await manager.show(user, message, auto_dismiss_seconds=5.0)

    payload = json.loads(good.sent[0])
    assert payload["type"] == "local_notification"
    assert payload["category"] == "payment"
    assert payload["auto_dismiss_ms"] == 5000
    assert await manager.send_to_user(org, uuid4(), "x") is False
