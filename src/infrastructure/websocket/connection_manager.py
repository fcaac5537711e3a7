from __future__ import annotations

import json
import logging
from uuid import UUID

from fastapi import WebSocket

from src.application.interfaces.push import PushMessage

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks attached WebSocket clients, their focus state, and sends to them.

    Doubles as the presence tracker and local notifier for foreground delivery.
    """

    def __init__(self) -> None:
        # Key: (organization_id, user_id) -> list of WebSocket connections
        self.active_connections: dict[tuple[UUID, UUID], list[WebSocket]] = {}
        self._focus: dict[int, bool] = {}

    async def connect(self, organization_id: UUID, user_id: UUID, websocket: WebSocket) -> None:
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        self.attach(organization_id, user_id, websocket)

    def attach(self, organization_id: UUID, user_id: UUID, websocket: WebSocket) -> None:
        key = (organization_id, user_id)
        # Support multiple concurrent connections per user (tabs/devices)
        conns = self.active_connections.setdefault(key, [])
        conns.append(websocket)
        self._focus.setdefault(id(websocket), True)
        logger.info(
            f"WebSocket connected: org={organization_id} user={user_id} total={len(conns)}"
        )

    def disconnect(self, organization_id: UUID, user_id: UUID, websocket: WebSocket) -> None:
        """Remove one WebSocket connection."""
        key = (organization_id, user_id)
        self._focus.pop(id(websocket), None)
        conns = [ws for ws in self.active_connections.get(key, []) if ws is not websocket]
        if conns:
            self.active_connections[key] = conns
        else:
            self.active_connections.pop(key, None)
        logger.info(
            f"WebSocket disconnected: org={organization_id} user={user_id} remaining={len(conns)}"
        )

    def move(
        self, old_organization_id: UUID, new_organization_id: UUID, user_id: UUID, websocket
    ) -> None:
        """Re-key a connection after the client switched organization."""
        focused = self._focus.get(id(websocket), True)
        self.disconnect(old_organization_id, user_id, websocket)
        self.attach(new_organization_id, user_id, websocket)
        self._focus[id(websocket)] = focused

    def set_focus(self, websocket: WebSocket, focused: bool) -> None:
        self._focus[id(websocket)] = focused

    def _connections(self, organization_id: UUID | None, user_id: UUID) -> list[WebSocket]:
        if organization_id is not None:
            return list(self.active_connections.get((organization_id, user_id), []))
        return [
            ws
            for (_, uid), conns in self.active_connections.items()
            if uid == user_id
            for ws in conns
        ]

    def focus_state(self, organization_id: UUID | None, user_id: UUID) -> bool | None:
        conns = self._connections(organization_id, user_id)
        if not conns:
            return None
        return any(self._focus.get(id(ws), True) for ws in conns)

    async def send_to_user(
        self, organization_id: UUID | None, user_id: UUID, message: str
    ) -> bool:
        """
        Send a message to a specific user.
        Returns True if sent successfully, False if user is not connected.
        """
        conns = self._connections(organization_id, user_id)
        if not conns:
            logger.debug(f"User not connected: org={organization_id} user={user_id}")
            return False

        any_sent = False
        for ws in conns:
            try:
                await ws.send_text(message)
                any_sent = True
            except Exception as e:
                logger.warning(
                    f"Error sending to one connection org={organization_id} user={user_id}: {e}"
                )
        return any_sent

    async def show(
        self, user_id: UUID, message: PushMessage, *, auto_dismiss_seconds: float
    ) -> None:
        payload = {
            "type": "local_notification",
            "title": message.title,
            "body": message.body,
            "category": message.category.value,
            "organization_id": str(message.organization_id) if message.organization_id else None,
            "data": message.as_data(),
            "auto_dismiss_ms": int(auto_dismiss_seconds * 1000),
        }
        await self.send_to_user(message.organization_id, user_id, json.dumps(payload))

    def is_connected(self, organization_id: UUID | None, user_id: UUID) -> bool:
        """Check if a user is currently connected."""
        return bool(self._connections(organization_id, user_id))

    def get_connection_count(self) -> int:
        """Get the total number of active connections."""
        return sum(len(v) for v in self.active_connections.values())
