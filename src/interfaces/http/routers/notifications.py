from __future__ import annotations

import asyncio
import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from src.application.errors import PermissionDenied
from src.application.notifications.aggregator import AggregationGroup, AggregationSnapshot
from src.application.notifications.dispatcher import NotificationEvent
from src.domain.models.viewable import EntityRef
from src.domain.value_objects.entity_category import EntityCategory
from src.domain.value_objects.organization_id import parse_organization_id
from src.infrastructure.auth.context import AuthContext, resolve_role
from src.infrastructure.db.session import SQLAlchemyUnitOfWork
from src.interfaces.http.deps import get_auth_context, get_notification_service, get_uow
from src.interfaces.http.schemas.notifications import (
    DispatchRequest,
    DispatchResponse,
    MarkViewedRequest,
    MarkViewedResponse,
    UnreadCountsResponse,
    WebSocketCountsMessage,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])
logger = logging.getLogger(__name__)


def _parse_refs(items: list[dict]) -> list[EntityRef]:
    refs: list[EntityRef] = []
    for item in items:
        try:
            refs.append(
                EntityRef(EntityCategory.parse(item["category"]), UUID(str(item["entity_id"])))
            )
        except (KeyError, TypeError, ValueError):
            logger.debug("Ignoring malformed entity reference: %s", item)
    return refs


class _LiveCountsSession:
    """Binds one WebSocket to one aggregation group at a time."""

    def __init__(self, websocket: WebSocket, service, user_id: UUID) -> None:
        self.websocket = websocket
        self.service = service
        self.user_id = user_id
        self.group: AggregationGroup | None = None
        self._outbox: asyncio.Queue[AggregationSnapshot] = asyncio.Queue()
        self._sender: asyncio.Task | None = None

    async def open(self, organization_id: UUID) -> None:
        self.group = await self.service.aggregations.open(self.user_id, organization_id)
        self.group.add_listener(self._outbox.put_nowait)
        if self._sender is None:
            self._sender = asyncio.create_task(self._send_loop())

    async def switch(self, organization_id: UUID) -> None:
        old = self.group
        self.group = await self.service.aggregations.switch_organization(old, organization_id)
        self.group.add_listener(self._outbox.put_nowait)
        self.service.connection_manager.move(
            old.organization_id, organization_id, self.user_id, self.websocket
        )

    async def close(self) -> None:
        if self.group is not None:
            await self.service.aggregations.close(self.group)
        if self._sender is not None:
            self._sender.cancel()

    async def _send_loop(self) -> None:
        while True:
            snap = await self._outbox.get()
            # Counts from a group the socket already left are dropped
            if self.group is None or snap.organization_id != self.group.organization_id:
                continue
            message = WebSocketCountsMessage(
                organization_id=snap.organization_id,
                counts={c.value: n for c, n in snap.counts.items()},
                statuses={c.value: s.value for c, s in snap.statuses.items()},
                total=snap.total,
            )
            try:
                await self.websocket.send_text(message.model_dump_json())
            except Exception as e:
                logger.warning(f"Error sending unread counts to user={self.user_id}: {e}")
                return


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str,
    organization_id: str | None = None,
) -> None:
    """
    WebSocket endpoint for live unread counts.
    Requires JWT token as query parameter: /ws?token=<jwt_token>&organization_id=<uuid>
    """
    service = websocket.app.state.notification_service
    settings = websocket.app.state.settings

    # Authenticate using JWT token, then check membership
    try:
        jwt_service = getattr(websocket.app.state, "jwt_service", None)
        if jwt_service is None:
            raise RuntimeError("JWT service not configured")
        user_id = jwt_service.verify(token).user_id

        org_value = organization_id or websocket.headers.get(settings.organization_header)
        if not org_value:
            raise ValueError(
                f"Missing organization_id query param or {settings.organization_header} header"
            )
        org_uuid = parse_organization_id(org_value)
        async with service.session_factory() as session:
            await resolve_role(session, user_id, org_uuid)
    except Exception as e:
        logger.warning(f"WebSocket authentication failed: {e}")
        await websocket.close(code=1008, reason="Authentication failed")
        return

    manager = service.connection_manager
    await manager.connect(org_uuid, user_id, websocket)
    live = _LiveCountsSession(websocket, service, user_id)

    try:
        await live.open(org_uuid)
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
                continue
            try:
                message = json.loads(data)
            except ValueError:
                continue
            if not isinstance(message, dict):
                continue
            kind = message.get("type")
            if kind == "focus":
                manager.set_focus(websocket, bool(message.get("focused", True)))
            elif kind == "switch_organization":
                try:
                    target = parse_organization_id(str(message.get("organization_id")))
                    async with service.session_factory() as session:
                        await resolve_role(session, user_id, target)
                except Exception as e:
                    logger.info(f"Organization switch rejected for user={user_id}: {e}")
                    await websocket.send_text(
                        json.dumps({"type": "error", "code": "forbidden"})
                    )
                    continue
                await live.switch(target)
            elif kind == "mark_viewed":
                items = message.get("items")
                refs = _parse_refs(items) if isinstance(items, list) else None
                queued = live.group.mark_viewed(refs)
                await websocket.send_text(json.dumps({"type": "mark_viewed", "queued": queued}))

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: user={user_id}")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
    finally:
        current_org = live.group.organization_id if live.group else org_uuid
        await live.close()
        manager.disconnect(current_org, user_id, websocket)


@router.get("/unread-counts", response_model=UnreadCountsResponse)
async def get_unread_counts(
    context: AuthContext = Depends(get_auth_context),
    service=Depends(get_notification_service),
) -> UnreadCountsResponse:
    snap = await service.aggregator.count_once(context.user_id, context.organization_id)
    return UnreadCountsResponse(**snap.as_dict())


@router.post("/mark-viewed", response_model=MarkViewedResponse)
async def mark_viewed(
    payload: MarkViewedRequest,
    context: AuthContext = Depends(get_auth_context),
    service=Depends(get_notification_service),
) -> MarkViewedResponse:
    refs = [EntityRef(item.category, item.entity_id) for item in payload.items]
    result = await service.marker.mark_batch(context.user_id, refs)
    return MarkViewedResponse(chunks=result.chunks, marked=result.marked, failed=result.failed)


@router.post("/dispatch", response_model=DispatchResponse)
async def dispatch_notification(
    payload: DispatchRequest,
    context: AuthContext = Depends(get_auth_context),
    uow: SQLAlchemyUnitOfWork = Depends(get_uow),
    service=Depends(get_notification_service),
) -> DispatchResponse:
    if not context.role.can_dispatch():
        raise PermissionDenied("Role not allowed to dispatch notifications")
    audience = payload.audience_user_ids
    if audience is None:
        audience = await uow.memberships.list_user_ids(context.organization_id)
    result = await service.dispatch(
        NotificationEvent(
            category=payload.category,
            organization_id=context.organization_id,
            actor_id=context.user_id,
            audience_user_ids=list(audience),
            title=payload.title,
            body=payload.body,
            data=payload.data,
        )
    )
    return DispatchResponse(
        recipients=result.recipients,
        token_count=result.token_count,
        success_count=result.success_count,
        failure_count=result.failure_count,
        evicted_count=result.evicted_count,
        foreground_count=result.foreground_count,
    )
