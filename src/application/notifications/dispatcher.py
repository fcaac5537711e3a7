from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable
from uuid import UUID

from src.application.errors import TransportUnavailable
from src.application.interfaces.push import (
    MulticastResult,
    PresenceTracker,
    PushMessage,
    PushTransport,
)
from src.application.notifications.foreground import ForegroundDeliveryBridge
from src.application.notifications.push_registry import PushRegistry
from src.domain.value_objects.entity_category import EntityCategory

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NotificationEvent:
    category: EntityCategory
    organization_id: UUID | None
    actor_id: UUID | None
    audience_user_ids: list[UUID]
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    def recipients(self) -> list[UUID]:
        """Audience minus the actor, order kept, duplicates dropped."""
        seen: set[UUID] = set()
        out: list[UUID] = []
        for user_id in self.audience_user_ids:
            if user_id == self.actor_id or user_id in seen:
                continue
            seen.add(user_id)
            out.append(user_id)
        return out

    def to_message(self) -> PushMessage:
        return PushMessage(
            title=self.title,
            body=self.body,
            category=self.category,
            organization_id=self.organization_id,
            actor_id=self.actor_id,
            data=dict(self.data),
        )


@dataclass(slots=True)
class DispatchResult:
    recipients: int = 0
    token_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    evicted_count: int = 0
    foreground_count: int = 0


class NotificationDispatcher:
    def __init__(
        self,
        registry: PushRegistry,
        transport: PushTransport | None,
        *,
        bridge: ForegroundDeliveryBridge | None = None,
        presence: PresenceTracker | None = None,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.bridge = bridge
        self.presence = presence

    async def dispatch(self, event: NotificationEvent) -> DispatchResult:
        recipients = event.recipients()
        result = DispatchResult(recipients=len(recipients))
        if not recipients:
            return result
        message = event.to_message()

        result.foreground_count = await self._deliver_foreground(recipients, message)

        tokens = sorted(await self.registry.get_tokens_for(recipients))
        result.token_count = len(tokens)
        if not tokens or self.transport is None:
            logger.debug(
                "No push targets: category=%s org=%s recipients=%s",
                event.category.value,
                event.organization_id,
                len(recipients),
            )
            return result

        try:
            outcome = await self.transport.send_multicast(tokens, message)
        except TransportUnavailable as exc:
            logger.error("Push transport unavailable: %s", exc.message)
            outcome = MulticastResult.all_failed(tokens, "transport_unavailable")

        result.success_count = outcome.success_count
        result.failure_count = outcome.failure_count
        stale = outcome.stale_tokens
        if stale:
            try:
                result.evicted_count = await self.registry.evict_tokens(stale)
            except Exception as exc:
                logger.error("Error evicting stale tokens: %s", exc, exc_info=True)
        logger.info(
            "Push dispatched: category=%s org=%s tokens=%s success=%s failure=%s evicted=%s",
            event.category.value,
            event.organization_id,
            result.token_count,
            result.success_count,
            result.failure_count,
            result.evicted_count,
        )
        return result

    async def _deliver_foreground(self, recipients: Iterable[UUID], message: PushMessage) -> int:
        if self.bridge is None or self.presence is None:
            return 0
        delivered = 0
        for user_id in recipients:
            focused = self.presence.focus_state(message.organization_id, user_id)
            if focused is None:
                continue
            await self.bridge.deliver(user_id, message, focused=focused)
            delivered += 1
        return delivered
