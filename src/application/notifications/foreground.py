from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable
from uuid import UUID

from src.application.interfaces.push import LocalNotifier, PushMessage
from src.domain.value_objects.entity_category import EntityCategory

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ForegroundSignal:
    user_id: UUID
    category: EntityCategory
    organization_id: UUID | None


ForegroundHandler = Callable[[ForegroundSignal], Awaitable[None] | None]


class ForegroundDeliveryBridge:
    """Turns a push that reaches an attached client into an in-app refresh signal.

    Unfocused clients also get a local notification that dismisses itself after
    ``auto_dismiss_seconds``.
    """

    def __init__(
        self, local_notifier: LocalNotifier | None = None, *, auto_dismiss_seconds: float = 5.0
    ) -> None:
        self.local_notifier = local_notifier
        self.auto_dismiss_seconds = auto_dismiss_seconds
        self._handlers: list[ForegroundHandler] = []

    def on_foreground_event(self, handler: ForegroundHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def deliver(self, user_id: UUID, message: PushMessage, *, focused: bool) -> None:
        if not focused and self.local_notifier is not None:
            try:
                await self.local_notifier.show(
                    user_id, message, auto_dismiss_seconds=self.auto_dismiss_seconds
                )
            except Exception as exc:
                logger.warning("Local notification failed for user=%s: %s", user_id, exc)
        signal = ForegroundSignal(
            user_id=user_id,
            category=message.category,
            organization_id=message.organization_id,
        )
        for handler in list(self._handlers):
            try:
                result = handler(signal)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("Foreground handler failed: %s", exc, exc_info=True)
