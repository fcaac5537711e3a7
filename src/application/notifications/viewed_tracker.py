from __future__ import annotations

import logging
import time
from collections import deque
from uuid import UUID

from src.application.errors import PermissionDenied
from src.application.interfaces.repositories.entities import ViewedSetStore
from src.domain.models.viewable import EntityRef, ViewableEntity
from src.domain.models.viewable import is_unread as _is_unread

logger = logging.getLogger(__name__)


class PermissionDenialMonitor:
    """Sliding-window counter that tells occasional races from rule misconfiguration.

    A lone denial (entity deleted, membership revoked mid-session) is logged as a
    warning. Once ``threshold`` denials land inside ``window_seconds`` every further
    denial is logged at ERROR so a broken access rule does not hide behind
    best-effort semantics.
    """

    def __init__(self, *, threshold: int = 5, window_seconds: float = 60.0, clock=time.monotonic):
        self.threshold = threshold
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: deque[float] = deque()

    def record(self) -> bool:
        """Record one denial. Returns True when the window is over threshold."""
        now = self._clock()
        self._events.append(now)
        while self._events and now - self._events[0] > self.window_seconds:
            self._events.popleft()
        return len(self._events) >= self.threshold

    @property
    def recent_count(self) -> int:
        return len(self._events)


class ViewedSetTracker:
    def __init__(
        self,
        store: ViewedSetStore,
        *,
        denial_monitor: PermissionDenialMonitor | None = None,
    ) -> None:
        self.store = store
        self.denial_monitor = denial_monitor or PermissionDenialMonitor()

    @staticmethod
    def is_unread(entity: ViewableEntity, user_id: UUID) -> bool:
        return _is_unread(entity, user_id)

    async def mark_viewed(self, ref: EntityRef, user_id: UUID) -> bool:
        """Add ``user_id`` to the entity's viewed set.

        Best effort: returns True when the write went through (including the no-op
        case where the user was already present) and False otherwise. Never raises.
        """
        try:
            added = await self.store.add_view(ref, user_id)
        except PermissionDenied as exc:
            if self.denial_monitor.record():
                logger.error(
                    "Repeated permission denials marking entities viewed "
                    "(%s in %.0fs); check access rules: category=%s entity=%s user=%s",
                    self.denial_monitor.recent_count,
                    self.denial_monitor.window_seconds,
                    ref.category.value,
                    ref.entity_id,
                    user_id,
                )
            else:
                logger.warning(
                    "Permission denied marking entity viewed: category=%s entity=%s user=%s (%s)",
                    ref.category.value,
                    ref.entity_id,
                    user_id,
                    exc.message,
                )
            return False
        except Exception as exc:
            logger.error(
                "Error marking entity viewed: category=%s entity=%s user=%s: %s",
                ref.category.value,
                ref.entity_id,
                user_id,
                exc,
                exc_info=True,
            )
            return False
        if added:
            logger.debug(
                "Marked viewed: category=%s entity=%s user=%s",
                ref.category.value,
                ref.entity_id,
                user_id,
            )
        return True
