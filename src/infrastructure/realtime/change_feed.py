from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

from src.domain.value_objects.entity_category import EntityCategory

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class EntityChange:
    category: EntityCategory
    organization_id: UUID | None
    entity_id: UUID
    kind: str = "updated"  # created | updated | viewed | deleted


class ChangeFeed:
    """In-process fan-out of committed entity changes to live queries.

    Subscribers register for one (category, organization) pair and receive every
    change on their own unbounded queue.
    """

    def __init__(self) -> None:
        self._subscribers: dict[tuple[EntityCategory, UUID | None], list[asyncio.Queue]] = {}

    def subscribe(
        self, category: EntityCategory, organization_id: UUID | None
    ) -> asyncio.Queue[EntityChange]:
        queue: asyncio.Queue[EntityChange] = asyncio.Queue()
        self._subscribers.setdefault((category, organization_id), []).append(queue)
        return queue

    def unsubscribe(
        self, category: EntityCategory, organization_id: UUID | None, queue: asyncio.Queue
    ) -> None:
        key = (category, organization_id)
        queues = self._subscribers.get(key)
        if not queues:
            return
        if queue in queues:
            queues.remove(queue)
        if not queues:
            del self._subscribers[key]

    def publish(self, change: EntityChange) -> int:
        queues = self._subscribers.get((change.category, change.organization_id), [])
        for queue in list(queues):
            queue.put_nowait(change)
        logger.debug(
            "Change published: %s %s org=%s entity=%s subscribers=%s",
            change.kind,
            change.category.value,
            change.organization_id,
            change.entity_id,
            len(queues),
        )
        return len(queues)

    def publish_all(self, changes: list[EntityChange]) -> None:
        for change in changes:
            self.publish(change)

    def subscriber_count(self) -> int:
        return sum(len(v) for v in self._subscribers.values())
