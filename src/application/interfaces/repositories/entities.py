from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol
from uuid import UUID

from src.domain.models.viewable import EntityRef, ViewableEntity
from src.domain.value_objects.entity_category import EntityCategory

SnapshotCallback = Callable[[list[ViewableEntity]], Awaitable[None] | None]
ErrorCallback = Callable[[BaseException], Awaitable[None] | None]


@dataclass(slots=True, frozen=True)
class CategoryQuery:
    """Live query predicate: one category in one organization, newest first, capped.

    With ``receiver_id`` set it selects the direct messages addressed to that user
    instead; those carry no organization.
    """

    category: EntityCategory
    organization_id: UUID | None
    limit: int = 50
    receiver_id: UUID | None = None

    @property
    def direct(self) -> bool:
        return self.receiver_id is not None


class LiveSubscription(Protocol):
    @property
    def active(self) -> bool: ...

    def cancel(self) -> None: ...


class LiveEntityStore(Protocol):
    async def snapshot(self, query: CategoryQuery) -> list[ViewableEntity]: ...

    def subscribe(
        self,
        query: CategoryQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> LiveSubscription: ...


class ViewedSetStore(Protocol):
    async def add_view(self, ref: EntityRef, user_id: UUID) -> bool:
        """Add ``user_id`` to the entity's viewed set. Returns False when already present."""
        ...
