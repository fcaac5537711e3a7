from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable
from uuid import UUID

from src.application.errors import PermissionDenied, StaleSubscription
from src.application.interfaces.repositories.entities import (
    CategoryQuery,
    LiveEntityStore,
    LiveSubscription,
)
from src.application.notifications.batch_marker import BatchViewMarker, ViewMarkQueue
from src.domain.models.viewable import EntityRef, ViewableEntity, is_unread
from src.domain.value_objects.entity_category import ALL_CATEGORIES, EntityCategory

logger = logging.getLogger(__name__)


class CategoryStatus(str, Enum):
    PENDING = "pending"
    LIVE = "live"
    DEGRADED = "degraded"
    STALE = "stale"


@dataclass(slots=True, frozen=True)
class AggregationSnapshot:
    user_id: UUID
    organization_id: UUID
    counts: dict[EntityCategory, int]
    statuses: dict[EntityCategory, CategoryStatus]

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def as_dict(self) -> dict:
        return {
            "organization_id": str(self.organization_id),
            "counts": {c.value: n for c, n in self.counts.items()},
            "statuses": {c.value: s.value for c, s in self.statuses.items()},
            "total": self.total,
        }


Listener = Callable[[AggregationSnapshot], None]


@dataclass(slots=True)
class AggregationOptions:
    chat_limit: int = 100
    category_limit: int = 50
    setup_timeout_seconds: float | None = 10.0


def category_queries(
    organization_id: UUID, options: AggregationOptions, user_id: UUID | None = None
) -> list[CategoryQuery]:
    """One capped query per category; chat keeps a larger window than the rest.

    Given a user, direct messages addressed to them are added as a second chat query.
    """
    queries = [
        CategoryQuery(
            category=category,
            organization_id=organization_id,
            limit=options.chat_limit if category is EntityCategory.CHAT else options.category_limit,
        )
        for category in ALL_CATEGORIES
    ]
    if user_id is not None:
        queries.append(
            CategoryQuery(
                category=EntityCategory.CHAT,
                organization_id=None,
                limit=options.chat_limit,
                receiver_id=user_id,
            )
        )
    return queries


@dataclass(slots=True)
class SubscriptionHandle:
    query: CategoryQuery
    generation: int
    subscription: LiveSubscription | None = None

    @property
    def category(self) -> EntityCategory:
        return self.query.category

    def cancel(self) -> None:
        if self.subscription is not None:
            self.subscription.cancel()


@dataclass(slots=True)
class _QueryState:
    status: CategoryStatus = CategoryStatus.PENDING
    unread: list[EntityRef] = field(default_factory=list)
    applied_seq: int = 0


# A category reports the first of these found among its queries; pending only
# while none of them has delivered.
_STATUS_ORDER = (
    CategoryStatus.DEGRADED,
    CategoryStatus.STALE,
    CategoryStatus.LIVE,
    CategoryStatus.PENDING,
)


@dataclass(eq=False)
class AggregationGroup:
    """Live unread counts for one (user, organization) pair.

    Each category writes only its own key in ``counts``; ``total`` is always the
    sum of the map. Chat counts both the organization's messages and the
    user's direct messages. Callbacks carry the generation they were created
    under and are dropped once the group has moved on (closed or re-opened).
    """

    user_id: UUID
    organization_id: UUID
    store: LiveEntityStore
    view_queue: ViewMarkQueue | None = None
    counts: dict[EntityCategory, int] = field(default_factory=dict)
    statuses: dict[EntityCategory, CategoryStatus] = field(default_factory=dict)
    generation: int = 0
    closed: bool = False
    handles: list[SubscriptionHandle] = field(default_factory=list)
    _states: dict[CategoryQuery, _QueryState] = field(default_factory=dict)
    _seq: int = 0
    _listeners: list[Listener] = field(default_factory=list)
    _watchdog: asyncio.Task | None = None

    def __post_init__(self) -> None:
        for category in ALL_CATEGORIES:
            self.counts.setdefault(category, 0)
            self.statuses.setdefault(category, CategoryStatus.PENDING)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def key(self) -> tuple[UUID, UUID]:
        return (self.user_id, self.organization_id)

    def track(self, query: CategoryQuery, generation: int) -> SubscriptionHandle:
        handle = SubscriptionHandle(query=query, generation=generation)
        self.handles.append(handle)
        self._states.setdefault(query, _QueryState())
        return handle

    def snapshot(self) -> AggregationSnapshot:
        return AggregationSnapshot(
            user_id=self.user_id,
            organization_id=self.organization_id,
            counts=dict(self.counts),
            statuses=dict(self.statuses),
        )

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def unread_refs(self, category: EntityCategory | None = None) -> list[EntityRef]:
        return [
            ref
            for query, state in self._states.items()
            if category is None or query.category is category
            for ref in state.unread
        ]

    def ensure_current(self, generation: int) -> None:
        if self.closed or generation != self.generation:
            raise StaleSubscription(
                "Callback belongs to a previous generation",
                details={"generation": generation, "current": self.generation},
            )

    def apply_snapshot(
        self,
        query: CategoryQuery,
        generation: int,
        entities: Iterable[ViewableEntity],
        *,
        started: int | None = None,
    ) -> bool:
        """Recount one query from a fresh result set. Returns False if discarded.

        ``started`` is the sequence number observed before a one-shot read began;
        the result is dropped when a newer one was applied meanwhile.
        """
        state = self._accept(query, generation, started)
        if state is None:
            return False
        state.unread = [e.ref for e in entities if is_unread(e, self.user_id)]
        state.status = CategoryStatus.LIVE
        self._recount(query.category)
        self._publish()
        return True

    def apply_error(
        self,
        query: CategoryQuery,
        generation: int,
        exc: BaseException,
        *,
        started: int | None = None,
    ) -> bool:
        state = self._accept(query, generation, started)
        if state is None:
            return False
        if isinstance(exc, PermissionDenied):
            logger.warning(
                "Permission denied reading %s for user=%s org=%s; counting as 0",
                query.category.value,
                self.user_id,
                self.organization_id,
            )
        else:
            logger.error(
                "Live query failed for %s user=%s org=%s: %s",
                query.category.value,
                self.user_id,
                self.organization_id,
                exc,
                exc_info=exc,
            )
        state.unread = []
        state.status = CategoryStatus.DEGRADED
        self._recount(query.category)
        self._publish()
        return True

    def mark_stale(self, generation: int) -> list[EntityCategory]:
        """Flag categories that never delivered a first snapshot."""
        try:
            self.ensure_current(generation)
        except StaleSubscription:
            return []
        late: list[EntityCategory] = []
        for query, state in self._states.items():
            if state.status is CategoryStatus.PENDING:
                state.status = CategoryStatus.STALE
                if query.category not in late:
                    late.append(query.category)
        for category in late:
            self._recount(category)
        if late:
            logger.warning(
                "Subscriptions not ready for user=%s org=%s: %s",
                self.user_id,
                self.organization_id,
                ", ".join(c.value for c in late),
            )
            self._publish()
        return late

    async def refresh(self, category: EntityCategory | None = None) -> None:
        """Re-pull one-shot snapshots; the live subscriptions stay authoritative."""
        generation = self.generation
        targets = [h for h in self.handles if category is None or h.category is category]
        for handle in targets:
            if self.closed or generation != self.generation:
                return
            started = self._seq
            try:
                entities = await self.store.snapshot(handle.query)
            except Exception as exc:
                self.apply_error(handle.query, generation, exc, started=started)
                continue
            self.apply_snapshot(handle.query, generation, entities, started=started)

    def mark_viewed(self, refs: Iterable[EntityRef] | None = None) -> int:
        """Queue entities (default: everything currently unread) for view-marking."""
        if self.view_queue is None or self.closed:
            return 0
        return self.view_queue.enqueue(self.unread_refs() if refs is None else refs)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.generation += 1
        for handle in self.handles:
            try:
                handle.cancel()
            except Exception as exc:
                logger.error("Error cancelling %s subscription: %s", handle.category.value, exc)
        if self._watchdog is not None and not self._watchdog.done():
            self._watchdog.cancel()
        if self.view_queue is not None:
            self.view_queue.close()
        self._listeners.clear()
        logger.info(
            "Aggregation closed: user=%s org=%s",
            self.user_id,
            self.organization_id,
        )

    def _accept(
        self, query: CategoryQuery, generation: int, started: int | None
    ) -> _QueryState | None:
        try:
            self.ensure_current(generation)
        except StaleSubscription:
            logger.debug(
                "Discarding stale snapshot: user=%s org=%s category=%s",
                self.user_id,
                self.organization_id,
                query.category.value,
            )
            return None
        state = self._states.setdefault(query, _QueryState())
        if started is not None and state.applied_seq > started:
            logger.debug(
                "Discarding outdated one-shot read: user=%s category=%s",
                self.user_id,
                query.category.value,
            )
            return None
        self._seq += 1
        state.applied_seq = self._seq
        return state

    def _recount(self, category: EntityCategory) -> None:
        states = [s for q, s in self._states.items() if q.category is category]
        self.counts[category] = sum(len(s.unread) for s in states)
        present = {s.status for s in states}
        self.statuses[category] = next(s for s in _STATUS_ORDER if s in present)

    def _publish(self) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception as exc:
                logger.error("Unread listener failed: %s", exc, exc_info=True)


class UnreadAggregator:
    def __init__(
        self,
        store: LiveEntityStore,
        *,
        options: AggregationOptions | None = None,
        marker: BatchViewMarker | None = None,
    ) -> None:
        self.store = store
        self.options = options or AggregationOptions()
        self.marker = marker

    async def open_aggregation(self, user_id: UUID, organization_id: UUID) -> AggregationGroup:
        group = AggregationGroup(
            user_id=user_id,
            organization_id=organization_id,
            store=self.store,
            view_queue=ViewMarkQueue(self.marker, user_id) if self.marker else None,
        )
        generation = group.generation
        for query in category_queries(organization_id, self.options, user_id):
            handle = group.track(query, generation)
            try:
                handle.subscription = self.store.subscribe(
                    query,
                    self._snapshot_callback(group, query, generation),
                    self._error_callback(group, query, generation),
                )
            except Exception as exc:
                group.apply_error(query, generation, exc)
        timeout = self.options.setup_timeout_seconds
        if timeout:
            group._watchdog = asyncio.create_task(self._watch_setup(group, generation, timeout))
        logger.info("Aggregation opened: user=%s org=%s", user_id, organization_id)
        return group

    async def close_aggregation(self, group: AggregationGroup) -> None:
        group.close()

    async def count_once(self, user_id: UUID, organization_id: UUID) -> AggregationSnapshot:
        """One-shot counts without live subscriptions."""
        group = AggregationGroup(user_id=user_id, organization_id=organization_id, store=self.store)
        for query in category_queries(organization_id, self.options, user_id):
            group.track(query, group.generation)
        await group.refresh()
        return group.snapshot()

    @staticmethod
    def _snapshot_callback(group: AggregationGroup, query: CategoryQuery, generation: int):
        def on_snapshot(entities: list[ViewableEntity]) -> None:
            group.apply_snapshot(query, generation, entities)

        return on_snapshot

    @staticmethod
    def _error_callback(group: AggregationGroup, query: CategoryQuery, generation: int):
        def on_error(exc: BaseException) -> None:
            group.apply_error(query, generation, exc)

        return on_error

    @staticmethod
    async def _watch_setup(group: AggregationGroup, generation: int, timeout: float) -> None:
        await asyncio.sleep(timeout)
        group.mark_stale(generation)


class AggregationRegistry:
    """Open aggregation groups keyed by (user, organization).

    Several groups may exist for the same key (one per connection); each one
    keeps its own view-mark queue.
    """

    def __init__(self, aggregator: UnreadAggregator) -> None:
        self.aggregator = aggregator
        self._groups: dict[tuple[UUID, UUID], list[AggregationGroup]] = {}

    async def open(self, user_id: UUID, organization_id: UUID) -> AggregationGroup:
        group = await self.aggregator.open_aggregation(user_id, organization_id)
        self._groups.setdefault(group.key, []).append(group)
        return group

    async def close(self, group: AggregationGroup) -> None:
        await self.aggregator.close_aggregation(group)
        groups = self._groups.get(group.key)
        if groups and group in groups:
            groups.remove(group)
            if not groups:
                del self._groups[group.key]

    async def switch_organization(
        self, group: AggregationGroup, organization_id: UUID
    ) -> AggregationGroup:
        await self.close(group)
        return await self.open(group.user_id, organization_id)

    def groups_for(
        self, user_id: UUID | None = None, organization_id: UUID | None = None
    ) -> list[AggregationGroup]:
        return [
            g
            for (uid, oid), groups in self._groups.items()
            for g in groups
            if (user_id is None or uid == user_id)
            and (organization_id is None or oid == organization_id)
        ]

    async def refresh(
        self,
        *,
        user_id: UUID | None = None,
        organization_id: UUID | None = None,
        category: EntityCategory | None = None,
    ) -> int:
        groups = self.groups_for(user_id, organization_id)
        for group in groups:
            await group.refresh(category)
        return len(groups)

    async def close_all(self) -> None:
        for group in self.groups_for():
            await self.close(group)

    def __len__(self) -> int:
        return sum(len(v) for v in self._groups.values())
