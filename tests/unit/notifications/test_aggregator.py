from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from src.application.errors import PermissionDenied
from src.application.notifications.aggregator import (
    AggregationOptions,
    AggregationRegistry,
    CategoryStatus,
    UnreadAggregator,
    category_queries,
)
from src.domain.models.viewable import ViewableEntity
from src.domain.value_objects.entity_category import ALL_CATEGORIES, EntityCategory


class FakeSubscription:
    def __init__(self, query, on_snapshot, on_error) -> None:
        self.query = query
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.cancelled = False

    @property
    def active(self) -> bool:
        return not self.cancelled

    def cancel(self) -> None:
        self.cancelled = True


class FakeLiveStore:
    """Hands callbacks back to the test instead of running queries."""

    def __init__(self) -> None:
        self.subscriptions: list[FakeSubscription] = []
        self.snapshots: dict[EntityCategory, list[ViewableEntity]] = {}
        self.direct: list[ViewableEntity] = []
        self.fail_subscribe: set[EntityCategory] = set()
        self.snapshot_errors: dict[EntityCategory, Exception] = {}

    async def snapshot(self, query):
        if query.category in self.snapshot_errors:
            raise self.snapshot_errors[query.category]
        if query.direct:
            return list(self.direct)
        return list(self.snapshots.get(query.category, []))

    def subscribe(self, query, on_snapshot, on_error=None):
        if query.category in self.fail_subscribe:
            raise PermissionDenied("rules deny list")
        sub = FakeSubscription(query, on_snapshot, on_error)
        self.subscriptions.append(sub)
        return sub

    def sub_for(self, category: EntityCategory, *, direct: bool = False) -> FakeSubscription:
        return [
            s
            for s in self.subscriptions
            if s.query.category is category and s.query.direct is direct
        ][-1]


def entities(category, org, count, *, actor=None, viewers=()):
    return [
        ViewableEntity(
            id=uuid4(),
            category=category,
            organization_id=org,
            actor_id=actor,
            viewed_by=frozenset(viewers),
        )
        for _ in range(count)
    ]


@pytest.fixture()
def store() -> FakeLiveStore:
    return FakeLiveStore()


@pytest.fixture()
def aggregator(store) -> UnreadAggregator:
    return UnreadAggregator(store, options=AggregationOptions(setup_timeout_seconds=None))


def test_category_queries_cap_chat_higher_than_other_categories():
    org = uuid4()
    queries = {q.category: q for q in category_queries(org, AggregationOptions())}
    assert set(queries) == set(ALL_CATEGORIES)
    assert queries[EntityCategory.CHAT].limit == 100
    assert all(q.limit == 50 for c, q in queries.items() if c is not EntityCategory.CHAT)
    assert all(q.organization_id == org for q in queries.values())


@pytest.mark.asyncio
async def test_open_subscribes_one_query_per_category(store, aggregator):
    group = await aggregator.open_aggregation(uuid4(), uuid4())
    # one per category plus the direct messages addressed to the user
    assert len(store.subscriptions) == len(ALL_CATEGORIES) + 1
    assert all(s is CategoryStatus.PENDING for s in group.statuses.values())
    assert group.total == 0


@pytest.mark.asyncio
async def test_total_is_sum_of_category_counts(store, aggregator):
    user = uuid4()
    org = uuid4()
    group = await aggregator.open_aggregation(user, org)
    seen = []
    group.add_listener(seen.append)

    store.sub_for(EntityCategory.CHAT).on_snapshot(entities(EntityCategory.CHAT, org, 4))
    store.sub_for(EntityCategory.BILL).on_snapshot(entities(EntityCategory.BILL, org, 2))
    store.sub_for(EntityCategory.PAYMENT).on_snapshot(
        entities(EntityCategory.PAYMENT, org, 3, viewers=[user])
    )
    store.sub_for(EntityCategory.DOCUMENT).on_snapshot(
        entities(EntityCategory.DOCUMENT, org, 1, actor=user)
    )

    assert group.counts[EntityCategory.CHAT] == 4
    assert group.counts[EntityCategory.BILL] == 2
    assert group.counts[EntityCategory.PAYMENT] == 0
    assert group.counts[EntityCategory.DOCUMENT] == 0
    assert group.total == sum(group.counts.values()) == 6
    assert seen[-1].total == 6
    assert all(snap.total == sum(snap.counts.values()) for snap in seen)


@pytest.mark.asyncio
async def test_category_failure_does_not_touch_other_categories(store, aggregator):
    org = uuid4()
    group = await aggregator.open_aggregation(uuid4(), org)
    store.sub_for(EntityCategory.CHAT).on_snapshot(entities(EntityCategory.CHAT, org, 5))
    store.sub_for(EntityCategory.BILL).on_snapshot(entities(EntityCategory.BILL, org, 2))

    store.sub_for(EntityCategory.BILL).on_error(PermissionDenied("no access"))

    assert group.counts[EntityCategory.BILL] == 0
    assert group.statuses[EntityCategory.BILL] is CategoryStatus.DEGRADED
    assert group.counts[EntityCategory.CHAT] == 5
    assert group.statuses[EntityCategory.CHAT] is CategoryStatus.LIVE
    assert group.total == 5


@pytest.mark.asyncio
async def test_subscribe_failure_degrades_only_that_category(store):
    store.fail_subscribe.add(EntityCategory.PAYMENT)
    aggregator = UnreadAggregator(store, options=AggregationOptions(setup_timeout_seconds=None))
    group = await aggregator.open_aggregation(uuid4(), uuid4())
    assert group.statuses[EntityCategory.PAYMENT] is CategoryStatus.DEGRADED
    assert EntityCategory.PAYMENT not in {s.query.category for s in store.subscriptions}
    assert len(store.subscriptions) == len(ALL_CATEGORIES)


@pytest.mark.asyncio
async def test_late_callbacks_after_close_are_discarded(store, aggregator):
    org = uuid4()
    group = await aggregator.open_aggregation(uuid4(), org)
    chat = store.sub_for(EntityCategory.CHAT)
    chat.on_snapshot(entities(EntityCategory.CHAT, org, 1))
    seen = []
    group.add_listener(seen.append)

    await aggregator.close_aggregation(group)

    assert all(s.cancelled for s in store.subscriptions)
    chat.on_snapshot(entities(EntityCategory.CHAT, org, 9))
    chat.on_error(RuntimeError("late"))
    assert group.counts[EntityCategory.CHAT] == 1
    assert group.statuses[EntityCategory.CHAT] is CategoryStatus.LIVE
    assert seen == []


@pytest.mark.asyncio
async def test_switching_organization_ignores_old_group_callbacks(store, aggregator):
    user = uuid4()
    old_org, new_org = uuid4(), uuid4()
    registry = AggregationRegistry(aggregator)
    old = await registry.open(user, old_org)
    old_chat = store.sub_for(EntityCategory.CHAT)

    new = await registry.switch_organization(old, new_org)
    new_chat = store.sub_for(EntityCategory.CHAT)
    assert new_chat is not old_chat
    assert registry.groups_for(user) == [new]

    old_chat.on_snapshot(entities(EntityCategory.CHAT, old_org, 7))
    new_chat.on_snapshot(entities(EntityCategory.CHAT, new_org, 2))
    assert new.counts[EntityCategory.CHAT] == 2
    assert new.total == 2
    assert old.counts[EntityCategory.CHAT] == 0


@pytest.mark.asyncio
async def test_setup_timeout_marks_silent_categories_stale(store):
    org = uuid4()
    aggregator = UnreadAggregator(
        store, options=AggregationOptions(setup_timeout_seconds=0.01)
    )
    group = await aggregator.open_aggregation(uuid4(), org)
    store.sub_for(EntityCategory.CHAT).on_snapshot(entities(EntityCategory.CHAT, org, 1))
    store.sub_for(EntityCategory.CHAT, direct=True).on_snapshot([])

    await asyncio.sleep(0.05)

    assert group.statuses[EntityCategory.CHAT] is CategoryStatus.LIVE
    stale = [c for c, s in group.statuses.items() if s is CategoryStatus.STALE]
    assert set(stale) == set(ALL_CATEGORIES) - {EntityCategory.CHAT}
    group.close()


@pytest.mark.asyncio
async def test_refresh_re_reads_one_category(store, aggregator):
    user = uuid4()
    org = uuid4()
    registry = AggregationRegistry(aggregator)
    group = await registry.open(user, org)
    store.snapshots[EntityCategory.ANNOUNCEMENT] = entities(EntityCategory.ANNOUNCEMENT, org, 3)

    refreshed = await registry.refresh(
        user_id=user, organization_id=org, category=EntityCategory.ANNOUNCEMENT
    )

    assert refreshed == 1
    assert group.counts[EntityCategory.ANNOUNCEMENT] == 3
    assert group.statuses[EntityCategory.CHAT] is CategoryStatus.PENDING


@pytest.mark.asyncio
async def test_count_once_degrades_failing_category(store, aggregator):
    org = uuid4()
    store.snapshots[EntityCategory.CHAT] = entities(EntityCategory.CHAT, org, 2)
    store.snapshot_errors[EntityCategory.BILL] = PermissionDenied("nope")

    snap = await aggregator.count_once(uuid4(), org)

    assert snap.counts[EntityCategory.CHAT] == 2
    assert snap.statuses[EntityCategory.BILL] is CategoryStatus.DEGRADED
    assert snap.total == 2
    assert store.subscriptions == []


@pytest.mark.asyncio
async def test_listener_failure_is_isolated(store, aggregator):
    org = uuid4()
    group = await aggregator.open_aggregation(uuid4(), org)
    seen = []

    def broken(_snapshot):
        raise RuntimeError("boom")

    group.add_listener(broken)
    group.add_listener(seen.append)
    store.sub_for(EntityCategory.CHAT).on_snapshot(entities(EntityCategory.CHAT, org, 1))
    assert seen and seen[-1].total == 1


def test_category_queries_add_direct_messages_for_a_user():
    org, user = uuid4(), uuid4()
    queries = category_queries(org, AggregationOptions(), user)
    direct = [q for q in queries if q.direct]
    assert len(direct) == 1
    assert direct[0].category is EntityCategory.CHAT
    assert direct[0].organization_id is None
    assert direct[0].receiver_id == user
    assert direct[0].limit == 100


@pytest.mark.asyncio
async def test_direct_messages_fold_into_chat_count(store, aggregator):
    user, sender = uuid4(), uuid4()
    org = uuid4()
    group = await aggregator.open_aggregation(user, org)

    store.sub_for(EntityCategory.CHAT).on_snapshot(entities(EntityCategory.CHAT, org, 2))
    store.sub_for(EntityCategory.CHAT, direct=True).on_snapshot(
        entities(EntityCategory.CHAT, None, 3, actor=sender)
    )

    assert group.counts[EntityCategory.CHAT] == 5
    assert group.statuses[EntityCategory.CHAT] is CategoryStatus.LIVE
    assert len(group.unread_refs(EntityCategory.CHAT)) == 5
    assert group.total == 5

    # A fresh direct snapshot replaces only its own share of the count.
    store.sub_for(EntityCategory.CHAT, direct=True).on_snapshot(
        entities(EntityCategory.CHAT, None, 1, actor=sender)
    )
    assert group.counts[EntityCategory.CHAT] == 3


@pytest.mark.asyncio
async def test_failing_direct_query_degrades_chat_but_keeps_organization_share(
    store, aggregator
):
    org = uuid4()
    group = await aggregator.open_aggregation(uuid4(), org)
    store.sub_for(EntityCategory.CHAT).on_snapshot(entities(EntityCategory.CHAT, org, 2))

    store.sub_for(EntityCategory.CHAT, direct=True).on_error(PermissionDenied("no access"))

    assert group.statuses[EntityCategory.CHAT] is CategoryStatus.DEGRADED
    assert group.counts[EntityCategory.CHAT] == 2


@pytest.mark.asyncio
async def test_count_once_includes_direct_messages(store, aggregator):
    org = uuid4()
    store.snapshots[EntityCategory.CHAT] = entities(EntityCategory.CHAT, org, 1)
    store.direct = entities(EntityCategory.CHAT, None, 2, actor=uuid4())

    snap = await aggregator.count_once(uuid4(), org)

    assert snap.counts[EntityCategory.CHAT] == 3
    assert snap.total == 3


class SlowLiveStore(FakeLiveStore):
    """One-shot reads block until released, after capturing their result."""

    def __init__(self) -> None:
        super().__init__()
        self.reading = asyncio.Event()
        self.release = asyncio.Event()

    async def snapshot(self, query):
        result = await super().snapshot(query)
        self.reading.set()
        await self.release.wait()
        return result


@pytest.mark.asyncio
async def test_refresh_result_older_than_live_snapshot_is_dropped():
    store = SlowLiveStore()
    aggregator = UnreadAggregator(store, options=AggregationOptions(setup_timeout_seconds=None))
    user = uuid4()
    org = uuid4()
    group = await aggregator.open_aggregation(user, org)
    bill = store.sub_for(EntityCategory.BILL)
    unread_bill = entities(EntityCategory.BILL, org, 1)
    bill.on_snapshot(unread_bill)
    store.snapshots[EntityCategory.BILL] = unread_bill

    refreshing = asyncio.create_task(group.refresh(EntityCategory.BILL))
    await store.reading.wait()
    # The user views the bill while the one-shot read is still in flight.
    viewed = [
        ViewableEntity(
            id=e.id,
            category=e.category,
            organization_id=org,
            actor_id=None,
            viewed_by=frozenset({user}),
        )
        for e in unread_bill
    ]
    bill.on_snapshot(viewed)
    assert group.counts[EntityCategory.BILL] == 0

    store.release.set()
    await refreshing

    assert group.counts[EntityCategory.BILL] == 0
    assert group.total == 0

    # Later live snapshots still apply.
    bill.on_snapshot(entities(EntityCategory.BILL, org, 2))
    assert group.counts[EntityCategory.BILL] == 2
    group.close()
