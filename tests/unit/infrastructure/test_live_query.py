from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from src.application.errors import PermissionDenied
from src.application.interfaces.repositories.entities import CategoryQuery
from src.domain.models.viewable import ViewableEntity
from src.domain.value_objects.entity_category import EntityCategory
from src.infrastructure.realtime.change_feed import ChangeFeed, EntityChange
from src.infrastructure.realtime.live_query import LiveQuery


class CountingLoader:
    def __init__(self, org) -> None:
        self.org = org
        self.calls = 0
        self.error: Exception | None = None

    async def __call__(self, query: CategoryQuery) -> list[ViewableEntity]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [
            ViewableEntity(
                id=uuid4(), category=query.category, organization_id=self.org, actor_id=None
            )
            for _ in range(self.calls)
        ]


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def test_feed_routes_by_category_and_organization():
    feed = ChangeFeed()
    org = uuid4()
    chat = feed.subscribe(EntityCategory.CHAT, org)
    other_org = feed.subscribe(EntityCategory.CHAT, uuid4())
    delivered = feed.publish(EntityChange(EntityCategory.CHAT, org, uuid4(), "created"))
    feed.publish(EntityChange(EntityCategory.BILL, org, uuid4(), "created"))
    assert delivered == 1
    assert chat.qsize() == 1
    assert other_org.qsize() == 0
    feed.unsubscribe(EntityCategory.CHAT, org, chat)
    assert feed.subscriber_count() == 1



@pytest.mark.asyncio
async def test_initial_snapshot_then_one_reload_per_burst():
    feed = ChangeFeed()
    org = uuid4()
    loader = CountingLoader(org)
    snapshots = []
    query = CategoryQuery(EntityCategory.BILL, org)

    live = LiveQuery(feed, loader, query, snapshots.append)
    await settle()
    assert [len(s) for s in snapshots] == [1]

    for _ in range(3):
        feed.publish(EntityChange(EntityCategory.BILL, org, uuid4(), "created"))
    await settle()

    assert loader.calls == 2
    assert [len(s) for s in snapshots] == [1, 2]
    live.cancel()
    await live.wait_closed()
    assert not live.active
    assert feed.subscriber_count() == 0


@pytest.mark.asyncio
async def test_loader_errors_go_to_error_callback():
    feed = ChangeFeed()
    org = uuid4()
    loader = CountingLoader(org)
    loader.error = PermissionDenied("rules")
    errors = []

    query = CategoryQuery(EntityCategory.PAYMENT, org)
    live = LiveQuery(feed, loader, query, lambda _: None, errors.append)
    await settle()

    assert len(errors) == 1
    assert isinstance(errors[0], PermissionDenied)
    live.cancel()


@pytest.mark.asyncio
async def test_no_callbacks_after_cancel():
    feed = ChangeFeed()
    org = uuid4()
    snapshots = []
    live = LiveQuery(
        feed, CountingLoader(org), CategoryQuery(EntityCategory.CHAT, org), snapshots.append
    )
    await settle()
    live.cancel()
    feed.publish(EntityChange(EntityCategory.CHAT, org, uuid4(), "created"))
    await settle()
    assert len(snapshots) == 1
