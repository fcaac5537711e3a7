from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable

from src.application.interfaces.repositories.entities import (
    CategoryQuery,
    ErrorCallback,
    SnapshotCallback,
)
from src.domain.models.viewable import ViewableEntity
from src.infrastructure.realtime.change_feed import ChangeFeed

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[CategoryQuery], Awaitable[list[ViewableEntity]]]


async def _invoke(callback, *args) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class LiveQuery:
    """One running live query: initial snapshot, then a fresh snapshot per change burst.

    The feed queue is registered before the first read so no change committed
    during the initial load is missed. Bursts of changes collapse into a single
    re-read.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        loader: SnapshotLoader,
        query: CategoryQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.feed = feed
        self.loader = loader
        self.query = query
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self._queue = feed.subscribe(query.category, query.organization_id)
        self._cancelled = False
        self._task = asyncio.create_task(self._run())

    @property
    def active(self) -> bool:
        return not self._cancelled and not self._task.done()

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self.feed.unsubscribe(self.query.category, self.query.organization_id, self._queue)
        self._task.cancel()

    async def wait_closed(self) -> None:
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        await self._deliver()
        while not self._cancelled:
            await self._queue.get()
            while not self._queue.empty():
                self._queue.get_nowait()
            await self._deliver()

    async def _deliver(self) -> None:
        try:
            entities = await self.loader(self.query)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._cancelled:
                return
            if self.on_error is None:
                logger.error("Live query %s failed: %s", self.query.category.value, exc)
                return
            try:
                await _invoke(self.on_error, exc)
            except Exception as cb_exc:
                logger.error("Live query error callback failed: %s", cb_exc, exc_info=True)
            return
        if self._cancelled:
            return
        try:
            await _invoke(self.on_snapshot, entities)
        except Exception as exc:
            logger.error(
                "Live query %s snapshot callback failed: %s",
                self.query.category.value,
                exc,
                exc_info=True,
            )
