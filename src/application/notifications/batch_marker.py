from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable
from uuid import UUID

from src.application.notifications.viewed_tracker import ViewedSetTracker
from src.domain.models.viewable import EntityRef

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BatchMarkResult:
    chunks: int = 0
    marked: int = 0
    failed: int = 0


def _dedupe(refs: Iterable[EntityRef]) -> list[EntityRef]:
    seen: set[EntityRef] = set()
    ordered: list[EntityRef] = []
    for ref in refs:
        if ref not in seen:
            seen.add(ref)
            ordered.append(ref)
    return ordered


def chunked(items: list[EntityRef], size: int) -> list[list[EntityRef]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class BatchViewMarker:
    """Marks many entities viewed without flooding the store.

    Each chunk is written concurrently and awaited as a whole; a short pause
    separates consecutive chunks.
    """

    def __init__(
        self,
        tracker: ViewedSetTracker,
        *,
        chunk_size: int = 10,
        pause_seconds: float = 0.05,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.tracker = tracker
        self.chunk_size = chunk_size
        self.pause_seconds = pause_seconds

    async def mark_batch(self, user_id: UUID, refs: Iterable[EntityRef]) -> BatchMarkResult:
        pending = _dedupe(refs)
        result = BatchMarkResult()
        if not pending:
            return result
        chunks = chunked(pending, self.chunk_size)
        for index, chunk in enumerate(chunks):
            if index:
                await asyncio.sleep(self.pause_seconds)
            outcomes = await asyncio.gather(
                *(self.tracker.mark_viewed(ref, user_id) for ref in chunk)
            )
            result.chunks += 1
            ok = sum(1 for o in outcomes if o)
            result.marked += ok
            result.failed += len(outcomes) - ok
        logger.info(
            "Batch view-mark: user=%s items=%s chunks=%s marked=%s failed=%s",
            user_id,
            len(pending),
            result.chunks,
            result.marked,
            result.failed,
        )
        return result


class ViewMarkQueue:
    """Per-group queue feeding a BatchViewMarker from a single background flush task."""

    def __init__(self, marker: BatchViewMarker, user_id: UUID) -> None:
        self.marker = marker
        self.user_id = user_id
        self._queued: list[EntityRef] = []
        self._known: set[EntityRef] = set()
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._queued)

    def enqueue(self, refs: Iterable[EntityRef]) -> int:
        if self._closed:
            return 0
        added = 0
        for ref in refs:
            if ref in self._known:
                continue
            self._known.add(ref)
            self._queued.append(ref)
            added += 1
        if added and (self._task is None or self._task.done()):
            self._task = asyncio.create_task(self._flush())
        return added

    async def _flush(self) -> None:
        while self._queued and not self._closed:
            batch, self._queued = self._queued, []
            try:
                await self.marker.mark_batch(self.user_id, batch)
            finally:
                # Failed refs become eligible again on the next observation.
                self._known.difference_update(batch)

    async def drain(self) -> None:
        if self._task is not None:
            await self._task

    def close(self) -> None:
        self._closed = True
        self._queued.clear()
        if self._task is not None and not self._task.done():
            self._task.cancel()
