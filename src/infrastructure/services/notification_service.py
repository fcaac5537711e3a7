from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.application.interfaces.push import PushTransport
from src.application.notifications.aggregator import (
    AggregationOptions,
    AggregationRegistry,
    UnreadAggregator,
)
from src.application.notifications.batch_marker import BatchViewMarker
from src.application.notifications.dispatcher import (
    DispatchResult,
    NotificationDispatcher,
    NotificationEvent,
)
from src.application.notifications.foreground import ForegroundDeliveryBridge, ForegroundSignal
from src.application.notifications.push_registry import PushRegistry
from src.application.notifications.viewed_tracker import (
    PermissionDenialMonitor,
    ViewedSetTracker,
)
from src.config.settings import Settings
from src.infrastructure.push.factory import create_push_transport
from src.infrastructure.realtime.change_feed import ChangeFeed
from src.infrastructure.realtime.live_store import SQLAlchemyLiveStore, SQLAlchemyViewedSetStore
from src.infrastructure.repos.device_tokens_sqlalchemy import DeviceTokensSQLAlchemyRepository
from src.infrastructure.websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


class NotificationService:
    """Process-wide wiring of the notification core.

    Owns the change feed, the open aggregation groups and the WebSocket
    connections; request handlers borrow short-lived sessions for everything else.
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        push_transport: PushTransport | None = None,
        connection_manager: ConnectionManager | None = None,
        change_feed: ChangeFeed | None = None,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.change_feed = change_feed or ChangeFeed()
        self.connection_manager = connection_manager or ConnectionManager()
        self.push_transport = push_transport or create_push_transport(settings)

        self.live_store = SQLAlchemyLiveStore(session_factory, self.change_feed)
        self.tracker = ViewedSetTracker(
            SQLAlchemyViewedSetStore(session_factory, self.change_feed),
            denial_monitor=PermissionDenialMonitor(
                threshold=settings.view_mark_denial_alert_threshold,
                window_seconds=settings.view_mark_denial_window_seconds,
            ),
        )
        self.marker = BatchViewMarker(
            self.tracker,
            chunk_size=settings.view_mark_chunk_size,
            pause_seconds=settings.view_mark_pause_seconds,
        )
        self.aggregator = UnreadAggregator(
            self.live_store,
            options=AggregationOptions(
                chat_limit=settings.chat_query_limit,
                category_limit=settings.category_query_limit,
                setup_timeout_seconds=settings.subscription_setup_timeout_seconds,
            ),
            marker=self.marker,
        )
        self.aggregations = AggregationRegistry(self.aggregator)
        self.bridge = ForegroundDeliveryBridge(
            self.connection_manager,
            auto_dismiss_seconds=settings.foreground_auto_dismiss_seconds,
        )
        self.bridge.on_foreground_event(self._refresh_on_foreground)

    async def _refresh_on_foreground(self, signal: ForegroundSignal) -> None:
        refreshed = await self.aggregations.refresh(
            user_id=signal.user_id,
            organization_id=signal.organization_id,
            category=signal.category,
        )
        logger.debug(
            "Foreground refresh: user=%s org=%s category=%s groups=%s",
            signal.user_id,
            signal.organization_id,
            signal.category.value,
            refreshed,
        )

    def push_registry(self, session: AsyncSession) -> PushRegistry:
        return PushRegistry(DeviceTokensSQLAlchemyRepository(session))

    def dispatcher(self, session: AsyncSession) -> NotificationDispatcher:
        return NotificationDispatcher(
            self.push_registry(session),
            self.push_transport,
            bridge=self.bridge,
            presence=self.connection_manager,
        )

    async def dispatch(self, event: NotificationEvent) -> DispatchResult:
        async with self.session_factory() as session:
            result = await self.dispatcher(session).dispatch(event)
            # Persist token evictions
            await session.commit()
        return result

    async def shutdown(self) -> None:
        await self.aggregations.close_all()
