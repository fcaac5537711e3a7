from __future__ import annotations

import logging

from src.application.interfaces.push import MulticastResult, PushMessage, TokenOutcome

logger = logging.getLogger(__name__)


class LoggingPushTransport:
    """Used when no FCM credentials are configured: logs and reports success."""

    async def send_multicast(self, tokens: list[str], message: PushMessage) -> MulticastResult:
        logger.info(
            "Sending push (logging transport): type=%s org=%s tokens=%s title=%s",
            message.category.value,
            message.organization_id,
            len(tokens),
            message.title,
        )
        return MulticastResult([TokenOutcome(token=t, success=True) for t in tokens])
