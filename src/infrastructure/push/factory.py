from __future__ import annotations

import logging

from src.application.interfaces.push import PushTransport
from src.config.settings import Settings
from src.infrastructure.push.fcm import FCMClient
from src.infrastructure.push.fcm_v1 import FCMv1Client
from src.infrastructure.push.logging_transport import LoggingPushTransport

logger = logging.getLogger(__name__)


def create_push_transport(settings: Settings) -> PushTransport:
    # Prefer HTTP v1 if configured (from direct json or file path/inline)
    sa_json = settings.get_fcm_service_account_json()
    if settings.fcm_project_id and sa_json:
        return FCMv1Client(project_id=settings.fcm_project_id, service_account_json=sa_json)
    if settings.fcm_server_key:
        return FCMClient(settings.fcm_server_key.get_secret_value())
    logger.info("No FCM credentials configured; push notifications will only be logged")
    return LoggingPushTransport()
