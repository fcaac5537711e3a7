from __future__ import annotations

import logging

import httpx

from src.application.errors import TransportUnavailable
from src.application.interfaces.push import MulticastResult, PushMessage, TokenOutcome

logger = logging.getLogger(__name__)

# Legacy API error names mapped onto the transport-neutral codes.
_LEGACY_ERRORS = {
    "NotRegistered": "unregistered",
    "InvalidRegistration": "invalid_token",
    "MismatchSenderId": "invalid_token",
    "Unavailable": "unavailable",
    "InternalServerError": "unavailable",
}

# registration_ids accepts at most this many tokens per request.
MAX_TOKENS_PER_REQUEST = 1000


class FCMClient:
    """Minimal FCM legacy HTTP sender (server key)."""

    endpoint = "https://fcm.googleapis.com/fcm/send"

    def __init__(self, server_key: str, *, transport: httpx.AsyncBaseTransport | None = None):
        self.server_key = server_key
        self._transport = transport

    async def send_multicast(self, tokens: list[str], message: PushMessage) -> MulticastResult:
        result = MulticastResult()
        if not tokens:
            return result
        headers = {
            "Authorization": f"key={self.server_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
            for start in range(0, len(tokens), MAX_TOKENS_PER_REQUEST):
                batch = tokens[start : start + MAX_TOKENS_PER_REQUEST]
                payload = {
                    "registration_ids": batch,
                    "notification": {"title": message.title, "body": message.body},
                    "data": message.as_data(),
                    "priority": "high",
                }
                try:
                    resp = await client.post(self.endpoint, headers=headers, json=payload)
                except httpx.HTTPError as exc:
                    raise TransportUnavailable(f"FCM request failed: {exc}") from exc
                if resp.status_code >= 500 or resp.status_code in (401, 403):
                    logger.error("FCM error %s: %s", resp.status_code, resp.text)
                    raise TransportUnavailable(f"FCM rejected request ({resp.status_code})")
                if resp.status_code >= 400:
                    logger.error("FCM error %s: %s", resp.status_code, resp.text)
                    result.outcomes.extend(
                        TokenOutcome(token=t, success=False, error="bad_request") for t in batch
                    )
                    continue
                result.outcomes.extend(self._parse(batch, resp.json()))
        logger.debug(
            "FCM sent: success=%s failure=%s", result.success_count, result.failure_count
        )
        return result

    @staticmethod
    def _parse(batch: list[str], body: dict) -> list[TokenOutcome]:
        results = body.get("results") or []
        outcomes: list[TokenOutcome] = []
        for index, token in enumerate(batch):
            entry = results[index] if index < len(results) else {}
            error = entry.get("error")
            if error:
                outcomes.append(
                    TokenOutcome(token=token, success=False, error=_LEGACY_ERRORS.get(error, error))
                )
            else:
                outcomes.append(TokenOutcome(token=token, success=bool(entry.get("message_id"))))
        return outcomes
