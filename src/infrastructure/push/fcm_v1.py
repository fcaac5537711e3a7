from __future__ import annotations

import json
import logging
import time

import httpx
from jose import jwt

from src.application.errors import TransportUnavailable
from src.application.interfaces.push import MulticastResult, PushMessage, TokenOutcome

logger = logging.getLogger(__name__)


def _names_token_field(error: dict) -> bool:
    for detail in error.get("details") or []:
        if not isinstance(detail, dict):
            continue
        for violation in detail.get("fieldViolations") or []:
            if isinstance(violation, dict) and violation.get("field") == "message.token":
                return True
    return False


def _error_code(resp: httpx.Response) -> str:
    """Map an HTTP v1 error response onto the transport-neutral codes.

    Only ``UNREGISTERED`` and an ``INVALID_ARGUMENT`` that names the token field
    mark a token stale; payload or project errors fail the send without eviction.
    """
    try:
        error = resp.json().get("error", {})
    except ValueError:
        error = {}
    if not isinstance(error, dict):
        error = {}
    status = error.get("status", "")
    details = error.get("details") or []
    fcm_codes = {d.get("errorCode") for d in details if isinstance(d, dict)}
    if "UNREGISTERED" in fcm_codes:
        return "unregistered"
    if "INVALID_ARGUMENT" in fcm_codes or status == "INVALID_ARGUMENT":
        return "invalid_token" if _names_token_field(error) else "invalid_argument"
    if resp.status_code == 404 or status == "NOT_FOUND":
        return "not_found"
    if resp.status_code == 429 or status == "RESOURCE_EXHAUSTED":
        return "quota_exceeded"
    if resp.status_code >= 500:
        return "unavailable"
    return status.lower() or f"http_{resp.status_code}"


class FCMv1Client:
    """Minimal Firebase Cloud Messaging HTTP v1 client using a Service Account JSON.

    It generates a short-lived OAuth2 access token via JWT assertion and sends messages
    to the v1 endpoint.
    """

    OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
    SCOPE = "https://www.googleapis.com/auth/firebase.messaging"

    def __init__(
        self,
        *,
        project_id: str,
        service_account_json: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.project_id = project_id
        self.sa = json.loads(service_account_json)
        self._transport = transport
        self._cached_token: str | None = None
        self._token_exp: int = 0

    async def send_multicast(self, tokens: list[str], message: PushMessage) -> MulticastResult:
        result = MulticastResult()
        if not tokens:
            return result
        access_token = await self._get_access_token()
        url = f"https://fcm.googleapis.com/v1/projects/{self.project_id}/messages:send"
        headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        data = message.as_data()

        async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
            # Send as multicast by iterating (v1 API lacks registration_ids batch)
            for token in tokens:
                payload = {
                    "message": {
                        "token": token,
                        "notification": {"title": message.title, "body": message.body},
                        "data": data,
                    }
                }
                try:
                    resp = await client.post(url, headers=headers, json=payload)
                except httpx.HTTPError as exc:
                    logger.warning("FCM v1 request failed for one token: %s", exc)
                    result.outcomes.append(
                        TokenOutcome(token=token, success=False, error="unavailable")
                    )
                    continue
                if resp.status_code >= 400:
                    logger.error("FCM v1 error %s: %s", resp.status_code, resp.text)
                    result.outcomes.append(
                        TokenOutcome(token=token, success=False, error=_error_code(resp))
                    )
                else:
                    logger.debug("FCM v1 sent: %s", resp.text)
                    result.outcomes.append(TokenOutcome(token=token, success=True))
        return result

    async def _get_access_token(self) -> str:
        now = int(time.time())
        # Reuse cached token if valid for > 60s
        if self._cached_token and now < (self._token_exp - 60):
            return self._cached_token

        iat = now
        exp = now + 3600
        assertion = jwt.encode(
            {
                "iss": self.sa["client_email"],
                "scope": self.SCOPE,
                "aud": self.OAUTH_TOKEN_URL,
                "iat": iat,
                "exp": exp,
            },
            self.sa["private_key"],
            algorithm="RS256",
        )

        data = {
            "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
            "assertion": assertion,
        }
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                resp = await client.post(self.OAUTH_TOKEN_URL, data=data)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportUnavailable(f"Could not obtain FCM access token: {exc}") from exc
        token = resp.json()["access_token"]
        self._cached_token = token
        self._token_exp = exp
        return token
