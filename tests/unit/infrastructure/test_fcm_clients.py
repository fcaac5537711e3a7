from __future__ import annotations

import json
import time
from uuid import uuid4

import httpx
import pytest

from src.application.errors import TransportUnavailable
from src.application.interfaces.push import PushMessage
from src.config.settings import Settings
from src.domain.value_objects.entity_category import EntityCategory
from src.infrastructure.push.factory import create_push_transport
from src.infrastructure.push.fcm import FCMClient
from src.infrastructure.push.fcm_v1 import FCMv1Client
from src.infrastructure.push.logging_transport import LoggingPushTransport

SERVICE_ACCOUNT = json.dumps({"client_email": "svc@example.iam", "private_key": "unused"})


def make_message() -> PushMessage:
    return PushMessage(
        title="💰 New Bill Posted",
        body="Water - $40.00",
        category=EntityCategory.BILL,
        organization_id=uuid4(),
        data={"bill_id": uuid4()},
    )


def make_settings(**overrides) -> Settings:
    values = {"database_url": "sqlite+aiosqlite:///x.db", "jwt_secret_key": "k"}
    values.update(overrides)
    return Settings.model_validate(values)


@pytest.mark.asyncio
async def test_legacy_client_sends_one_request_and_maps_errors():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "success": 1,
                "failure": 2,
                "results": [
                    {"message_id": "m-1"},
                    {"error": "NotRegistered"},
                    {"error": "InvalidRegistration"},
                ],
            },
        )

    client = FCMClient("server-key", transport=httpx.MockTransport(handler))
    result = await client.send_multicast(["t1", "t2", "t3"], make_message())

    assert len(requests) == 1
    assert requests[0]["registration_ids"] == ["t1", "t2", "t3"]
    assert requests[0]["data"]["type"] == "bill"
    assert result.success_count == 1
    assert result.failure_count == 2
    assert sorted(result.stale_tokens) == ["t2", "t3"]


@pytest.mark.asyncio
async def test_legacy_client_raises_when_service_unavailable():
    transport = httpx.MockTransport(lambda request: httpx.Response(503, text="down"))
    client = FCMClient("server-key", transport=transport)
    with pytest.raises(TransportUnavailable):
        await client.send_multicast(["t1"], make_message())


@pytest.mark.asyncio
async def test_legacy_client_raises_on_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route", request=request)

    client = FCMClient("server-key", transport=httpx.MockTransport(handler))
    with pytest.raises(TransportUnavailable):
        await client.send_multicast(["t1"], make_message())


@pytest.mark.asyncio
async def test_legacy_client_skips_empty_token_list():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = FCMClient("server-key", transport=httpx.MockTransport(handler))
    result = await client.send_multicast([], make_message())
    assert result.outcomes == []


@pytest.mark.asyncio
async def test_v1_client_reports_per_token_outcomes():
    def handler(request: httpx.Request) -> httpx.Response:
        token = json.loads(request.content)["message"]["token"]
        if token == "gone":
            return httpx.Response(
                404,
                json={
                    "error": {
                        "status": "NOT_FOUND",
                        "details": [{"errorCode": "UNREGISTERED"}],
                    }
                },
            )
        if token == "garbage":
            return httpx.Response(
                400,
                json={
                    "error": {
                        "status": "INVALID_ARGUMENT",
                        "details": [
                            {
                                "@type": "type.googleapis.com/google.rpc.BadRequest",
                                "fieldViolations": [{"field": "message.token"}],
                            }
                        ],
                    }
                },
            )
        if token == "oversized":
            return httpx.Response(
                400,
                json={
                    "error": {
                        "status": "INVALID_ARGUMENT",
                        "message": "Invalid JSON payload received.",
                    }
                },
            )
        if token == "wrong-project":
            return httpx.Response(404, json={"error": {"status": "NOT_FOUND"}})
        if token == "busy":
            return httpx.Response(503, json={"error": {"status": "UNAVAILABLE"}})
        return httpx.Response(200, json={"name": "projects/p/messages/1"})

    client = FCMv1Client(
        project_id="p",
        service_account_json=SERVICE_ACCOUNT,
        transport=httpx.MockTransport(handler),
    )
    # Skip the OAuth exchange
    client._cached_token = "cached"
    client._token_exp = int(time.time()) + 3600

    tokens = ["ok", "gone", "garbage", "oversized", "wrong-project", "busy"]
    result = await client.send_multicast(tokens, make_message())

    errors = {o.token: o.error for o in result.outcomes}
    assert errors == {
        "ok": None,
        "gone": "unregistered",
        "garbage": "invalid_token",
        "oversized": "invalid_argument",
        "wrong-project": "not_found",
        "busy": "unavailable",
    }
    assert sorted(result.stale_tokens) == ["garbage", "gone"]


def test_factory_picks_transport_from_settings():
    assert isinstance(create_push_transport(make_settings()), LoggingPushTransport)
    assert isinstance(
        create_push_transport(make_settings(fcm_server_key="abc")), FCMClient
    )
    v1 = create_push_transport(
        make_settings(fcm_project_id="p", fcm_service_account_json=SERVICE_ACCOUNT)
    )
    assert isinstance(v1, FCMv1Client)


@pytest.mark.asyncio
async def test_logging_transport_accepts_everything():
    result = await LoggingPushTransport().send_multicast(["a", "b"], make_message())
    assert result.success_count == 2
