from __future__ import annotations

from uuid import uuid4


async def test_health_is_public(client):
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_missing_token_is_rejected(client, organization_id):
    response = await client.get(
        "/api/v1/notifications/unread-counts",
        headers={"X-Organization-ID": str(organization_id)},
    )
    assert response.status_code == 401
    assert response.json()["code"] == "auth_error"


async def test_non_member_is_forbidden(client, seeded_memberships, auth_headers):
    response = await client.get(
        "/api/v1/notifications/unread-counts", headers=auth_headers(uuid4())
    )
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


async def test_register_and_delete_tokens(client, seeded_memberships, auth_headers):
    headers = auth_headers(seeded_memberships["member"])

    first = await client.post(
        "/api/v1/devices/tokens",
        json={"platform": "web", "token": "browser-token-0001"},
        headers=headers,
    )
    second = await client.post(
        "/api/v1/devices/tokens",
        json={"platform": "ios", "token": "phone-token-0002", "app_version": "1.4.0"},
        headers=headers,
    )
    again = await client.post(
        "/api/v1/devices/tokens",
        json={"platform": "web", "token": "browser-token-0001"},
        headers=headers,
    )
    assert first.status_code == 200
    assert first.json()["token_count"] == 1
    assert second.json()["token_count"] == 2
    assert again.json()["token_count"] == 2

    deleted = await client.request(
        "DELETE",
        "/api/v1/devices/tokens",
        json={"token": "browser-token-0001"},
        headers=headers,
    )
    assert deleted.status_code == 200
    assert deleted.json()["token_count"] == 1


async def test_short_token_is_a_validation_error(client, seeded_memberships, auth_headers):
    response = await client.post(
        "/api/v1/devices/tokens",
        json={"platform": "web", "token": "short"},
        headers=auth_headers(seeded_memberships["member"]),
    )
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"
