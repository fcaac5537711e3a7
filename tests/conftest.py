from __future__ import annotations

import os
import sys
from collections.abc import AsyncIterator
from pathlib import Path
from typing import cast
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///default.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(PROJECT_ROOT))

# ruff: noqa: E402
from src.application.interfaces.push import MulticastResult, PushMessage, TokenOutcome
from src.config.settings import Settings
from src.domain.value_objects.role import Role
from src.infrastructure.auth.jwt_service import JWTService
from src.infrastructure.db.base import Base
from src.infrastructure.db.orm import (  # noqa: F401
    bill,
    device_token,
    entity_view,
    membership,
    message,
    organization_document,
    payment,
)
from src.infrastructure.db.orm.membership import MembershipORM
from src.interfaces.http.main import create_app


class RecordingPushTransport:
    """Accepts every token except those listed in ``errors`` (token -> error code)."""

    def __init__(self, errors: dict[str, str] | None = None) -> None:
        self.errors = errors or {}
        self.calls: list[tuple[list[str], PushMessage]] = []

    async def send_multicast(self, tokens: list[str], message: PushMessage) -> MulticastResult:
        self.calls.append((list(tokens), message))
        return MulticastResult(
            [
                TokenOutcome(token=t, success=t not in self.errors, error=self.errors.get(t))
                for t in tokens
            ]
        )


@pytest.fixture(scope="session")
def organization_id() -> UUID:
    return uuid4()


@pytest.fixture()
def test_settings(tmp_path) -> Settings:
    db_path = tmp_path / "test.db"
    return Settings.model_validate(
        {
            "database_url": f"sqlite+aiosqlite:///{db_path}",
            "jwt_secret_key": "test-secret",
            "organization_header": "X-Organization-ID",
            "log_level": "INFO",
            "environment": "test",
            "view_mark_pause_ms": 0,
            "subscription_setup_timeout_seconds": 5,
        }
    )


@pytest.fixture()
def jwt_service(test_settings: Settings) -> JWTService:
    return JWTService(
        secret_key=test_settings.jwt_secret_key.get_secret_value(),
        algorithm=test_settings.jwt_algorithm,
        access_token_expires_minutes=test_settings.jwt_access_token_expires_minutes,
    )


@pytest.fixture()
def push_transport() -> RecordingPushTransport:
    return RecordingPushTransport()


@pytest.fixture()
def app(test_settings: Settings, jwt_service: JWTService, push_transport: RecordingPushTransport):
    return create_app(
        settings=test_settings, jwt_service=jwt_service, push_transport=push_transport
    )


@pytest.fixture()
async def client(app) -> AsyncIterator[AsyncClient]:
    engine = app.state.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as c:
        yield c
    await app.state.notification_service.shutdown()
    await engine.dispose()


@pytest.fixture()
async def seeded_memberships(app, client, organization_id: UUID) -> dict[str, UUID]:
    owner_id = uuid4()
    admin_id = uuid4()
    member_id = uuid4()
    async with app.state.session_factory() as session:  # type: ignore[attr-defined]
        async_session = cast(AsyncSession, session)
        async_session.add_all(
            [
                MembershipORM(user_id=owner_id, organization_id=organization_id, role=Role.OWNER),
                MembershipORM(user_id=admin_id, organization_id=organization_id, role=Role.ADMIN),
                MembershipORM(
                    user_id=member_id, organization_id=organization_id, role=Role.MEMBER
                ),
            ]
        )
        await async_session.commit()
    return {"owner": owner_id, "admin": admin_id, "member": member_id}


@pytest.fixture()
def auth_headers(jwt_service: JWTService, organization_id: UUID):
    def build(user_id: UUID, org: UUID | None = None) -> dict[str, str]:
        token = jwt_service.create_access_token(subject=user_id)
        return {
            "Authorization": f"Bearer {token}",
            "X-Organization-ID": str(org or organization_id),
        }

    return build
