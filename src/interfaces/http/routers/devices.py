from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.infrastructure.auth.context import AuthContext
from src.infrastructure.db.session import SQLAlchemyUnitOfWork
from src.interfaces.http.deps import get_auth_context, get_notification_service, get_uow

router = APIRouter(prefix="/devices", tags=["devices"])


class RegisterDeviceTokenRequest(BaseModel):
    platform: Literal["ios", "android", "web"] = Field("web", description="Device platform")
    token: str = Field(..., min_length=10, max_length=1024)
    app_version: str | None = Field(None, max_length=50)


class DeviceTokenResponse(BaseModel):
    status: str
    token_count: int


class DeleteDeviceTokenRequest(BaseModel):
    token: str


@router.post("/tokens", response_model=DeviceTokenResponse)
async def register_device_token(
    payload: RegisterDeviceTokenRequest,
    context: AuthContext = Depends(get_auth_context),
    uow: SQLAlchemyUnitOfWork = Depends(get_uow),
    service=Depends(get_notification_service),
) -> DeviceTokenResponse:
    registry = service.push_registry(uow.session)
    await registry.register_token(
        context.user_id,
        payload.token,
        platform=payload.platform,
        organization_id=context.organization_id,
        app_version=payload.app_version,
    )
    await uow.commit()
    tokens = await registry.get_tokens(context.user_id)
    return DeviceTokenResponse(status="ok", token_count=len(tokens))


@router.delete("/tokens", response_model=DeviceTokenResponse)
async def delete_device_token(
    payload: DeleteDeviceTokenRequest,
    context: AuthContext = Depends(get_auth_context),
    uow: SQLAlchemyUnitOfWork = Depends(get_uow),
    service=Depends(get_notification_service),
) -> DeviceTokenResponse:
    registry = service.push_registry(uow.session)
    await registry.unregister_token(context.user_id, payload.token)
    await uow.commit()
    tokens = await registry.get_tokens(context.user_id)
    return DeviceTokenResponse(status="ok", token_count=len(tokens))
