from __future__ import annotations

from uuid import UUID

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from src.application.errors import AuthError, PermissionDenied
from src.config.settings import Settings
from src.domain.value_objects.organization_id import parse_organization_id
from src.infrastructure.auth.context import AuthContext, resolve_role

PUBLIC_PATHS: tuple[str, ...] = (
    "/api/v1/health",
    # WebSocket authenticates with a query-string token
    "/api/v1/notifications/ws",
    "/docs",
    "/openapi.json",
    "/redoc",
)


def _bearer_token(request: Request) -> str:
    authorization = request.headers.get("Authorization")
    if not authorization:
        raise AuthError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthError("Invalid Authorization header")
    return token


def _organization_from(request: Request, header: str) -> UUID:
    value = request.headers.get(header)
    if not value:
        raise PermissionDenied("Missing organization header")
    try:
        return parse_organization_id(value)
    except ValueError as exc:
        raise PermissionDenied("Invalid organization identifier") from exc


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolves the caller and their role in the requested organization."""

    def __init__(self, app, *, settings: Settings) -> None:
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS" or request.url.path.startswith(PUBLIC_PATHS):
            return await call_next(request)
        state = request.app.state
        try:
            token = _bearer_token(request)
            organization_id = _organization_from(request, self.settings.organization_header)
            access = state.jwt_service.verify(token)
            async with state.session_factory() as session:
                role = await resolve_role(session, access.user_id, organization_id)
        except (AuthError, PermissionDenied) as exc:
            payload = {"code": exc.code, "message": exc.message}
            if exc.details is not None:
                payload["details"] = exc.details
            return JSONResponse(status_code=exc.status_code, content=payload)
        request.state.auth_context = AuthContext(
            user_id=access.user_id,
            organization_id=organization_id,
            role=role,
            claims=access.raw,
        )
        return await call_next(request)
