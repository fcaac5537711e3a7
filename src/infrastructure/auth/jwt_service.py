from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from uuid import UUID

from jose import jwt
from jose.exceptions import JWTError

from src.application.errors import AuthError


@dataclass(slots=True, frozen=True)
class AccessClaims:
    user_id: UUID
    raw: dict[str, Any]


class JWTService:
    """Verifies access tokens issued by the account service.

    ``create_access_token`` signs tokens with the same settings; the API never
    issues tokens itself, tests and operator tooling do.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        algorithm: str,
        access_token_expires_minutes: int,
        issuer: str | None = None,
        audience: str | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.lifetime = timedelta(minutes=access_token_expires_minutes)
        self.issuer = issuer
        self.audience = audience

    def create_access_token(
        self, *, subject: UUID, extra_claims: Mapping[str, Any] | None = None
    ) -> str:
        issued = datetime.now(timezone.utc)
        claims: dict[str, Any] = dict(extra_claims or {})
        claims.update(
            sub=str(subject),
            typ="access",
            iat=int(issued.timestamp()),
            exp=int((issued + self.lifetime).timestamp()),
        )
        if self.issuer:
            claims["iss"] = self.issuer
        if self.audience:
            claims["aud"] = self.audience
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> AccessClaims:
        try:
            raw = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
            )
        except JWTError as exc:
            raise AuthError("Token validation failed") from exc
        if raw.get("typ") != "access":
            raise AuthError("Invalid token type")
        try:
            user_id = UUID(str(raw["sub"]))
        except (KeyError, ValueError) as exc:
            raise AuthError("Token subject is missing or not a UUID") from exc
        return AccessClaims(user_id=user_id, raw=raw)
