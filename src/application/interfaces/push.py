from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol
from uuid import UUID

from src.domain.value_objects.entity_category import EntityCategory

# Per-token error codes that mean the registration is gone for good.
STALE_TOKEN_ERRORS = frozenset({"unregistered", "invalid_token", "not_registered"})


@dataclass(slots=True)
class PushMessage:
    title: str
    body: str
    category: EntityCategory
    organization_id: UUID | None = None
    actor_id: UUID | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def as_data(self) -> dict[str, str]:
        """Flatten into the string-only data map push services require."""
        payload = {k: str(v) for k, v in self.data.items() if v is not None}
        payload["type"] = self.category.value
        if self.organization_id is not None:
            payload["organization_id"] = str(self.organization_id)
        if self.actor_id is not None:
            payload["actor_id"] = str(self.actor_id)
        return payload


@dataclass(slots=True, frozen=True)
class TokenOutcome:
    token: str
    success: bool
    error: str | None = None

    @property
    def stale(self) -> bool:
        return not self.success and self.error in STALE_TOKEN_ERRORS


@dataclass(slots=True)
class MulticastResult:
    outcomes: list[TokenOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def stale_tokens(self) -> list[str]:
        return [o.token for o in self.outcomes if o.stale]

    @classmethod
    def all_failed(cls, tokens: Iterable[str], error: str) -> MulticastResult:
        return cls([TokenOutcome(token=t, success=False, error=error) for t in tokens])


class PushTransport(Protocol):
    async def send_multicast(self, tokens: list[str], message: PushMessage) -> MulticastResult:
        """Send one message to many tokens. Raises TransportUnavailable on a whole-call failure."""
        ...


class LocalNotifier(Protocol):
    async def show(
        self, user_id: UUID, message: PushMessage, *, auto_dismiss_seconds: float
    ) -> None: ...


class PresenceTracker(Protocol):
    def focus_state(self, organization_id: UUID | None, user_id: UUID) -> bool | None:
        """None when the user has no attached client, else whether any client is focused."""
        ...
