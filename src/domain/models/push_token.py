from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(slots=True)
class PushToken:
    id: UUID
    user_id: UUID
    token: str
    platform: str
    organization_id: UUID | None = None
    app_version: str | None = None
    disabled: bool = False
    last_active_at: datetime | None = None
