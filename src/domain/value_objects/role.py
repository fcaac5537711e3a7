from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

    def can_publish(self) -> bool:
        return self in {Role.OWNER, Role.ADMIN}

    def can_dispatch(self) -> bool:
        return self in {Role.OWNER, Role.ADMIN}
