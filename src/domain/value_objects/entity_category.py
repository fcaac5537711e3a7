from __future__ import annotations

from enum import Enum


class EntityCategory(str, Enum):
    CHAT = "chat"
    ANNOUNCEMENT = "announcement"
    DOCUMENT = "document"
    BILL = "bill"
    PAYMENT = "payment"

    @classmethod
    def parse(cls, value: str | EntityCategory) -> EntityCategory:
        if isinstance(value, EntityCategory):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown entity category: {value!r}") from exc


ALL_CATEGORIES: tuple[EntityCategory, ...] = tuple(EntityCategory)
