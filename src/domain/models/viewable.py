from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping
from uuid import UUID

from src.domain.value_objects.entity_category import EntityCategory


def _as_uuid(value: Any) -> UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


@dataclass(slots=True, frozen=True)
class EntityRef:
    category: EntityCategory
    entity_id: UUID


@dataclass(slots=True, frozen=True)
class ViewableEntity:
    """Any record subject to per-user read tracking.

    Only the fields the notification core needs are modelled; category-specific
    columns (amounts, priority, file names) stay in the producer's tables.
    """

    id: UUID
    category: EntityCategory
    organization_id: UUID | None
    actor_id: UUID | None
    viewed_by: frozenset[UUID] = field(default_factory=frozenset)
    receiver_id: UUID | None = None
    created_at: datetime | None = None

    @property
    def ref(self) -> EntityRef:
        return EntityRef(self.category, self.id)

    def is_unread(self, user_id: UUID) -> bool:
        return is_unread(self, user_id)

    @classmethod
    def from_record(cls, category: EntityCategory, record: Mapping[str, Any]) -> ViewableEntity:
        """Build an entity from a loosely shaped record.

        Missing ``viewed_by`` means nobody has seen it; a missing actor means there is
        nobody to exclude from the unread count.
        """
        raw_viewers: Iterable[Any] = record.get("viewed_by") or ()
        viewers = frozenset(v for v in (_as_uuid(x) for x in raw_viewers) if v is not None)
        entity_id = _as_uuid(record.get("id"))
        if entity_id is None:
            raise ValueError("Viewable record without a valid id")
        return cls(
            id=entity_id,
            category=category,
            organization_id=_as_uuid(record.get("organization_id")),
            actor_id=_as_uuid(record.get("actor_id")),
            viewed_by=viewers,
            receiver_id=_as_uuid(record.get("receiver_id")),
            created_at=record.get("created_at"),
        )


def is_unread(entity: ViewableEntity, user_id: UUID) -> bool:
    if entity.actor_id is not None and entity.actor_id == user_id:
        return False
    return user_id not in entity.viewed_by


def count_unread(entities: Iterable[ViewableEntity], user_id: UUID) -> int:
    return sum(1 for entity in entities if is_unread(entity, user_id))
