from __future__ import annotations

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from src.domain.value_objects.entity_category import EntityCategory


class EntityRefSchema(BaseModel):
    category: EntityCategory
    entity_id: UUID


class UnreadCountsResponse(BaseModel):
    organization_id: UUID
    counts: dict[str, int]
    statuses: dict[str, str]
    total: int


class MarkViewedRequest(BaseModel):
    items: list[EntityRefSchema] = Field(default_factory=list, max_length=500)


class MarkViewedResponse(BaseModel):
    chunks: int
    marked: int
    failed: int


class DispatchRequest(BaseModel):
    category: EntityCategory
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field("", max_length=1000)
    audience_user_ids: list[UUID] | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class DispatchResponse(BaseModel):
    recipients: int
    token_count: int
    success_count: int
    failure_count: int
    evicted_count: int
    foreground_count: int


class WebSocketCountsMessage(BaseModel):
    """Message sent through WebSocket whenever a group's counts change"""

    type: Literal["unread_counts"] = "unread_counts"
    organization_id: UUID
    counts: dict[str, int]
    statuses: dict[str, str]
    total: int
