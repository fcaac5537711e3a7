from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.db.base import Base


class MessageORM(Base):
    """Chat messages and announcements share one table, split by ``is_announcement``."""

    __tablename__ = "messages"
    __table_args__ = (
        Index(
            "ix_messages_org_announcement_created",
            "organization_id",
            "is_announcement",
            "created_at",
        ),
        Index("ix_messages_receiver", "receiver_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    organization_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    user_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)  # sender
    receiver_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_announcement: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # urgent | high | normal
    priority: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
