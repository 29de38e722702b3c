"""Administrator inbox entries."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from classroll.models.base import SchoolScopedModel
from classroll.utils.datetime import utc_now


class NotificationType(str, Enum):
    """Events that put an entry in an inbox."""

    REGISTRATION_SUBMITTED = "REGISTRATION_SUBMITTED"


class Notification(SchoolScopedModel):
    """One inbox entry, optionally pointing at the record it is about."""

    __tablename__ = "notifications"
    __table_args__ = (
        # Unread badge lookups
        Index(
            "idx_notifications_user_unread",
            "user_id",
            "is_read",
            postgresql_where=text("is_read = false"),
            sqlite_where=text("is_read = 0"),
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    notification_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # e.g. ("registration", request id)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def mark_read(self) -> None:
        self.is_read = True
        self.read_at = utc_now()
