"""Enrollment invitation model for onboarding guardians."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from classroll.models.base import BaseModel, SchoolScopedModel
from classroll.utils.datetime import ensure_utc, utc_now


class InvitationKind(str, Enum):
    """What an invitation grants access to."""

    COURSE = "COURSE"
    SPECIFIC_STUDENT = "SPECIFIC_STUDENT"
    PERSONAL = "PERSONAL"


class InvitationState(str, Enum):
    """Lifecycle state of an invitation. Everything but ACTIVE is terminal."""

    ACTIVE = "ACTIVE"
    CONSUMED = "CONSUMED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"


class Invitation(SchoolScopedModel):
    """Code-bearing invitation that allows a guardian to submit a registration request."""

    __tablename__ = "invitations"
    __table_args__ = (
        CheckConstraint("max_uses >= 1", name="ck_invitations_max_uses_positive"),
        CheckConstraint("uses_so_far >= 0", name="ck_invitations_uses_non_negative"),
        CheckConstraint("uses_so_far <= max_uses", name="ck_invitations_uses_within_max"),
        Index("idx_invitations_school_state", "school_id", "state"),
        Index("idx_invitations_course_state", "course_id", "state"),
    )

    code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    course_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("courses.id", ondelete="SET NULL"),
        nullable=True,
    )
    student_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InvitationState.ACTIVE.value,
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    uses_so_far: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    extra: Mapped[dict | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
    )

    # Relationships
    course = relationship("Course", lazy="selectin")
    usage_log = relationship(
        "InvitationUsage",
        back_populates="invitation",
        order_by="InvitationUsage.used_at",
        lazy="selectin",
    )

    def is_past_expiry(self, now: datetime | None = None) -> bool:
        """Check if the expiry timestamp has passed (regardless of stored state)."""
        if self.expires_at is None:
            return False
        return ensure_utc(self.expires_at) <= (now or utc_now())

    def unavailable_reason(self, now: datetime | None = None) -> str | None:
        """Why the invitation can't be used right now, or None if it can.

        An ACTIVE invitation past its expiry reports "expired" even before the
        stored state catches up.
        """
        if self.state == InvitationState.EXPIRED.value:
            return "expired"
        if self.state == InvitationState.REVOKED.value:
            return "revoked"
        if self.state == InvitationState.CONSUMED.value or self.uses_so_far >= self.max_uses:
            return "exhausted"
        if self.is_past_expiry(now):
            return "expired"
        return None


class InvitationUsage(BaseModel):
    """One recorded use of an invitation."""

    __tablename__ = "invitation_usages"

    invitation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invitations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    account_role: Mapped[str] = mapped_column(String(20), nullable=False)
    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    # Relationships
    invitation = relationship("Invitation", back_populates="usage_log", lazy="raise")
