"""Registration request submitted by a prospective guardian."""

import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from classroll.models.base import BaseModel, SchoolScopedModel
from classroll.utils.datetime import utc_now


class RegistrationState(str, Enum):
    """State of a registration request. APPROVED and REJECTED are terminal."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class RegistrationRequest(SchoolScopedModel):
    """A guardian's application to create accounts for themselves and their students."""

    __tablename__ = "registration_requests"
    __table_args__ = (
        Index("idx_registration_requests_school_state", "school_id", "state"),
        # At most one pending request per guardian email and school
        Index(
            "uq_registration_requests_pending_email",
            "guardian_email",
            "school_id",
            unique=True,
            postgresql_where=text("state = 'PENDING'"),
            sqlite_where=text("state = 'PENDING'"),
        ),
    )

    invitation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invitations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    guardian_first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    guardian_last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    guardian_email: Mapped[str] = mapped_column(String(255), nullable=False)
    guardian_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RegistrationState.PENDING.value,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_account_ids: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=list,
    )

    # Relationships
    students = relationship(
        "RegistrationStudent",
        back_populates="request",
        order_by="RegistrationStudent.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    reviewer = relationship("User", foreign_keys=[reviewer_id], lazy="selectin")

    @property
    def guardian_full_name(self) -> str:
        """Get the guardian's full name."""
        return f"{self.guardian_first_name} {self.guardian_last_name}"

    @property
    def is_pending(self) -> bool:
        """Check if the request is still awaiting review."""
        return self.state == RegistrationState.PENDING.value


class RegistrationStudent(BaseModel):
    """One student entry of a registration request, kept in submission order."""

    __tablename__ = "registration_request_students"

    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("registration_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    course_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    student_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_existing_student: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    existing_student_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Relationships
    request = relationship("RegistrationRequest", back_populates="students", lazy="raise")

    @property
    def full_name(self) -> str:
        """Get the student's full name."""
        return f"{self.first_name} {self.last_name}"
