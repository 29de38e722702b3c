"""User account model with role-based access control."""

import uuid
from datetime import date
from enum import Enum

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from classroll.models.base import BaseModel, SchoolScopedModel


class Role(str, Enum):
    """Account roles."""

    SCHOOL_ADMIN = "SCHOOL_ADMIN"  # Reviews registration requests
    GUARDIAN = "GUARDIAN"  # Read-only access to associated students
    STUDENT = "STUDENT"


class User(SchoolScopedModel):
    """User account belonging to a school."""

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_school_role", "school_id", "role"),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Student-only academic info
    student_code: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    grade: Mapped[str | None] = mapped_column(String(50), nullable=True)
    section: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Relationships
    school = relationship("School", back_populates="users", lazy="selectin")
    guardian_students = relationship(
        "GuardianStudent",
        foreign_keys="GuardianStudent.guardian_id",
        back_populates="guardian",
        order_by="GuardianStudent.position",
        lazy="raise",
    )

    @property
    def full_name(self) -> str:
        """Get the user's full name."""
        return f"{self.first_name} {self.last_name}"

    @property
    def is_guardian(self) -> bool:
        """Check if user is a guardian."""
        return self.role == Role.GUARDIAN.value

    @property
    def is_student(self) -> bool:
        """Check if user is a student."""
        return self.role == Role.STUDENT.value

    def has_role(self, *roles: Role | str) -> bool:
        """Check if user has any of the given roles."""
        role_values = [r.value if isinstance(r, Role) else r for r in roles]
        return self.role in role_values


class GuardianStudent(BaseModel):
    """Association between a guardian account and a student account."""

    __tablename__ = "guardian_students"
    __table_args__ = (
        UniqueConstraint("guardian_id", "student_id", name="uq_guardian_students_pair"),
    )

    guardian_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    guardian = relationship(
        "User",
        foreign_keys=[guardian_id],
        back_populates="guardian_students",
        lazy="raise",
    )
    student = relationship("User", foreign_keys=[student_id], lazy="selectin")
