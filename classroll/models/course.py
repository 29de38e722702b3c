"""Course model and roster membership."""

import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from classroll.models.base import BaseModel, SchoolScopedModel


class Course(SchoolScopedModel):
    """A course (grade + section) within a school."""

    __tablename__ = "courses"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    grade: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    section: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    # Relationships
    school = relationship("School", back_populates="courses", lazy="raise")
    roster = relationship(
        "CourseStudent",
        back_populates="course",
        cascade="all, delete-orphan",
        lazy="raise",
    )


class CourseStudent(BaseModel):
    """Membership of a student account in a course roster."""

    __tablename__ = "course_students"
    __table_args__ = (
        UniqueConstraint("course_id", "student_id", name="uq_course_students_pair"),
    )

    course_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    course = relationship("Course", back_populates="roster", lazy="raise")
