"""Enrollment invitation schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from classroll.models.invitation import InvitationKind, InvitationState


class InvitationCreate(BaseModel):
    """Schema for creating an enrollment invitation."""

    kind: InvitationKind
    course_id: UUID | None = None
    student_id: UUID | None = None
    max_uses: int = Field(default=1, ge=1)
    expires_at: datetime | None = None
    extra: dict[str, Any] | None = None


class InvitationValidate(BaseModel):
    """Schema for validating an invitation code."""

    code: str = Field(min_length=1, max_length=16)


class CourseSummary(BaseModel):
    """Short description of a course."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    grade: str = ""
    section: str = ""


class StudentSummary(BaseModel):
    """Short description of a student account."""

    id: UUID
    first_name: str
    last_name: str
    student_code: str | None = None
    course: CourseSummary | None = None


class InvitationResponse(BaseModel):
    """Admin view of an invitation."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    school_id: UUID
    code: str
    kind: InvitationKind
    state: InvitationState
    course_id: UUID | None = None
    student_id: UUID | None = None
    creator_id: UUID
    max_uses: int
    uses_so_far: int
    expires_at: datetime | None = None
    consumed_at: datetime | None = None
    extra: dict[str, Any] | None = None
    created_at: datetime


class InvitationView(BaseModel):
    """Read projection returned when a guardian validates a code.

    Never includes the usage log.
    """

    id: UUID
    code: str
    kind: InvitationKind
    state: InvitationState
    school_id: UUID
    school_name: str | None = None
    expires_at: datetime | None = None
    max_uses: int
    uses_so_far: int
    course: CourseSummary | None = None
    available_courses: list[CourseSummary] = []
    student: StudentSummary | None = None
    extra: dict[str, Any] | None = None


class UsageResult(BaseModel):
    """Outcome of consuming one use of an invitation."""

    invitation_id: UUID
    uses_so_far: int
    max_uses: int
    state: InvitationState
    consumed_at: datetime | None = None

    @property
    def exhausted(self) -> bool:
        """Check if this use consumed the invitation."""
        return self.state == InvitationState.CONSUMED
