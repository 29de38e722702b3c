"""Registration request schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from classroll.models.registration import RegistrationState


class GuardianIn(BaseModel):
    """Guardian details of a registration request."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str | None = Field(default=None, max_length=50)


class StudentIn(BaseModel):
    """One student entry of a registration request."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    birth_date: date | None = None
    course_id: UUID
    student_code: str | None = Field(default=None, max_length=50)
    email: EmailStr | None = None
    is_existing_student: bool = False
    existing_student_id: UUID | None = None


class RegistrationSubmit(BaseModel):
    """Schema for submitting a registration request with an invitation code."""

    invitation_code: str = Field(min_length=1, max_length=16)
    guardian: GuardianIn
    students: list[StudentIn] = Field(min_length=1)


class RejectRequest(BaseModel):
    """Schema for rejecting a registration request."""

    reason: str = Field(min_length=1, max_length=2000)


class RegistrationStudentResponse(BaseModel):
    """Student entry as stored on a request."""

    model_config = ConfigDict(from_attributes=True)

    position: int
    first_name: str
    last_name: str
    birth_date: date | None = None
    course_id: UUID
    student_code: str | None = None
    email: str | None = None
    is_existing_student: bool
    existing_student_id: UUID | None = None


class RegistrationResponse(BaseModel):
    """Schema for a registration request."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    school_id: UUID
    invitation_id: UUID
    guardian_first_name: str
    guardian_last_name: str
    guardian_email: str
    guardian_phone: str | None = None
    state: RegistrationState
    submitted_at: datetime
    reviewed_at: datetime | None = None
    reviewer_id: UUID | None = None
    comments: str | None = None
    created_account_ids: list[str] = []
    students: list[RegistrationStudentResponse] = []


class ApprovalResult(BaseModel):
    """Summary of a completed approval."""

    request_id: UUID
    guardian_id: UUID
    created_student_ids: list[UUID]
    associated_existing_student_ids: list[UUID]
    created_account_ids: list[UUID]
    total_students: int
    email_sent: bool = False
