"""Pydantic schemas for request/response validation."""

from classroll.schemas.common import APIResponse, PaginationMeta
from classroll.schemas.invitation import (
    CourseSummary,
    InvitationCreate,
    InvitationResponse,
    InvitationValidate,
    InvitationView,
    StudentSummary,
    UsageResult,
)
from classroll.schemas.registration import (
    ApprovalResult,
    GuardianIn,
    RegistrationResponse,
    RegistrationStudentResponse,
    RegistrationSubmit,
    RejectRequest,
    StudentIn,
)

__all__ = [
    # Common
    "APIResponse",
    "PaginationMeta",
    # Invitation
    "CourseSummary",
    "InvitationCreate",
    "InvitationResponse",
    "InvitationValidate",
    "InvitationView",
    "StudentSummary",
    "UsageResult",
    # Registration
    "ApprovalResult",
    "GuardianIn",
    "RegistrationResponse",
    "RegistrationStudentResponse",
    "RegistrationSubmit",
    "RejectRequest",
    "StudentIn",
]
