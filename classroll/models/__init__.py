"""SQLAlchemy models for ClassRoll."""

from classroll.models.base import Base, BaseModel, SchoolScopedModel, TimestampMixin
from classroll.models.school import School
from classroll.models.user import User, Role, GuardianStudent
from classroll.models.course import Course, CourseStudent
from classroll.models.invitation import (
    Invitation,
    InvitationKind,
    InvitationState,
    InvitationUsage,
)
from classroll.models.registration import (
    RegistrationRequest,
    RegistrationState,
    RegistrationStudent,
)
from classroll.models.notification import Notification, NotificationType

__all__ = [
    # Base
    "Base",
    "BaseModel",
    "SchoolScopedModel",
    "TimestampMixin",
    # School
    "School",
    # User
    "User",
    "Role",
    "GuardianStudent",
    # Course
    "Course",
    "CourseStudent",
    # Invitation
    "Invitation",
    "InvitationKind",
    "InvitationState",
    "InvitationUsage",
    # Registration
    "RegistrationRequest",
    "RegistrationState",
    "RegistrationStudent",
    # Notification
    "Notification",
    "NotificationType",
]
