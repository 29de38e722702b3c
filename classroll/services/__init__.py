"""Service layer for business logic."""

from classroll.services.account_service import AccountService, get_account_service
from classroll.services.email_service import EmailService, get_email_service
from classroll.services.invitation_service import InvitationService, get_invitation_service
from classroll.services.notification_service import NotificationService, get_notification_service
from classroll.services.onboarding_service import OnboardingService, get_onboarding_service
from classroll.services.registration_service import RegistrationService, get_registration_service
from classroll.services.roster_service import RosterService, get_roster_service

__all__ = [
    "AccountService",
    "get_account_service",
    "EmailService",
    "get_email_service",
    "InvitationService",
    "get_invitation_service",
    "NotificationService",
    "get_notification_service",
    "OnboardingService",
    "get_onboarding_service",
    "RegistrationService",
    "get_registration_service",
    "RosterService",
    "get_roster_service",
]
