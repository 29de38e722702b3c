"""Onboarding workflow: registration submission, review and approval.

Approval turns a PENDING registration request into live accounts in a single
unit of work: the guardian account, one account per new student, roster
memberships, guardian/student associations, the invitation use and the
request's own state change either all commit or all roll back. Emails and
in-app notifications are sent only after the commit and never undo it.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from classroll.config import get_settings
from classroll.database import run_in_transaction
from classroll.exceptions import (
    ConflictException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
    classify_exception,
)
from classroll.models import Course, RegistrationRequest, School
from classroll.models.notification import NotificationType
from classroll.models.registration import RegistrationState
from classroll.models.user import Role
from classroll.schemas.invitation import InvitationView
from classroll.schemas.registration import ApprovalResult, GuardianIn, StudentIn
from classroll.services.account_service import AccountService, get_account_service
from classroll.services.email_service import (
    EmailService,
    StudentCredentialLine,
    get_email_service,
)
from classroll.services.invitation_service import InvitationService, get_invitation_service
from classroll.services.notification_service import (
    NotificationService,
    get_notification_service,
)
from classroll.services.registration_service import (
    RegistrationService,
    get_registration_service,
)
from classroll.services.roster_service import RosterService, get_roster_service
from classroll.utils.codes import generate_account_credentials
from classroll.utils.security import parse_uuid

logger = logging.getLogger(__name__)
settings = get_settings()

T = TypeVar("T")


@dataclass
class _ApprovalMail:
    """Everything the approval email needs, collected inside the transaction."""

    to: str
    guardian_name: str
    school_name: str
    guardian_email: str
    guardian_password: str
    students: list[StudentCredentialLine] = field(default_factory=list)


def _course_label(course: Course | None) -> str:
    if course is None:
        return ""
    return course.name


class OnboardingService:
    """Orchestrates the invitation and registration request stores.

    Collaborators default to the application singletons and can be replaced,
    e.g. with recording doubles in tests.
    """

    def __init__(
        self,
        invitations: InvitationService | None = None,
        registrations: RegistrationService | None = None,
        accounts: AccountService | None = None,
        roster: RosterService | None = None,
        mailer: EmailService | None = None,
        notifier: NotificationService | None = None,
    ):
        self.invitations = invitations or get_invitation_service()
        self.registrations = registrations or get_registration_service()
        self.accounts = accounts or get_account_service()
        self.roster = roster or get_roster_service()
        self.mailer = mailer or get_email_service()
        self.notifier = notifier or get_notification_service()

    async def _run(
        self,
        db: AsyncSession,
        work: Callable[[AsyncSession], Awaitable[T]],
        action: str,
        timeout: float | None = None,
    ) -> T:
        """Run a unit of work and map its failure onto the error taxonomy."""
        try:
            return await run_in_transaction(db, work, timeout)
        except Exception as exc:
            error = classify_exception(exc, action)
            if error is exc:
                raise
            logger.error(f"{action} failed: {type(exc).__name__}: {exc}")
            raise error from exc

    # === Submission ===

    def _check_submission(self, guardian: GuardianIn, students: list[StudentIn]) -> None:
        """Reject malformed submissions before touching the database."""
        if not students:
            raise ValidationException([
                {"field": "students", "message": "At least one student is required"}
            ])

        errors = []
        seen = {str(guardian.email).strip().lower(): "guardian.email"}
        for index, student in enumerate(students):
            if student.is_existing_student and student.existing_student_id is None:
                errors.append({
                    "field": f"students[{index}].existing_student_id",
                    "message": "existing_student_id is required for an existing student",
                })
            if student.email:
                email = str(student.email).strip().lower()
                if email in seen:
                    errors.append({
                        "field": f"students[{index}].email",
                        "message": f"{email} is used more than once in this request ({seen[email]})",
                    })
                else:
                    seen[email] = f"students[{index}].email"
        if errors:
            raise ValidationException(errors)

    async def submit(
        self,
        db: AsyncSession,
        invitation_code: str,
        guardian: GuardianIn,
        students: list[StudentIn],
    ) -> RegistrationRequest:
        """Submit a registration request against an invitation code.

        Raises:
            ValidationException: Empty or malformed student list, course of another school
            NotFoundException: Unknown invitation code or course
            InvitationUnavailableException: Invitation expired, revoked or exhausted
            ConflictException: Email already registered or request already pending
        """
        self._check_submission(guardian, students)

        view = await self.invitations.validate(db, invitation_code)
        school_id = view.school_id
        guardian_email = str(guardian.email).strip().lower()

        async def work(session: AsyncSession) -> RegistrationRequest:
            courses = await self.roster.get_courses(session, [s.course_id for s in students])
            for index, student in enumerate(students):
                course = courses.get(student.course_id)
                if course is None:
                    raise NotFoundException("Course")
                if course.school_id != school_id:
                    raise ValidationException([{
                        "field": f"students[{index}].course_id",
                        "message": "The course does not belong to this school",
                    }])

            candidate_emails = [guardian_email] + [
                str(s.email) for s in students if s.email and not s.is_existing_student
            ]
            taken = await self.accounts.find_existing_emails(session, candidate_emails)
            if taken:
                raise ConflictException(f"An account already exists for {', '.join(taken)}")

            pending = await self.registrations.find_pending_by_email(session, guardian_email, school_id)
            if pending:
                raise ConflictException(
                    "A registration request for this email is already awaiting review"
                )

            return await self.registrations.create(
                session, school_id, view.id, guardian, students
            )

        request = await self._run(db, work, "registration request")

        logger.info(
            f"Registration request {request.id} submitted by {guardian_email} "
            f"with {len(students)} student(s) using {view.code}"
        )

        await self._notify_submission(db, request, view)
        return request

    async def _notify_submission(
        self,
        db: AsyncSession,
        request: RegistrationRequest,
        view: InvitationView,
    ) -> None:
        """Tell administrators and the guardian about a new request. Never raises."""
        title = "New registration request"
        body = (
            f"{request.guardian_full_name} ({request.guardian_email}) requested access "
            f"for {len(request.students)} student(s) with invitation {view.code}."
        )

        try:
            admins = await self.accounts.get_school_admins(db, request.school_id)

            async def work(session: AsyncSession) -> None:
                await self.notifier.notify_users(
                    session,
                    school_id=request.school_id,
                    user_ids=[admin.id for admin in admins],
                    title=title,
                    body=body,
                    notification_type=NotificationType.REGISTRATION_SUBMITTED,
                    reference_type="registration",
                    reference_id=request.id,
                )

            if admins:
                await run_in_transaction(db, work)
        except Exception:
            logger.exception(f"Failed to create admin notifications for request {request.id}")

        try:
            await self.mailer.notify_admins(
                db,
                request.school_id,
                notification_type=NotificationType.REGISTRATION_SUBMITTED.value,
                title=title,
                body=body,
                action_url=f"{settings.app_base_url.rstrip('/')}/registrations/{request.id}",
            )
        except Exception:
            logger.exception(f"Failed to email administrators about request {request.id}")

        try:
            await self.mailer.send_registration_received(
                to=request.guardian_email,
                guardian_name=request.guardian_full_name,
                school_name=view.school_name or "",
                student_names=[s.full_name for s in request.students],
            )
        except Exception:
            logger.exception(f"Failed to acknowledge request {request.id} to the guardian")

    # === Review ===

    async def approve(
        self,
        db: AsyncSession,
        request_id: UUID,
        reviewer_id: UUID,
    ) -> ApprovalResult:
        """Approve a PENDING request, creating every account it asks for.

        Raises:
            NotFoundException: Unknown request, or an existing student that is gone
            InvalidStateException: Request already reviewed, or invitation no longer usable
            ConflictException: A generated or submitted email/code is already taken
            InternalException: Anything else; nothing was written
        """

        async def work(session: AsyncSession) -> tuple[ApprovalResult, _ApprovalMail]:
            request = await self.registrations.get(session, request_id, for_update=True)
            if not request.is_pending:
                raise InvalidStateException(
                    f"This request has already been processed (state: {request.state})",
                    reason=request.state.lower(),
                )

            school = await session.get(School, request.school_id)

            guardian_credential = generate_account_credentials(
                request.guardian_first_name,
                request.guardian_last_name,
                existing_email=request.guardian_email,
                email_domain=settings.generated_email_domain,
                password_length=settings.generated_password_length,
            )
            guardian = await self.accounts.create_account(
                session,
                school_id=request.school_id,
                role=Role.GUARDIAN,
                email=guardian_credential.email,
                password=guardian_credential.password,
                first_name=request.guardian_first_name,
                last_name=request.guardian_last_name,
                phone=request.guardian_phone,
            )

            mail = _ApprovalMail(
                to=request.guardian_email,
                guardian_name=request.guardian_full_name,
                school_name=school.name if school else "",
                guardian_email=guardian_credential.email,
                guardian_password=guardian_credential.password,
            )

            courses = await self.roster.get_courses(session, [s.course_id for s in request.students])
            created_ids: list[UUID] = []
            existing_ids: list[UUID] = []
            associated_ids: list[UUID] = []

            for entry in request.students:
                course = courses.get(entry.course_id)
                if course is None:
                    logger.warning(
                        f"Course {entry.course_id} of request {request.id} no longer exists; "
                        f"approving {entry.full_name} without course labels"
                    )

                if entry.is_existing_student:
                    student = await self.accounts.get_active_student(
                        session, request.school_id, entry.existing_student_id
                    )
                    if not student:
                        raise NotFoundException("Student")
                    existing_ids.append(student.id)
                    mail.students.append(
                        StudentCredentialLine(
                            name=student.full_name,
                            course=_course_label(course),
                            email=student.email,
                            code=student.student_code,
                            existing=True,
                        )
                    )
                else:
                    credential = generate_account_credentials(
                        entry.first_name,
                        entry.last_name,
                        existing_email=entry.email,
                        existing_code=entry.student_code,
                        email_domain=settings.generated_email_domain,
                        password_length=settings.generated_password_length,
                    )
                    student = await self.accounts.create_account(
                        session,
                        school_id=request.school_id,
                        role=Role.STUDENT,
                        email=credential.email,
                        password=credential.password,
                        first_name=entry.first_name,
                        last_name=entry.last_name,
                        student_code=credential.code,
                        birth_date=entry.birth_date,
                        grade=course.grade if course else "",
                        section=course.section if course else "",
                    )
                    created_ids.append(student.id)
                    mail.students.append(
                        StudentCredentialLine(
                            name=student.full_name,
                            course=_course_label(course),
                            email=credential.email,
                            code=credential.code,
                            password=credential.password,
                            email_generated=credential.email_generated,
                        )
                    )

                if course is not None:
                    await self.roster.add_student(session, course.id, student.id)
                else:
                    logger.warning(f"Skipping roster update for student {student.id}: course missing")

                associated_ids.append(student.id)

            await self.accounts.associate_students(session, guardian.id, associated_ids)
            await self.invitations.consume(session, request.invitation_id, guardian.id, Role.GUARDIAN)

            account_ids = [guardian.id, *created_ids]
            await self.registrations.mark_approved(session, request, reviewer_id, account_ids)

            result = ApprovalResult(
                request_id=request.id,
                guardian_id=guardian.id,
                created_student_ids=created_ids,
                associated_existing_student_ids=existing_ids,
                created_account_ids=account_ids,
                total_students=len(associated_ids),
            )
            return result, mail

        result, mail = await self._run(
            db,
            work,
            "registration approval",
            timeout=settings.onboarding_transaction_timeout_seconds,
        )

        logger.info(
            f"Registration request {request_id} approved by {reviewer_id}: guardian {result.guardian_id}, "
            f"{len(result.created_student_ids)} new and "
            f"{len(result.associated_existing_student_ids)} existing student(s)"
        )

        email_sent = False
        try:
            message_id = await self.mailer.send_registration_approved(
                to=mail.to,
                guardian_name=mail.guardian_name,
                school_name=mail.school_name,
                guardian_email=mail.guardian_email,
                guardian_password=mail.guardian_password,
                students=mail.students,
            )
            email_sent = message_id is not None
        except Exception:
            logger.exception(f"Failed to send approval email for request {request_id}")

        if not email_sent:
            logger.warning(f"Approval email for request {request_id} was not sent")

        return result.model_copy(update={"email_sent": email_sent})

    async def reject(
        self,
        db: AsyncSession,
        request_id: UUID,
        reviewer_id: UUID,
        reason: str,
    ) -> RegistrationRequest:
        """Reject a PENDING request with a mandatory reason.

        Raises:
            ValidationException: Blank reason
            NotFoundException: Unknown request
            InvalidStateException: Request already reviewed
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationException([
                {"field": "reason", "message": "A reason is required to reject a request"}
            ])

        async def work(session: AsyncSession) -> RegistrationRequest:
            request = await self.registrations.get(session, request_id, for_update=True)
            return await self.registrations.mark_rejected(session, request, reviewer_id, reason)

        request = await self._run(db, work, "registration rejection")

        logger.info(f"Registration request {request_id} rejected by {reviewer_id}")

        try:
            school = await db.get(School, request.school_id)
            await self.mailer.send_registration_rejected(
                to=request.guardian_email,
                guardian_name=request.guardian_full_name,
                school_name=school.name if school else "",
                reason=reason,
            )
        except Exception:
            logger.exception(f"Failed to send rejection email for request {request_id}")

        return request

    # === Listing ===

    def _school_filter(self, school_id: Any) -> UUID | None:
        """Parse the school filter; anything unparseable lists every school."""
        if isinstance(school_id, UUID):
            return school_id
        parsed = parse_uuid(school_id)
        if parsed is None:
            logger.warning(f"Invalid school id {school_id!r}, listing without school filter")
        return parsed

    async def list_pending(
        self,
        db: AsyncSession,
        school_id: Any,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[RegistrationRequest], int]:
        """List PENDING requests of a school, newest first."""
        return await self.registrations.list_pending(
            db, self._school_filter(school_id), page, page_size
        )

    async def list_history(
        self,
        db: AsyncSession,
        school_id: Any,
        state: RegistrationState | str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[RegistrationRequest], int]:
        """List requests of a school in any state (or only ``state``), newest first."""
        return await self.registrations.list_history(
            db, self._school_filter(school_id), state, page, page_size
        )

    async def get_request(
        self,
        db: AsyncSession,
        request_id: UUID,
        school_id: UUID | None = None,
    ) -> RegistrationRequest:
        """Get a request, optionally restricted to one school.

        Raises:
            NotFoundException: Unknown request or request of another school
        """
        request = await self.registrations.get(db, request_id)
        if school_id is not None and request.school_id != school_id:
            raise NotFoundException("Registration request")
        return request


# Singleton instance
_onboarding_service: OnboardingService | None = None


def get_onboarding_service() -> OnboardingService:
    """Get the onboarding service singleton."""
    global _onboarding_service
    if _onboarding_service is None:
        _onboarding_service = OnboardingService()
    return _onboarding_service
