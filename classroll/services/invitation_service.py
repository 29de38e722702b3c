"""Enrollment invitation service."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from classroll.config import get_settings
from classroll.database import run_in_transaction
from classroll.exceptions import (
    CodeGenerationError,
    InvalidStateException,
    InvitationUnavailableException,
    NotFoundException,
    ValidationException,
)
from classroll.models import Invitation, InvitationUsage, School, User
from classroll.models.invitation import InvitationKind, InvitationState
from classroll.models.user import Role
from classroll.schemas.invitation import (
    CourseSummary,
    InvitationView,
    StudentSummary,
    UsageResult,
)
from classroll.services.account_service import get_account_service
from classroll.services.roster_service import get_roster_service
from classroll.utils.codes import course_code_prefix, generate_invitation_code
from classroll.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)
settings = get_settings()


class InvitationService:
    """Service for managing enrollment invitations.

    State machine: ACTIVE -> CONSUMED | REVOKED | EXPIRED. All other states
    are terminal.
    """

    async def _generate_unique_code(
        self,
        db: AsyncSession,
        kind: InvitationKind,
        prefix: str | None = None,
    ) -> str:
        """Generate a code no other invitation uses, within a bounded number of attempts."""
        attempts = settings.invitation_code_max_attempts
        for _ in range(attempts):
            code = generate_invitation_code(kind, prefix=prefix)
            check = await db.execute(select(Invitation.id).where(Invitation.code == code))
            if check.scalar_one_or_none() is None:
                return code
            logger.debug(f"Invitation code collision on {code}, retrying")

        raise CodeGenerationError(attempts)

    async def create(
        self,
        db: AsyncSession,
        kind: InvitationKind | str,
        school_id: UUID,
        creator_id: UUID,
        course_id: UUID | None = None,
        student_id: UUID | None = None,
        max_uses: int = 1,
        expires_at: datetime | None = None,
        extra: dict | None = None,
    ) -> Invitation:
        """Create a new ACTIVE invitation.

        Raises:
            ValidationException: Missing or mismatched target, bad max_uses or expiry
            NotFoundException: Referenced course or student does not exist
            CodeGenerationError: No unique code could be generated
        """
        kind = InvitationKind(kind)

        errors = []
        if not 1 <= max_uses <= settings.invitation_max_uses_limit:
            errors.append({
                "field": "max_uses",
                "message": f"max_uses must be between 1 and {settings.invitation_max_uses_limit}",
            })
        if expires_at is not None and ensure_utc(expires_at) <= utc_now():
            errors.append({"field": "expires_at", "message": "expires_at must be in the future"})
        if kind == InvitationKind.COURSE and course_id is None:
            errors.append({"field": "course_id", "message": "course_id is required for COURSE invitations"})
        if kind == InvitationKind.SPECIFIC_STUDENT and student_id is None:
            errors.append({
                "field": "student_id",
                "message": "student_id is required for SPECIFIC_STUDENT invitations",
            })
        if errors:
            raise ValidationException(errors)

        async def work(session: AsyncSession) -> Invitation:
            prefix = None
            if course_id is not None:
                course = await get_roster_service().get_course(session, course_id)
                if not course:
                    raise NotFoundException("Course")
                if course.school_id != school_id:
                    raise ValidationException([{
                        "field": "course_id",
                        "message": "The course does not belong to this school",
                    }])
                if kind == InvitationKind.COURSE:
                    prefix = course_code_prefix(course.name)

            if student_id is not None and kind == InvitationKind.SPECIFIC_STUDENT:
                student = await session.get(User, student_id)
                if not student or student.role != Role.STUDENT.value:
                    raise NotFoundException("Student")
                if student.school_id != school_id:
                    raise ValidationException([{
                        "field": "student_id",
                        "message": "The student does not belong to this school",
                    }])

            code = await self._generate_unique_code(session, kind, prefix)

            invitation = Invitation(
                school_id=school_id,
                code=code,
                kind=kind.value,
                course_id=course_id,
                student_id=student_id,
                state=InvitationState.ACTIVE.value,
                expires_at=ensure_utc(expires_at) if expires_at else None,
                creator_id=creator_id,
                max_uses=max_uses,
                uses_so_far=0,
                extra=extra,
            )
            session.add(invitation)
            await session.flush()
            return invitation

        invitation = await run_in_transaction(db, work)

        logger.info(f"Created {kind.value} invitation {invitation.id} with code {invitation.code}")
        return invitation

    async def get(
        self,
        db: AsyncSession,
        invitation_id: UUID,
        school_id: UUID | None = None,
    ) -> Invitation:
        """Get an invitation by ID.

        Raises:
            NotFoundException: If it doesn't exist or belongs to another school
        """
        invitation = await db.get(Invitation, invitation_id)
        if not invitation or (school_id is not None and invitation.school_id != school_id):
            raise NotFoundException("Invitation")
        return invitation

    async def get_by_code(
        self,
        db: AsyncSession,
        code: str,
    ) -> Invitation | None:
        """Get an invitation by code (no school context required)."""
        result = await db.execute(
            select(Invitation)
            .where(Invitation.code == code.strip())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def validate(
        self,
        db: AsyncSession,
        code: str,
    ) -> InvitationView:
        """Check that a code can be used to register and describe what it grants.

        An ACTIVE invitation whose expiry has passed is flipped to EXPIRED and
        committed before the error is reported.

        Raises:
            NotFoundException: Unknown code
            InvitationUnavailableException: Expired, revoked or exhausted
        """
        invitation = await self.get_by_code(db, code)
        if not invitation:
            raise NotFoundException("Invitation code")

        reason = invitation.unavailable_reason()
        if reason:
            if reason == "expired" and invitation.state == InvitationState.ACTIVE.value:
                await self._expire(db, invitation)
            raise InvitationUnavailableException(reason)

        return await self._build_view(db, invitation)

    async def _expire(self, db: AsyncSession, invitation: Invitation) -> None:
        """Persist the lazy ACTIVE -> EXPIRED transition."""

        async def work(session: AsyncSession) -> int:
            result = await session.execute(
                update(Invitation)
                .where(
                    Invitation.id == invitation.id,
                    Invitation.state == InvitationState.ACTIVE.value,
                )
                .values(state=InvitationState.EXPIRED.value, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        flipped = await run_in_transaction(db, work)
        await db.refresh(invitation)

        if flipped:
            logger.info(f"Invitation {invitation.id} ({invitation.code}) expired")

    async def _build_view(self, db: AsyncSession, invitation: Invitation) -> InvitationView:
        """Build the public projection of a usable invitation."""
        roster = get_roster_service()
        school = await db.get(School, invitation.school_id)

        course = None
        if invitation.course_id:
            found = await roster.get_course(db, invitation.course_id)
            if found:
                course = CourseSummary.model_validate(found)

        available_courses = []
        if invitation.kind == InvitationKind.COURSE.value:
            available_courses = [
                CourseSummary.model_validate(c)
                for c in await roster.get_school_courses(db, invitation.school_id)
            ]

        student = None
        if invitation.kind == InvitationKind.SPECIFIC_STUDENT.value and invitation.student_id:
            found = await get_account_service().get_user(db, invitation.student_id)
            if found:
                student_course = await roster.get_student_course(db, invitation.school_id, found.id)
                student = StudentSummary(
                    id=found.id,
                    first_name=found.first_name,
                    last_name=found.last_name,
                    student_code=found.student_code,
                    course=CourseSummary.model_validate(student_course) if student_course else None,
                )

        return InvitationView(
            id=invitation.id,
            code=invitation.code,
            kind=invitation.kind,
            state=invitation.state,
            school_id=invitation.school_id,
            school_name=school.name if school else None,
            expires_at=invitation.expires_at,
            max_uses=invitation.max_uses,
            uses_so_far=invitation.uses_so_far,
            course=course,
            available_courses=available_courses,
            student=student,
            extra=invitation.extra,
        )

    async def consume(
        self,
        db: AsyncSession,
        invitation_id: UUID,
        account_id: UUID,
        account_role: Role | str,
    ) -> UsageResult:
        """Record one use of an invitation.

        The counter is incremented by a single conditional UPDATE, so two
        concurrent consumers can never push ``uses_so_far`` past ``max_uses``.
        Only flushes; must run inside the caller's unit of work.

        Raises:
            NotFoundException: If the invitation doesn't exist
            InvalidStateException: If it is not ACTIVE, exhausted or past expiry
        """
        now = utc_now()
        role = account_role.value if isinstance(account_role, Role) else account_role
        reaches_max = Invitation.uses_so_far + 1 >= Invitation.max_uses

        result = await db.execute(
            update(Invitation)
            .where(
                and_(
                    Invitation.id == invitation_id,
                    Invitation.state == InvitationState.ACTIVE.value,
                    Invitation.uses_so_far < Invitation.max_uses,
                    or_(Invitation.expires_at.is_(None), Invitation.expires_at > now),
                )
            )
            .values(
                uses_so_far=Invitation.uses_so_far + 1,
                state=case(
                    (reaches_max, InvitationState.CONSUMED.value),
                    else_=Invitation.state,
                ),
                consumed_at=case(
                    (reaches_max, now),
                    else_=Invitation.consumed_at,
                ),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            current = await db.get(Invitation, invitation_id, populate_existing=True)
            if not current:
                raise NotFoundException("Invitation")
            reason = current.unavailable_reason(now) or "exhausted"
            raise InvalidStateException(
                f"Invitation {current.code} can no longer be used ({reason})",
                reason=reason,
            )

        db.add(
            InvitationUsage(
                invitation_id=invitation_id,
                account_id=account_id,
                account_role=role,
                used_at=now,
            )
        )
        await db.flush()

        invitation = await db.get(Invitation, invitation_id, populate_existing=True)
        logger.info(
            f"Invitation {invitation.id} used by {role} {account_id} "
            f"({invitation.uses_so_far}/{invitation.max_uses}, state {invitation.state})"
        )

        return UsageResult(
            invitation_id=invitation.id,
            uses_so_far=invitation.uses_so_far,
            max_uses=invitation.max_uses,
            state=invitation.state,
            consumed_at=ensure_utc(invitation.consumed_at) if invitation.consumed_at else None,
        )

    async def revoke(
        self,
        db: AsyncSession,
        invitation_id: UUID,
        school_id: UUID | None = None,
    ) -> Invitation:
        """Revoke an ACTIVE invitation.

        Raises:
            NotFoundException: If the invitation doesn't exist
            InvalidStateException: If it is not ACTIVE (including already revoked)
        """

        async def work(session: AsyncSession) -> Invitation:
            invitation = await self.get(session, invitation_id, school_id)
            if invitation.state != InvitationState.ACTIVE.value:
                raise InvalidStateException(
                    f"Invitation is no longer active. Current state: {invitation.state}",
                    reason=invitation.unavailable_reason(),
                )
            invitation.state = InvitationState.REVOKED.value
            await session.flush()
            return invitation

        invitation = await run_in_transaction(db, work)

        logger.info(f"Invitation {invitation_id} revoked")
        return invitation

    async def list_for_school(
        self,
        db: AsyncSession,
        school_id: UUID,
        state: InvitationState | str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Invitation], int]:
        """List a school's invitations, newest first."""
        query = select(Invitation).where(Invitation.school_id == school_id)

        if state:
            query = query.where(Invitation.state == InvitationState(state).value)

        # Count total
        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar() or 0

        # Apply pagination and ordering
        query = query.order_by(Invitation.created_at.desc(), Invitation.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)

        result = await db.execute(query)
        invitations = list(result.scalars().all())

        return invitations, total

    async def list_for_course(
        self,
        db: AsyncSession,
        course_id: UUID,
        state: InvitationState | str | None = None,
    ) -> list[Invitation]:
        """List all invitations for a course, newest first."""
        query = select(Invitation).where(Invitation.course_id == course_id)

        if state:
            query = query.where(Invitation.state == InvitationState(state).value)

        result = await db.execute(query.order_by(Invitation.created_at.desc(), Invitation.id.desc()))
        return list(result.scalars().all())


# Singleton instance
_invitation_service: InvitationService | None = None


def get_invitation_service() -> InvitationService:
    """Get the invitation service singleton."""
    global _invitation_service
    if _invitation_service is None:
        _invitation_service = InvitationService()
    return _invitation_service
