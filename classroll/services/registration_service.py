"""Registration request store.

State transitions here only flush. The onboarding service decides the
transaction boundaries.
"""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from classroll.exceptions import InvalidStateException, NotFoundException
from classroll.models import RegistrationRequest, RegistrationStudent
from classroll.models.registration import RegistrationState
from classroll.schemas.registration import GuardianIn, StudentIn
from classroll.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class RegistrationService:
    """Persistence and state transitions for registration requests."""

    async def create(
        self,
        db: AsyncSession,
        school_id: UUID,
        invitation_id: UUID,
        guardian: GuardianIn,
        students: list[StudentIn],
    ) -> RegistrationRequest:
        """Persist a new PENDING request with its students in submission order."""
        request = RegistrationRequest(
            school_id=school_id,
            invitation_id=invitation_id,
            guardian_first_name=guardian.first_name.strip(),
            guardian_last_name=guardian.last_name.strip(),
            guardian_email=str(guardian.email).strip().lower(),
            guardian_phone=guardian.phone,
            state=RegistrationState.PENDING.value,
            submitted_at=utc_now(),
            created_account_ids=[],
        )
        request.students = [
            RegistrationStudent(
                position=position,
                first_name=student.first_name.strip(),
                last_name=student.last_name.strip(),
                birth_date=student.birth_date,
                course_id=student.course_id,
                student_code=student.student_code,
                email=str(student.email).strip().lower() if student.email else None,
                is_existing_student=student.is_existing_student,
                existing_student_id=student.existing_student_id,
            )
            for position, student in enumerate(students)
        ]
        db.add(request)
        await db.flush()
        return request

    async def get(
        self,
        db: AsyncSession,
        request_id: UUID,
        for_update: bool = False,
    ) -> RegistrationRequest:
        """Get a request by ID.

        Raises:
            NotFoundException: If no request has this ID
        """
        query = select(RegistrationRequest).where(RegistrationRequest.id == request_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query.execution_options(populate_existing=True))
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundException("Registration request")
        return request

    async def find_pending_by_email(
        self,
        db: AsyncSession,
        guardian_email: str,
        school_id: UUID,
    ) -> RegistrationRequest | None:
        """Find the PENDING request of a guardian email at a school, if any."""
        result = await db.execute(
            select(RegistrationRequest).where(
                RegistrationRequest.guardian_email == guardian_email.strip().lower(),
                RegistrationRequest.school_id == school_id,
                RegistrationRequest.state == RegistrationState.PENDING.value,
            )
        )
        return result.scalar_one_or_none()

    def _ensure_pending(self, request: RegistrationRequest) -> None:
        if request.state != RegistrationState.PENDING.value:
            raise InvalidStateException(
                f"This request has already been processed (state: {request.state})",
                reason=request.state.lower(),
            )

    async def mark_approved(
        self,
        db: AsyncSession,
        request: RegistrationRequest,
        reviewer_id: UUID,
        created_account_ids: list[UUID],
    ) -> RegistrationRequest:
        """Transition PENDING -> APPROVED and record the created accounts."""
        self._ensure_pending(request)
        request.state = RegistrationState.APPROVED.value
        request.reviewer_id = reviewer_id
        request.reviewed_at = utc_now()
        request.created_account_ids = [str(account_id) for account_id in created_account_ids]
        await db.flush()
        return request

    async def mark_rejected(
        self,
        db: AsyncSession,
        request: RegistrationRequest,
        reviewer_id: UUID,
        reason: str,
    ) -> RegistrationRequest:
        """Transition PENDING -> REJECTED with the reviewer's reason."""
        self._ensure_pending(request)
        request.state = RegistrationState.REJECTED.value
        request.reviewer_id = reviewer_id
        request.reviewed_at = utc_now()
        request.comments = reason
        await db.flush()
        return request

    async def _paginate(
        self,
        db: AsyncSession,
        query,
        page: int,
        page_size: int,
    ) -> tuple[list[RegistrationRequest], int]:
        # Count total
        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar() or 0

        # Apply pagination and ordering
        query = query.order_by(
            RegistrationRequest.submitted_at.desc(),
            RegistrationRequest.id.desc(),
        )
        query = query.offset((page - 1) * page_size).limit(page_size)

        result = await db.execute(query)
        return list(result.scalars().all()), total

    async def list_pending(
        self,
        db: AsyncSession,
        school_id: UUID | None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[RegistrationRequest], int]:
        """List PENDING requests, newest first. ``school_id=None`` lists every school."""
        query = select(RegistrationRequest).where(
            RegistrationRequest.state == RegistrationState.PENDING.value
        )
        if school_id is not None:
            query = query.where(RegistrationRequest.school_id == school_id)
        return await self._paginate(db, query, page, page_size)

    async def list_history(
        self,
        db: AsyncSession,
        school_id: UUID | None,
        state: RegistrationState | str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[RegistrationRequest], int]:
        """List requests in any (or the given) state, newest first."""
        query = select(RegistrationRequest)
        if school_id is not None:
            query = query.where(RegistrationRequest.school_id == school_id)
        if state:
            query = query.where(RegistrationRequest.state == RegistrationState(state).value)
        return await self._paginate(db, query, page, page_size)


# Singleton instance
_registration_service: RegistrationService | None = None


def get_registration_service() -> RegistrationService:
    """Get the registration service singleton."""
    global _registration_service
    if _registration_service is None:
        _registration_service = RegistrationService()
    return _registration_service
