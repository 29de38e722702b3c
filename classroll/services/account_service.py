"""Account directory: creation and lookup of user accounts."""

import logging
import uuid
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from classroll.exceptions import ConflictException
from classroll.models import GuardianStudent, User
from classroll.models.user import Role
from classroll.utils.security import hash_password

logger = logging.getLogger(__name__)


class AccountService:
    """Service for managing user accounts.

    All writes only flush; callers own the transaction.
    """

    async def get_user(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> User | None:
        """Get a user by ID."""
        return await db.get(User, user_id)

    async def email_exists(self, db: AsyncSession, email: str) -> bool:
        """Check if any account already uses this email."""
        result = await db.execute(
            select(User.id).where(func.lower(User.email) == email.strip().lower()).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def find_existing_emails(self, db: AsyncSession, emails: list[str]) -> list[str]:
        """Return the subset of ``emails`` that already belong to an account."""
        normalized = {e.strip().lower() for e in emails if e}
        if not normalized:
            return []
        result = await db.execute(
            select(func.lower(User.email)).where(func.lower(User.email).in_(normalized))
        )
        return sorted(result.scalars().all())

    async def get_active_student(
        self,
        db: AsyncSession,
        school_id: uuid.UUID,
        student_id: uuid.UUID,
    ) -> User | None:
        """Get an active student account of the given school."""
        result = await db.execute(
            select(User).where(
                User.id == student_id,
                User.school_id == school_id,
                User.role == Role.STUDENT.value,
                User.is_active == True,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def get_school_admins(
        self,
        db: AsyncSession,
        school_id: uuid.UUID,
    ) -> list[User]:
        """Get all active administrators of a school."""
        result = await db.execute(
            select(User)
            .where(
                User.school_id == school_id,
                User.role == Role.SCHOOL_ADMIN.value,
                User.is_active == True,  # noqa: E712
            )
            .order_by(User.first_name, User.last_name)
        )
        return list(result.scalars().all())

    async def create_account(
        self,
        db: AsyncSession,
        school_id: uuid.UUID,
        role: Role,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: str | None = None,
        student_code: str | None = None,
        birth_date: date | None = None,
        grade: str | None = None,
        section: str | None = None,
    ) -> User:
        """Create an active account.

        Raises:
            ConflictException: If the email is already in use
        """
        email = email.strip().lower()
        if await self.email_exists(db, email):
            raise ConflictException(f"An account with email {email} already exists")

        user = User(
            school_id=school_id,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=phone,
            role=role.value,
            is_active=True,
            student_code=student_code,
            birth_date=birth_date,
            grade=grade,
            section=section,
        )
        db.add(user)
        await db.flush()

        logger.info(f"Created {role.value} account {user.id} for {email}")
        return user

    async def associate_students(
        self,
        db: AsyncSession,
        guardian_id: uuid.UUID,
        student_ids: list[uuid.UUID],
    ) -> list[GuardianStudent]:
        """Append students to a guardian's associated-students list.

        Students already associated are skipped; new links keep the given order.
        """
        result = await db.execute(
            select(GuardianStudent).where(GuardianStudent.guardian_id == guardian_id)
        )
        existing = list(result.scalars().all())
        linked = {link.student_id for link in existing}
        position = max((link.position for link in existing), default=-1) + 1

        created = []
        for student_id in student_ids:
            if student_id in linked:
                continue
            link = GuardianStudent(
                guardian_id=guardian_id,
                student_id=student_id,
                position=position,
            )
            db.add(link)
            created.append(link)
            linked.add(student_id)
            position += 1

        await db.flush()
        return created

    async def get_associated_student_ids(
        self,
        db: AsyncSession,
        guardian_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        """Get the guardian's associated student IDs in association order."""
        result = await db.execute(
            select(GuardianStudent.student_id)
            .where(GuardianStudent.guardian_id == guardian_id)
            .order_by(GuardianStudent.position)
        )
        return list(result.scalars().all())


# Singleton instance
_account_service: AccountService | None = None


def get_account_service() -> AccountService:
    """Get the account service singleton."""
    global _account_service
    if _account_service is None:
        _account_service = AccountService()
    return _account_service
