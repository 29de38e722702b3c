"""Course roster service."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from classroll.models import Course, CourseStudent

logger = logging.getLogger(__name__)


class RosterService:
    """Service for course lookups and roster membership."""

    async def get_course(
        self,
        db: AsyncSession,
        course_id: uuid.UUID,
    ) -> Course | None:
        """Get a course by ID."""
        return await db.get(Course, course_id)

    async def get_courses(
        self,
        db: AsyncSession,
        course_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, Course]:
        """Get several courses at once, keyed by ID."""
        if not course_ids:
            return {}
        result = await db.execute(select(Course).where(Course.id.in_(set(course_ids))))
        return {course.id: course for course in result.scalars().all()}

    async def get_school_courses(
        self,
        db: AsyncSession,
        school_id: uuid.UUID,
    ) -> list[Course]:
        """Get all courses of a school ordered by grade and section."""
        result = await db.execute(
            select(Course)
            .where(Course.school_id == school_id)
            .order_by(Course.grade, Course.section, Course.name)
        )
        return list(result.scalars().all())

    async def get_student_course(
        self,
        db: AsyncSession,
        school_id: uuid.UUID,
        student_id: uuid.UUID,
    ) -> Course | None:
        """Get the first course of the school whose roster includes the student."""
        result = await db.execute(
            select(Course)
            .join(CourseStudent, CourseStudent.course_id == Course.id)
            .where(Course.school_id == school_id, CourseStudent.student_id == student_id)
            .order_by(Course.grade, Course.section)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def is_member(
        self,
        db: AsyncSession,
        course_id: uuid.UUID,
        student_id: uuid.UUID,
    ) -> bool:
        """Check if a student is on a course roster."""
        result = await db.execute(
            select(CourseStudent.id).where(
                CourseStudent.course_id == course_id,
                CourseStudent.student_id == student_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def add_student(
        self,
        db: AsyncSession,
        course_id: uuid.UUID,
        student_id: uuid.UUID,
    ) -> bool:
        """Add a student to a course roster (set semantics).

        Returns:
            True if a membership was created, False if it already existed
        """
        if await self.is_member(db, course_id, student_id):
            logger.debug(f"Student {student_id} already on roster of course {course_id}")
            return False

        db.add(CourseStudent(course_id=course_id, student_id=student_id))
        await db.flush()

        logger.info(f"Added student {student_id} to course {course_id}")
        return True

    async def get_roster(
        self,
        db: AsyncSession,
        course_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        """Get the student IDs on a course roster."""
        result = await db.execute(
            select(CourseStudent.student_id).where(CourseStudent.course_id == course_id)
        )
        return list(result.scalars().all())


# Singleton instance
_roster_service: RosterService | None = None


def get_roster_service() -> RosterService:
    """Get the roster service singleton."""
    global _roster_service
    if _roster_service is None:
        _roster_service = RosterService()
    return _roster_service
