"""In-app inbox for school administrators."""

import logging
import uuid
from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from classroll.exceptions import NotFoundException
from classroll.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:
    """Inbox entries for users, written alongside onboarding events.

    Writes only flush; the caller commits.
    """

    async def notify_users(
        self,
        db: AsyncSession,
        school_id: uuid.UUID,
        user_ids: Iterable[uuid.UUID],
        title: str,
        body: str,
        notification_type: NotificationType | str,
        reference_type: str | None = None,
        reference_id: uuid.UUID | None = None,
    ) -> list[Notification]:
        """Create one inbox entry per recipient. Repeated recipients get a single entry."""
        notification_type = NotificationType(notification_type).value
        recipients = list(dict.fromkeys(user_ids))

        notifications = [
            Notification(
                school_id=school_id,
                user_id=user_id,
                title=title,
                body=body,
                notification_type=notification_type,
                reference_type=reference_type,
                reference_id=reference_id,
            )
            for user_id in recipients
        ]
        db.add_all(notifications)
        await db.flush()

        logger.info(f"Queued {len(notifications)} {notification_type} notification(s) for school {school_id}")
        return notifications

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        unread_only: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Notification], int]:
        """Page through a user's inbox, newest first."""
        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        total = (
            await db.execute(select(func.count(Notification.id)).where(*conditions))
        ).scalar_one()

        result = await db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def mark_read(
        self,
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        """Mark one of the user's entries read. Already-read entries are left untouched.

        Raises:
            NotFoundException: Unknown entry or entry of another user
        """
        notification = await db.get(Notification, notification_id)
        if not notification or notification.user_id != user_id:
            raise NotFoundException("Notification")

        if not notification.is_read:
            notification.mark_read()
            await db.flush()
        return notification


# Singleton instance
_notification_service: NotificationService | None = None


def get_notification_service() -> NotificationService:
    """Get the notification service singleton."""
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
