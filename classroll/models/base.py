"""Declarative base and the two abstract row shapes every table uses."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from uuid_extensions import uuid7

from classroll.utils.datetime import utc_now


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """created_at / updated_at, filled by Python and by the database."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
    )


class BaseModel(Base, TimestampMixin):
    """Row keyed by a time-ordered UUIDv7.

    Used directly by schools and by link tables whose school follows from
    their parent rows.
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid7)


class SchoolScopedModel(BaseModel):
    """Row owned by exactly one school; deleting the school deletes it."""

    __abstract__ = True

    school_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("schools.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
