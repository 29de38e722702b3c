"""School model."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from classroll.models.base import BaseModel


class School(BaseModel):
    """A school that owns courses, accounts and invitations."""

    __tablename__ = "schools"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    courses = relationship("Course", back_populates="school", lazy="selectin")
    users = relationship("User", back_populates="school", lazy="raise")
