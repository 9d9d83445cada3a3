"""User model for Workboard.

Users are owned by the external authentication system. The core only reads
them to resolve names for notification messages and roles for approvals.
"""

from __future__ import annotations

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from workboard.auth import UserRole
from workboard.database.models.base import Base, TimestampMixin


class User(TimestampMixin, Base):
    """A platform user.

    Attributes:
        name: Display name used in notification messages.
        email: Unique login email.
        role: Platform-wide role.
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    role: Mapped[UserRole] = mapped_column(default=UserRole.USER, nullable=False)
