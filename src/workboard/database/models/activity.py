"""Project activity (audit trail) model for Workboard."""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from workboard.database.models.base import Base, TimestampMixin


class ProjectActivity(TimestampMixin, Base):
    """Immutable audit entry recording a change to a project.

    Attributes:
        project_id: Project the change applies to.
        user_id: User who made the change.
        action: Human-readable description of the change.
        field_name: Changed field (e.g. 'workflowStatus'), if any.
        old_value: Value before the change.
        new_value: Value after the change.
    """

    __tablename__ = "project_activities"

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    field_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
