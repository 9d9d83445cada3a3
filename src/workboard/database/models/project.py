"""Project model for Workboard.

Defines the Project table, its membership association tables, and the
ProjectStatus enum that mirrors the workflow phase for fast queries.
"""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import Column, ForeignKey, Integer, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workboard.database.models.base import Base, TimestampMixin


class ProjectStatus(enum.Enum):
    """Denormalized mirror of the workflow phase.

    States:
        IN_PROGRESS: Work received and under way.
        PENDING_APPROVAL: Work finished, waiting for the manager's approval.
        COMPLETED: Approved (and possibly sent to the customer).
    """

    IN_PROGRESS = "IN_PROGRESS"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    COMPLETED = "COMPLETED"


def _member_table(name: str) -> Table:
    return Table(
        name,
        Base.metadata,
        Column("project_id", ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
        Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    )


project_implementers = _member_table("project_implementers")
project_followers = _member_table("project_followers")
project_cooperators = _member_table("project_cooperators")


class Project(TimestampMixin, Base):
    """A customer project tracked through the four-phase workflow.

    Attributes:
        code: Unique short project code.
        name: Human-readable project name.
        description: Optional free-text description.
        manager_id: Project manager; owns the project board and approves.
        created_by_id: User who created the project.
        status: Mirror of the workflow phase.
        progress: Percentage complete, 0 or 100 at the mirror states.
        implementers: Users doing the work.
        followers: Users following progress.
        cooperators: Users from other teams helping out.
    """

    __tablename__ = "projects"

    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    status: Mapped[ProjectStatus] = mapped_column(
        default=ProjectStatus.IN_PROGRESS,
        nullable=False,
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    implementers: Mapped[list["User"]] = relationship(  # noqa: F821
        "User",
        secondary=project_implementers,
        lazy="selectin",
    )
    followers: Mapped[list["User"]] = relationship(  # noqa: F821
        "User",
        secondary=project_followers,
        lazy="selectin",
    )
    cooperators: Mapped[list["User"]] = relationship(  # noqa: F821
        "User",
        secondary=project_cooperators,
        lazy="selectin",
    )
    workflow: Mapped["ProjectWorkflow | None"] = relationship(  # noqa: F821
        "ProjectWorkflow",
        back_populates="project",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )
