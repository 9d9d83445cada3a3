"""Project workflow model for Workboard.

Defines the ProjectWorkflow table, the authoritative record of a project's
four-phase lifecycle and its manager approval gate.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workboard.database.models.base import Base, TimestampMixin


class WorkflowStatus(enum.Enum):
    """Lifecycle phases, in the only order they may be visited.

    States:
        RECEIVED: Project information received.
        IN_PROGRESS: Work under way.
        COMPLETED: Work finished; SENT_TO_CUSTOMER requires approval.
        SENT_TO_CUSTOMER: Delivered. Terminal.
    """

    RECEIVED = "RECEIVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    SENT_TO_CUSTOMER = "SENT_TO_CUSTOMER"


class ProjectWorkflow(TimestampMixin, Base):
    """Workflow row, one per project.

    Attributes:
        project_id: Owning project (unique, cascades on delete).
        current_status: Current lifecycle phase.
        received_start_at: When the RECEIVED phase began.
        in_progress_start_at: When the IN_PROGRESS phase began.
        completed_start_at: When the COMPLETED phase began.
        sent_to_customer_at: When the project was sent to the customer.
        received_confirmed_at: When RECEIVED was confirmed.
        in_progress_confirmed_at: When IN_PROGRESS was confirmed.
        completed_confirmed_at: When COMPLETED was confirmed.
        completed_approved_at: When the manager approved completion.
        completed_approved_by_id: Who approved completion.
    """

    __tablename__ = "project_workflows"

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    current_status: Mapped[WorkflowStatus] = mapped_column(
        default=WorkflowStatus.RECEIVED,
        nullable=False,
    )
    received_start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    in_progress_start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sent_to_customer_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    received_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    in_progress_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_approved_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    project: Mapped["Project"] = relationship(  # noqa: F821
        "Project",
        back_populates="workflow",
        lazy="noload",
    )
