"""Project workflow query functions for Workboard.

Transitions are written with a compare-and-swap UPDATE guarded by the
expected current status, so of two concurrent calls for the same transition
exactly one matches a row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workboard.database.models.workflow import ProjectWorkflow, WorkflowStatus

logger = structlog.get_logger(__name__)


async def get_workflow(
    session: AsyncSession,
    project_id: UUID,
) -> ProjectWorkflow | None:
    """Retrieve a project's workflow row.

    Args:
        session: Active async database session.
        project_id: UUID of the owning project.

    Returns:
        The ProjectWorkflow instance if found, None otherwise.
    """
    stmt = (
        select(ProjectWorkflow)
        .where(ProjectWorkflow.project_id == project_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_workflow(
    session: AsyncSession,
    project_id: UUID,
    received_start_at: datetime,
) -> ProjectWorkflow:
    """Create the workflow row for a project at RECEIVED.

    Args:
        session: Active async database session.
        project_id: UUID of the owning project.
        received_start_at: Start of the RECEIVED phase.

    Returns:
        The newly created ProjectWorkflow instance.
    """
    workflow = ProjectWorkflow(
        project_id=project_id,
        current_status=WorkflowStatus.RECEIVED,
        received_start_at=received_start_at,
    )
    session.add(workflow)
    await session.flush()

    logger.info(
        "workflow_created",
        project_id=str(project_id),
        workflow_id=str(workflow.id),
    )

    return workflow


async def transition_workflow(
    session: AsyncSession,
    project_id: UUID,
    expected_status: WorkflowStatus,
    require_unapproved: bool = False,
    require_approved: bool = False,
    **values: Any,
) -> ProjectWorkflow | None:
    """Apply a guarded update to a workflow row.

    Args:
        session: Active async database session.
        project_id: UUID of the owning project.
        expected_status: Status the row must still be in.
        require_unapproved: Also require completed_approved_at to be null.
        require_approved: Also require completed_approved_at to be set.
        **values: Column values to write.

    Returns:
        The refreshed ProjectWorkflow if the guard matched, None if another
        writer changed the row first.
    """
    stmt = (
        update(ProjectWorkflow)
        .where(ProjectWorkflow.project_id == project_id)
        .where(ProjectWorkflow.current_status == expected_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if require_unapproved:
        stmt = stmt.where(ProjectWorkflow.completed_approved_at.is_(None))
    if require_approved:
        stmt = stmt.where(ProjectWorkflow.completed_approved_at.is_not(None))

    result = await session.execute(stmt)
    if result.rowcount != 1:
        logger.warning(
            "workflow_transition_lost",
            project_id=str(project_id),
            expected_status=expected_status.value,
        )
        return None

    return await get_workflow(session, project_id)
