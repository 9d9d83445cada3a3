"""Project activity (audit trail) query functions for Workboard."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workboard.database.models.activity import ProjectActivity


async def create_activity(
    session: AsyncSession,
    project_id: UUID,
    user_id: UUID,
    action: str,
    field_name: str | None = None,
    old_value: str | None = None,
    new_value: str | None = None,
) -> ProjectActivity:
    """Append an audit entry for a project change.

    Args:
        session: Active async database session.
        project_id: Project the change applies to.
        user_id: Acting user.
        action: Human-readable description.
        field_name: Changed field name.
        old_value: Value before the change.
        new_value: Value after the change.

    Returns:
        The new ProjectActivity instance.
    """
    activity = ProjectActivity(
        project_id=project_id,
        user_id=user_id,
        action=action,
        field_name=field_name,
        old_value=old_value,
        new_value=new_value,
    )
    session.add(activity)
    await session.flush()
    return activity


async def list_activities(
    session: AsyncSession,
    project_id: UUID,
) -> list[ProjectActivity]:
    """List a project's audit entries, oldest first."""
    stmt = (
        select(ProjectActivity)
        .where(ProjectActivity.project_id == project_id)
        .order_by(ProjectActivity.created_at.asc(), ProjectActivity.id.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
