"""Project query functions for Workboard.

Provides async functions for creating and reading Project records and for
writing the denormalized status mirror. Functions only add and flush; the
calling service owns the transaction.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workboard.database.models.project import Project, ProjectStatus
from workboard.database.queries.user import get_users

logger = structlog.get_logger(__name__)


async def create_project(
    session: AsyncSession,
    code: str,
    name: str,
    manager_id: UUID,
    created_by_id: UUID | None = None,
    description: str | None = None,
    implementer_ids: Iterable[UUID] = (),
    follower_ids: Iterable[UUID] = (),
    cooperator_ids: Iterable[UUID] = (),
) -> Project:
    """Create a new project with its member lists.

    Args:
        session: Active async database session.
        code: Unique project code.
        name: Human-readable project name.
        manager_id: Project manager.
        created_by_id: Creating user.
        description: Optional description.
        implementer_ids: Users doing the work.
        follower_ids: Users following progress.
        cooperator_ids: Users helping from other teams.

    Returns:
        The newly created Project instance.
    """
    project = Project(
        code=code,
        name=name,
        description=description,
        manager_id=manager_id,
        created_by_id=created_by_id,
        status=ProjectStatus.IN_PROGRESS,
        progress=0,
    )
    project.implementers = await get_users(session, implementer_ids)
    project.followers = await get_users(session, follower_ids)
    project.cooperators = await get_users(session, cooperator_ids)

    session.add(project)
    await session.flush()

    logger.info(
        "project_created",
        project_id=str(project.id),
        code=code,
        manager_id=str(manager_id),
    )

    return project


async def get_project(
    session: AsyncSession,
    project_id: UUID,
    for_update: bool = False,
) -> Project | None:
    """Retrieve a project by ID, member lists included.

    Args:
        session: Active async database session.
        project_id: UUID of the project to retrieve.
        for_update: Lock the row for the rest of the transaction.

    Returns:
        The Project instance if found, None otherwise.
    """
    stmt = select(Project).where(Project.id == project_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def project_code_exists(session: AsyncSession, code: str) -> bool:
    """Whether a project already uses ``code``."""
    result = await session.execute(select(Project.id).where(Project.code == code).limit(1))
    return result.scalar_one_or_none() is not None


async def update_project_mirror(
    session: AsyncSession,
    project_id: UUID,
    status: ProjectStatus,
    progress: int,
) -> None:
    """Write the project's status mirror.

    Args:
        session: Active async database session.
        project_id: UUID of the project.
        status: Mirror status derived from the workflow row.
        progress: Mirror progress derived from the workflow row.
    """
    stmt = (
        update(Project)
        .where(Project.id == project_id)
        .values(status=status, progress=progress)
    )
    await session.execute(stmt)
