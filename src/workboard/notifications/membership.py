"""Membership resolution for notification recipients.

Every function here is a pure read over already-loaded records: the order
of the returned IDs is stable (first occurrence wins) and duplicates are
dropped.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from workboard.database.models.kanban import KanbanBoard
from workboard.database.models.project import Project


def _unique(user_ids: Iterable[UUID | None]) -> list[UUID]:
    return list(dict.fromkeys(user_id for user_id in user_ids if user_id is not None))


def project_member_ids(project: Project) -> list[UUID]:
    """Everyone entitled to hear about a project's progress.

    Manager, creator, implementers, followers and cooperators.
    """
    return _unique(
        [
            project.manager_id,
            project.created_by_id,
            *(user.id for user in project.implementers),
            *(user.id for user in project.followers),
            *(user.id for user in project.cooperators),
        ]
    )


def project_approver_ids(project: Project) -> list[UUID]:
    """Manager and creator, the audience of approval events."""
    return _unique([project.manager_id, project.created_by_id])


def board_member_ids(board: KanbanBoard) -> list[UUID]:
    """Board owner followed by every board member."""
    return _unique([board.owner_id, *(member.user_id for member in board.members)])


def exclude_actor(user_ids: Iterable[UUID | None], actor_id: UUID | None) -> list[UUID]:
    """Recipient list without the acting user, de-duplicated in order."""
    return [user_id for user_id in _unique(user_ids) if user_id != actor_id]
