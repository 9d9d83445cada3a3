"""Auto-provisioning of project boards and task cards.

Every project gets one project-linked board, created on first use with the
project manager as owner and the four canonical lists. The external task
system calls ``create_card_for_task`` to mirror a new task as a card in the
board's "Cần làm" list.

Lookup-then-create runs under a lock on the project row, so two concurrent
callers for the same project end up with the same board.
"""

from __future__ import annotations

import uuid
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workboard.database.models.kanban import BoardRole, KanbanBoard, KanbanCard
from workboard.database.queries.kanban import (
    add_board_member,
    create_board,
    get_cards,
    get_list,
    get_lists,
    get_project_board,
)
from workboard.database.queries.project import get_project
from workboard.database.queries.user import get_users
from workboard.kanban.ordering import TODO_LIST_TITLE, next_position
from workboard.kanban.service import (
    BOARD_UPDATED_EVENT,
    apply_positions,
    seed_canonical_lists,
)
from workboard.notifications.membership import board_member_ids, exclude_actor
from workboard.notifications.transport import SocketEmitter

logger = structlog.get_logger(__name__)


class BoardProvisioner:
    """Creates project boards and task cards on demand.

    Attributes:
        session_factory: Factory producing one session per call.
        emitter: Socket emitter for board-changed events, if any.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        emitter: SocketEmitter | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.emitter = emitter
        self.logger = logger.bind(component="BoardProvisioner")

    async def _ensure_board(self, session: AsyncSession, project_id: uuid.UUID) -> KanbanBoard | None:
        project = await get_project(session, project_id, for_update=True)
        if project is None:
            return None

        board = await get_project_board(session, project.id)
        if board is not None:
            return board

        board = await create_board(
            session,
            title=f"{project.code} - {project.name}",
            owner_id=project.manager_id,
            description=f"Bảng công việc dự án {project.name}",
            project_id=project.id,
            is_project_board=True,
        )
        await seed_canonical_lists(session, board)
        self.logger.info(
            "project_board_provisioned",
            project_id=str(project.id),
            board_id=str(board.id),
        )
        return board

    async def get_or_create_project_board(self, project_id: uuid.UUID) -> KanbanBoard | None:
        """Return the project's board, creating it on first use.

        Returns:
            The board, or None if the project does not exist or the lookup
            failed (the failure is logged, never raised).
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    return await self._ensure_board(session, project_id)
        except Exception as e:
            self.logger.error(
                "project_board_provisioning_failed",
                project_id=str(project_id),
                error=str(e),
                exc_info=True,
            )
            return None

    async def create_card_for_task(
        self,
        task_id: uuid.UUID,
        title: str,
        description: str | None,
        assignee_id: uuid.UUID,
        creator_id: uuid.UUID,
        project_id: uuid.UUID,
        due_date: datetime | None = None,
    ) -> KanbanCard | None:
        """Append a card for a new task to its project board.

        The assignee becomes a MEMBER and the creator an ADMIN of the board
        when they are not members yet. The card goes to the end of the
        "Cần làm" list, or the first list if the board has none by that name.

        Returns:
            The created card, or None if the project is missing or anything
            failed (the failure is logged, never raised).
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    board = await self._ensure_board(session, project_id)
                    if board is None:
                        self.logger.warning(
                            "task_card_project_missing",
                            project_id=str(project_id),
                            task_id=str(task_id),
                        )
                        return None

                    await add_board_member(session, board.id, assignee_id, BoardRole.MEMBER)
                    await add_board_member(session, board.id, creator_id, BoardRole.ADMIN)

                    lists = await get_lists(session, board.id)
                    if not lists:
                        self.logger.warning("task_card_board_has_no_lists", board_id=str(board.id))
                        return None
                    target = next((item for item in lists if item.title == TODO_LIST_TITLE), lists[0])
                    target = await get_list(session, target.id, for_update=True)

                    cards = await get_cards(session, [target.id])
                    card = KanbanCard(
                        list_id=target.id,
                        title=title,
                        description=description or None,
                        position=next_position(item.position for item in cards),
                        due_date=due_date,
                        creator_id=creator_id,
                        task_id=task_id,
                        project_id=project_id,
                    )
                    card.assignees = await get_users(session, [assignee_id])
                    card.labels = []
                    session.add(card)
                    await apply_positions(session, target, [], {})

                    await session.refresh(board, ["members"])
                    recipients = exclude_actor(board_member_ids(board), creator_id)
                    board_id = board.id
        except Exception as e:
            self.logger.error(
                "task_card_creation_failed",
                task_id=str(task_id),
                project_id=str(project_id),
                error=str(e),
                exc_info=True,
            )
            return None

        self.logger.info(
            "task_card_created",
            task_id=str(task_id),
            card_id=str(card.id),
            board_id=str(board_id),
            list_id=str(card.list_id),
        )
        await self._broadcast(recipients, board_id, card, creator_id)
        return card

    async def _broadcast(
        self,
        recipients: list[uuid.UUID],
        board_id: uuid.UUID,
        card: KanbanCard,
        actor_id: uuid.UUID,
    ) -> None:
        if self.emitter is None:
            return
        payload = {
            "boardId": str(board_id),
            "action": "card_created",
            "actorId": str(actor_id),
            "cardId": str(card.id),
        }
        for user_id in recipients:
            try:
                await self.emitter.emit_to_user(user_id, BOARD_UPDATED_EVENT, payload)
            except Exception as e:
                self.logger.error("board_update_emit_failed", user_id=str(user_id), error=str(e))
