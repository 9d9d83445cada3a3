"""Kanban query functions for Workboard.

Provides async functions for reading boards, lists and cards in display
order, locking ordering containers, bumping container versions, and
deleting card and board trees. Functions only add, flush and execute; the
board service owns the transaction.

Display order everywhere is ascending position with creation time and ID
as tie-breakers.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workboard.database.models.kanban import (
    AttachmentSource,
    BoardRole,
    KanbanAttachment,
    KanbanBoard,
    KanbanBoardMember,
    KanbanCard,
    KanbanChecklistItem,
    KanbanComment,
    KanbanLabel,
    KanbanList,
    card_assignees,
    card_labels,
)

logger = structlog.get_logger(__name__)


async def get_board(
    session: AsyncSession,
    board_id: UUID,
    for_update: bool = False,
) -> KanbanBoard | None:
    """Retrieve a board by ID.

    Args:
        session: Active async database session.
        board_id: UUID of the board.
        for_update: Lock the row for the rest of the transaction.

    Returns:
        The KanbanBoard instance if found, None otherwise.
    """
    stmt = select(KanbanBoard).where(KanbanBoard.id == board_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_project_board(
    session: AsyncSession,
    project_id: UUID,
) -> KanbanBoard | None:
    """Retrieve the oldest project-linked board of a project."""
    stmt = (
        select(KanbanBoard)
        .where(KanbanBoard.project_id == project_id)
        .where(KanbanBoard.is_project_board.is_(True))
        .order_by(KanbanBoard.created_at.asc(), KanbanBoard.id.asc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_board(
    session: AsyncSession,
    title: str,
    owner_id: UUID,
    description: str | None = None,
    background: str | None = None,
    project_id: UUID | None = None,
    is_project_board: bool = False,
) -> KanbanBoard:
    """Create a board with its owner as ADMIN member.

    Args:
        session: Active async database session.
        title: Board title.
        owner_id: Owning user.
        description: Optional description.
        background: Optional background colour.
        project_id: Linked project for project boards.
        is_project_board: Mark as the project's auto-provisioned board.

    Returns:
        The newly created KanbanBoard instance.
    """
    board = KanbanBoard(
        title=title,
        description=description,
        owner_id=owner_id,
        project_id=project_id,
        is_project_board=is_project_board,
        version=0,
    )
    if background:
        board.background = background
    board.members = [KanbanBoardMember(user_id=owner_id, role=BoardRole.ADMIN)]

    session.add(board)
    await session.flush()

    logger.info(
        "board_created",
        board_id=str(board.id),
        owner_id=str(owner_id),
        project_id=str(project_id) if project_id else None,
    )

    return board


async def get_board_member(
    session: AsyncSession,
    board_id: UUID,
    user_id: UUID,
) -> KanbanBoardMember | None:
    """Retrieve a user's membership row on a board."""
    stmt = select(KanbanBoardMember).where(
        KanbanBoardMember.board_id == board_id,
        KanbanBoardMember.user_id == user_id,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def add_board_member(
    session: AsyncSession,
    board_id: UUID,
    user_id: UUID,
    role: BoardRole = BoardRole.MEMBER,
) -> tuple[KanbanBoardMember, bool]:
    """Add a user to a board unless already a member.

    Returns:
        Tuple of the membership row and whether it was created.
    """
    existing = await get_board_member(session, board_id, user_id)
    if existing is not None:
        return existing, False

    member = KanbanBoardMember(board_id=board_id, user_id=user_id, role=role)
    session.add(member)
    await session.flush()
    return member, True


async def remove_board_member(
    session: AsyncSession,
    board_id: UUID,
    user_id: UUID,
) -> bool:
    """Delete a membership row. Returns True if a row was removed."""
    stmt = delete(KanbanBoardMember).where(
        KanbanBoardMember.board_id == board_id,
        KanbanBoardMember.user_id == user_id,
    )
    result = await session.execute(stmt)
    return result.rowcount > 0


async def get_list(
    session: AsyncSession,
    list_id: UUID,
    for_update: bool = False,
) -> KanbanList | None:
    """Retrieve a list by ID, optionally locking it."""
    stmt = select(KanbanList).where(KanbanList.id == list_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_lists(
    session: AsyncSession,
    board_id: UUID,
) -> list[KanbanList]:
    """Retrieve a board's lists in display order."""
    stmt = (
        select(KanbanList)
        .where(KanbanList.board_id == board_id)
        .order_by(KanbanList.position.asc(), KanbanList.created_at.asc(), KanbanList.id.asc())
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_card(
    session: AsyncSession,
    card_id: UUID,
) -> KanbanCard | None:
    """Retrieve a card by ID."""
    stmt = select(KanbanCard).where(KanbanCard.id == card_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_cards(
    session: AsyncSession,
    list_ids: Sequence[UUID],
) -> list[KanbanCard]:
    """Retrieve the cards of one or more lists in display order.

    Args:
        session: Active async database session.
        list_ids: Lists whose cards to load.

    Returns:
        Cards ordered by list, then display order within the list.
    """
    if not list_ids:
        return []
    stmt = (
        select(KanbanCard)
        .where(KanbanCard.list_id.in_(list_ids))
        .order_by(
            KanbanCard.list_id,
            KanbanCard.position.asc(),
            KanbanCard.created_at.asc(),
            KanbanCard.id.asc(),
        )
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def bump_version(
    session: AsyncSession,
    container: KanbanBoard | KanbanList,
) -> bool:
    """Compare-and-swap the ordering version of a board or list.

    Args:
        session: Active async database session.
        container: Board (list ordering) or list (card ordering) whose
            version was read when the ordering plan was computed.

    Returns:
        True if the version still matched and was incremented, False if
        another writer reordered the container in the meantime.
    """
    model = type(container)
    expected = container.version
    stmt = (
        update(model)
        .where(model.id == container.id)
        .where(model.version == expected)
        .values(version=expected + 1)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:
        return False
    container.version = expected + 1
    return True


async def get_labels(
    session: AsyncSession,
    board_id: UUID,
    label_ids: Sequence[UUID] | None = None,
) -> list[KanbanLabel]:
    """Retrieve a board's labels, optionally restricted to the given IDs."""
    stmt = select(KanbanLabel).where(KanbanLabel.board_id == board_id)
    if label_ids is not None:
        stmt = stmt.where(KanbanLabel.id.in_(list(label_ids)))
    stmt = stmt.order_by(KanbanLabel.created_at.asc(), KanbanLabel.id.asc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_label(session: AsyncSession, label_id: UUID) -> KanbanLabel | None:
    """Retrieve a label by ID."""
    result = await session.execute(select(KanbanLabel).where(KanbanLabel.id == label_id))
    return result.scalar_one_or_none()


async def get_comment(session: AsyncSession, comment_id: UUID) -> KanbanComment | None:
    """Retrieve a comment by ID."""
    result = await session.execute(select(KanbanComment).where(KanbanComment.id == comment_id))
    return result.scalar_one_or_none()


async def get_comments(session: AsyncSession, card_id: UUID) -> list[KanbanComment]:
    """Retrieve a card's comments, oldest first."""
    stmt = (
        select(KanbanComment)
        .where(KanbanComment.card_id == card_id)
        .order_by(KanbanComment.created_at.asc(), KanbanComment.id.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_checklist_item(
    session: AsyncSession,
    item_id: UUID,
) -> KanbanChecklistItem | None:
    """Retrieve a checklist item by ID."""
    stmt = select(KanbanChecklistItem).where(KanbanChecklistItem.id == item_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_checklist(session: AsyncSession, card_id: UUID) -> list[KanbanChecklistItem]:
    """Retrieve a card's checklist in display order."""
    stmt = (
        select(KanbanChecklistItem)
        .where(KanbanChecklistItem.card_id == card_id)
        .order_by(
            KanbanChecklistItem.position.asc(),
            KanbanChecklistItem.created_at.asc(),
            KanbanChecklistItem.id.asc(),
        )
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_attachment(
    session: AsyncSession,
    attachment_id: UUID,
) -> KanbanAttachment | None:
    """Retrieve an attachment by ID."""
    stmt = select(KanbanAttachment).where(KanbanAttachment.id == attachment_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_attachments(session: AsyncSession, card_id: UUID) -> list[KanbanAttachment]:
    """Retrieve a card's attachments, oldest first."""
    stmt = (
        select(KanbanAttachment)
        .where(KanbanAttachment.card_id == card_id)
        .order_by(KanbanAttachment.created_at.asc(), KanbanAttachment.id.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_upload_paths(
    session: AsyncSession,
    card_ids: Sequence[UUID],
) -> list[str]:
    """Storage paths of the uploaded attachments owned by the given cards."""
    if not card_ids:
        return []
    stmt = select(KanbanAttachment.storage_path).where(
        KanbanAttachment.card_id.in_(list(card_ids)),
        KanbanAttachment.source == AttachmentSource.upload,
        KanbanAttachment.storage_path != "",
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_card_ids(session: AsyncSession, list_ids: Sequence[UUID]) -> list[UUID]:
    """IDs of the cards in the given lists."""
    if not list_ids:
        return []
    stmt = select(KanbanCard.id).where(KanbanCard.list_id.in_(list(list_ids)))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def delete_cards(session: AsyncSession, card_ids: Sequence[UUID]) -> None:
    """Delete cards together with their comments, checklist and attachments.

    Child rows are removed explicitly so the result does not depend on the
    database enforcing ON DELETE CASCADE.
    """
    if not card_ids:
        return
    ids = list(card_ids)
    await session.execute(delete(KanbanAttachment).where(KanbanAttachment.card_id.in_(ids)))
    await session.execute(delete(KanbanComment).where(KanbanComment.card_id.in_(ids)))
    await session.execute(
        delete(KanbanChecklistItem).where(KanbanChecklistItem.card_id.in_(ids))
    )
    await session.execute(delete(card_assignees).where(card_assignees.c.card_id.in_(ids)))
    await session.execute(delete(card_labels).where(card_labels.c.card_id.in_(ids)))
    await session.execute(
        delete(KanbanCard)
        .where(KanbanCard.id.in_(ids))
        .execution_options(synchronize_session="fetch")
    )


async def delete_lists(session: AsyncSession, list_ids: Sequence[UUID]) -> None:
    """Delete lists and every card they contain."""
    if not list_ids:
        return
    await delete_cards(session, await get_card_ids(session, list_ids))
    await session.execute(
        delete(KanbanList)
        .where(KanbanList.id.in_(list(list_ids)))
        .execution_options(synchronize_session="fetch")
    )


async def delete_board_tree(session: AsyncSession, board_id: UUID) -> None:
    """Delete a board with its lists, cards, labels and memberships."""
    lists = await get_lists(session, board_id)
    await delete_lists(session, [item.id for item in lists])

    label_ids = select(KanbanLabel.id).where(KanbanLabel.board_id == board_id)
    await session.execute(delete(card_labels).where(card_labels.c.label_id.in_(label_ids)))
    await session.execute(delete(KanbanLabel).where(KanbanLabel.board_id == board_id))
    await session.execute(
        delete(KanbanBoardMember)
        .where(KanbanBoardMember.board_id == board_id)
        .execution_options(synchronize_session="fetch")
    )
    await session.execute(
        delete(KanbanBoard)
        .where(KanbanBoard.id == board_id)
        .execution_options(synchronize_session="fetch")
    )

    logger.info("board_tree_deleted", board_id=str(board_id), list_count=len(lists))


async def approve_card(
    session: AsyncSession,
    card: KanbanCard,
    approver_id: UUID,
    approved_at: datetime,
) -> bool:
    """Set a card's approval unless it is already approved.

    Returns:
        True if this call approved the card, False if it already was.
    """
    stmt = (
        update(KanbanCard)
        .where(KanbanCard.id == card.id)
        .where(KanbanCard.approved.is_(False))
        .values(approved=True, approved_by_id=approver_id, approved_at=approved_at)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount != 1:
        return False
    card.approved = True
    card.approved_by_id = approver_id
    card.approved_at = approved_at
    return True
