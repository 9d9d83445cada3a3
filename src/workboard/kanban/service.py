"""Kanban board service for Workboard.

Implements every board operation: boards and membership, labels, ordered
lists, ordered cards with move and approval, comments, checklists and
attachments.

Each operation validates all preconditions before writing and runs its
writes in one transaction. Operations that change positions lock their
container (the board for lists, the list for cards), compute the new
positions from what they read under the lock, and bump the container's
version with a compare-and-swap. A stale plan rolls the transaction back
and the whole operation is retried; after ``max_ordering_retries`` retries
the caller gets a ConflictError.

After commit, the service delivers the operation's notifications (if any)
and emits ``kanban:board_updated`` to every board member except the actor.
Neither step can fail the operation.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workboard.auth import CallerIdentity
from workboard.database.models.base import utcnow
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
    card_labels,
)
from workboard.database.queries.kanban import (
    add_board_member,
    approve_card,
    bump_version,
    create_board,
    delete_board_tree,
    delete_cards,
    delete_lists,
    get_attachment,
    get_attachments,
    get_board,
    get_card,
    get_card_ids,
    get_cards,
    get_checklist,
    get_checklist_item,
    get_comment,
    get_comments,
    get_label,
    get_labels,
    get_list,
    get_lists,
    get_upload_paths,
    remove_board_member,
)
from workboard.database.queries.user import get_user_name, get_users
from workboard.errors import (
    AlreadyDoneError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from workboard.kanban.ordering import (
    CANONICAL_LISTS,
    is_terminal_list,
    next_position,
    plan_compaction,
    plan_move,
    plan_reorder,
)
from workboard.notifications.fanout import NotificationFanout
from workboard.notifications.membership import board_member_ids, exclude_actor
from workboard.notifications.transport import SocketEmitter
from workboard.storage.provider import StorageProvider, normalize_filename

logger = structlog.get_logger(__name__)

T = TypeVar("T")

BOARD_UPDATED_EVENT = "kanban:board_updated"

BOARD_NOT_FOUND = "Không tìm thấy bảng"
LIST_NOT_FOUND = "Không tìm thấy danh sách"
CARD_NOT_FOUND = "Không tìm thấy thẻ"
ACCESS_DENIED = "Bạn không có quyền truy cập bảng này"
MOVE_FORBIDDEN = (
    "Công việc chưa được duyệt. Chỉ quản lý hoặc người theo dõi mới có thể "
    "duyệt để chuyển sang Hoàn thành."
)
APPROVE_FORBIDDEN = "Chỉ người tạo thẻ, quản lý hoặc admin mới có thể duyệt công việc"
ORDERING_CONFLICT = "Bảng vừa được người khác cập nhật, vui lòng thử lại"


class StalePlanError(Exception):
    """The container changed between reading it and writing new positions."""


async def apply_positions(
    session: AsyncSession,
    container: KanbanBoard | KanbanList,
    members: Iterable[KanbanList | KanbanCard],
    plan: dict[uuid.UUID, int],
) -> None:
    """Write a position plan and bump the container's version.

    Raises:
        StalePlanError: If the container's version moved since it was read.
    """
    for member in members:
        if member.id in plan:
            member.position = plan[member.id]
    await session.flush()
    if not await bump_version(session, container):
        raise StalePlanError(str(container.id))


def is_board_member(board: KanbanBoard, user_id: uuid.UUID) -> bool:
    return board.owner_id == user_id or any(m.user_id == user_id for m in board.members)


def is_board_admin(board: KanbanBoard, user_id: uuid.UUID) -> bool:
    """Owner, or a member holding the ADMIN role."""
    return board.owner_id == user_id or any(
        m.user_id == user_id and m.role == BoardRole.ADMIN for m in board.members
    )


@dataclass
class UploadedFile:
    """A file received from the client for upload to storage."""

    filename: str
    data: bytes
    content_type: str = "application/octet-stream"


@dataclass
class ExternalFile:
    """A file that already lives elsewhere (project folder or Google Drive).

    Attributes:
        name: Display name.
        mime_type: Content type.
        size: Size in bytes, when known.
        storage_path: Object path of a folder file.
        link: Share link of a Google Drive file.
    """

    name: str
    mime_type: str = "application/octet-stream"
    size: int = 0
    storage_path: str = ""
    link: str | None = None


@dataclass
class BoardSnapshot:
    """A board with its labels, lists and cards in display order."""

    board: KanbanBoard
    labels: list[KanbanLabel]
    lists: list[KanbanList]
    cards: dict[uuid.UUID, list[KanbanCard]]


@dataclass
class CardDetail:
    """A card with its sub-records."""

    card: KanbanCard
    board_id: uuid.UUID
    comments: list[KanbanComment]
    checklist: list[KanbanChecklistItem]
    attachments: list[KanbanAttachment]


@dataclass
class AttachmentLink:
    url: str
    is_external: bool


@dataclass
class _Effects:
    """Side effects collected during a transaction and run after commit."""

    event_ids: list[uuid.UUID | None] = field(default_factory=list)
    broadcast_to: list[uuid.UUID] = field(default_factory=list)
    broadcast_data: dict[str, Any] = field(default_factory=dict)

    def board_updated(
        self,
        board: KanbanBoard,
        actor_id: uuid.UUID,
        action: str,
        **data: Any,
    ) -> None:
        self.broadcast_to = exclude_actor(board_member_ids(board), actor_id)
        self.broadcast_data = {
            "boardId": str(board.id),
            "action": action,
            "actorId": str(actor_id),
            **{key: str(value) if isinstance(value, uuid.UUID) else value for key, value in data.items()},
        }


class BoardService:
    """Board, list and card operations with ordering and fan-out.

    Attributes:
        session_factory: Factory producing one session per attempt.
        fanout: Notification fan-out shared with the workflow engine.
        emitter: Socket emitter for board-changed events, if any.
        storage: Attachment storage.
        max_ordering_retries: Retries of a position change before Conflict.
        presign_ttl_seconds: Lifetime of attachment download links.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fanout: NotificationFanout,
        storage: StorageProvider,
        emitter: SocketEmitter | None = None,
        max_ordering_retries: int = 3,
        presign_ttl_seconds: int = 3600,
    ) -> None:
        self.session_factory = session_factory
        self.fanout = fanout
        self.storage = storage
        self.emitter = emitter
        self.max_ordering_retries = max_ordering_retries
        self.presign_ttl_seconds = presign_ttl_seconds
        self.logger = logger.bind(component="BoardService")

    # ------------------------------------------------------------------
    # Transaction and side-effect plumbing
    # ------------------------------------------------------------------

    async def _run(
        self,
        operation: Callable[[AsyncSession, _Effects], Awaitable[T]],
        name: str,
        ordered: bool = False,
    ) -> T:
        """Run an operation in its own transaction, then its side effects.

        Args:
            operation: Coroutine function doing the reads, checks and writes.
            name: Operation name for logs.
            ordered: Retry on StalePlanError.

        Raises:
            ConflictError: If every ordering attempt hit a stale plan.
        """
        attempts = self.max_ordering_retries + 1 if ordered else 1
        for attempt in range(1, attempts + 1):
            effects = _Effects()
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        result = await operation(session, effects)
            except StalePlanError as e:
                self.logger.warning(
                    "ordering_plan_stale",
                    operation=name,
                    container_id=str(e),
                    attempt=attempt,
                )
                continue

            await self._after_commit(effects)
            return result

        self.logger.error("ordering_conflict", operation=name, attempts=attempts)
        raise ConflictError(ORDERING_CONFLICT)

    async def _after_commit(self, effects: _Effects) -> None:
        await self.fanout.deliver(effects.event_ids)
        if self.emitter is None or not effects.broadcast_to:
            return
        for user_id in effects.broadcast_to:
            try:
                await self.emitter.emit_to_user(user_id, BOARD_UPDATED_EVENT, effects.broadcast_data)
            except Exception as e:
                self.logger.error(
                    "board_update_emit_failed",
                    user_id=str(user_id),
                    board_id=effects.broadcast_data.get("boardId"),
                    error=str(e),
                )

    async def _purge_storage(self, paths: Sequence[str]) -> None:
        """Delete stored objects, logging failures."""
        for path in paths:
            try:
                await self.storage.delete(path)
            except Exception as e:
                self.logger.error("storage_delete_failed", path=path, error=str(e))

    async def _notify_board(
        self,
        session: AsyncSession,
        effects: _Effects,
        board: KanbanBoard,
        actor_id: uuid.UUID,
        event_type: str,
        title: str,
        message: str,
        card: KanbanCard | None = None,
        recipients: Iterable[uuid.UUID] | None = None,
    ) -> None:
        event_id = await self.fanout.enqueue(
            session,
            recipients=board_member_ids(board) if recipients is None else recipients,
            actor_id=actor_id,
            event_type=event_type,
            title=title,
            message=message,
            project_id=card.project_id if card is not None else None,
            task_id=card.task_id if card is not None else None,
            board_id=board.id,
            card_id=card.id if card is not None else None,
        )
        effects.event_ids.append(event_id)

    # ------------------------------------------------------------------
    # Loading and access checks
    # ------------------------------------------------------------------

    async def _board(
        self,
        session: AsyncSession,
        board_id: uuid.UUID,
        for_update: bool = False,
    ) -> KanbanBoard:
        board = await get_board(session, board_id, for_update=for_update)
        if board is None:
            raise NotFoundError("Board", board_id, BOARD_NOT_FOUND)
        return board

    async def _member_board(
        self,
        session: AsyncSession,
        caller: CallerIdentity,
        board_id: uuid.UUID,
        for_update: bool = False,
    ) -> KanbanBoard:
        board = await self._board(session, board_id, for_update=for_update)
        if not is_board_member(board, caller.user_id):
            raise ForbiddenError(ACCESS_DENIED)
        return board

    async def _list(
        self,
        session: AsyncSession,
        list_id: uuid.UUID,
        for_update: bool = False,
        message: str = LIST_NOT_FOUND,
    ) -> KanbanList:
        kanban_list = await get_list(session, list_id, for_update=for_update)
        if kanban_list is None:
            raise NotFoundError("List", list_id, message)
        return kanban_list

    async def _card_context(
        self,
        session: AsyncSession,
        caller: CallerIdentity,
        card_id: uuid.UUID,
    ) -> tuple[KanbanCard, KanbanList, KanbanBoard]:
        """Card, its list and its board, with the caller's membership checked."""
        card = await get_card(session, card_id)
        if card is None:
            raise NotFoundError("Card", card_id, CARD_NOT_FOUND)
        kanban_list = await self._list(session, card.list_id)
        board = await self._member_board(session, caller, kanban_list.board_id)
        return card, kanban_list, board

    async def _lock_lists(
        self,
        session: AsyncSession,
        list_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, KanbanList]:
        """Lock several lists in ID order."""
        locked: dict[uuid.UUID, KanbanList] = {}
        for list_id in sorted(set(list_ids), key=str):
            locked[list_id] = await self._list(session, list_id, for_update=True)
        return locked

    # ------------------------------------------------------------------
    # Boards
    # ------------------------------------------------------------------

    async def create_board(
        self,
        caller: CallerIdentity,
        title: str,
        description: str | None = None,
        background: str | None = None,
    ) -> KanbanBoard:
        """Create a board owned by the caller with the four canonical lists."""
        if not title or not title.strip():
            raise ValidationError("Tiêu đề bảng là bắt buộc")

        async def op(session: AsyncSession, effects: _Effects) -> KanbanBoard:
            board = await create_board(
                session,
                title=title.strip(),
                owner_id=caller.user_id,
                description=description or None,
                background=background,
            )
            await seed_canonical_lists(session, board)
            return board

        return await self._run(op, "create_board")

    async def get_board(self, caller: CallerIdentity, board_id: uuid.UUID) -> BoardSnapshot:
        """Board with labels, lists and cards, all in display order."""
        async with self.session_factory() as session:
            board = await self._member_board(session, caller, board_id)
            lists = await get_lists(session, board.id)
            cards: dict[uuid.UUID, list[KanbanCard]] = {item.id: [] for item in lists}
            for card in await get_cards(session, [item.id for item in lists]):
                cards[card.list_id].append(card)
            labels = await get_labels(session, board.id)
        return BoardSnapshot(board=board, labels=labels, lists=lists, cards=cards)

    async def update_board(
        self,
        caller: CallerIdentity,
        board_id: uuid.UUID,
        **changes: Any,
    ) -> KanbanBoard:
        """Update title, description or background."""
        unknown = set(changes) - {"title", "description", "background"}
        if unknown:
            raise ValidationError(f"Trường không hợp lệ: {', '.join(sorted(unknown))}")
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValidationError("Tiêu đề bảng là bắt buộc")

        async def op(session: AsyncSession, effects: _Effects) -> KanbanBoard:
            board = await self._member_board(session, caller, board_id)
            for name, value in changes.items():
                setattr(board, name, value.strip() if name == "title" else value)
            await session.flush()
            effects.board_updated(board, caller.user_id, "board_updated")
            return board

        return await self._run(op, "update_board")

    async def delete_board(self, caller: CallerIdentity, board_id: uuid.UUID) -> None:
        """Delete a board and everything on it (owner only).

        Uploaded attachment objects are removed from storage first; a
        storage failure is logged and does not stop the deletion.
        """
        async with self.session_factory() as session:
            board = await self._board(session, board_id)
            if board.owner_id != caller.user_id:
                raise ForbiddenError("Chỉ người tạo bảng mới có thể xóa")
            list_ids = [item.id for item in await get_lists(session, board_id)]
            paths = await get_upload_paths(session, await get_card_ids(session, list_ids))

        await self._purge_storage(paths)

        async def op(session: AsyncSession, effects: _Effects) -> None:
            board = await self._board(session, board_id, for_update=True)
            effects.board_updated(board, caller.user_id, "board_deleted")
            await delete_board_tree(session, board_id)

        await self._run(op, "delete_board")
        self.logger.info("board_deleted", board_id=str(board_id), purged_objects=len(paths))

    # ------------------------------------------------------------------
    # Members and labels
    # ------------------------------------------------------------------

    async def add_members(
        self,
        caller: CallerIdentity,
        board_id: uuid.UUID,
        user_ids: Sequence[uuid.UUID],
    ) -> list[KanbanBoardMember]:
        """Add users as MEMBERs and notify only the newly invited users.

        Returns:
            The board's full membership after the change.
        """

        async def op(session: AsyncSession, effects: _Effects) -> list[KanbanBoardMember]:
            board = await self._board(session, board_id)
            if not is_board_admin(board, caller.user_id):
                raise ForbiddenError("Chỉ admin mới có thể thêm thành viên")

            existing = set(board_member_ids(board))
            known = {user.id for user in await get_users(session, user_ids)}
            invited: list[uuid.UUID] = []
            for user_id in dict.fromkeys(user_ids):
                if user_id in existing:
                    continue
                if user_id not in known:
                    self.logger.warning("board_member_unknown_user", user_id=str(user_id))
                    continue
                await add_board_member(session, board.id, user_id, BoardRole.MEMBER)
                invited.append(user_id)

            await session.refresh(board, ["members"])
            if invited:
                inviter = await get_user_name(session, caller.user_id)
                await self._notify_board(
                    session,
                    effects,
                    board,
                    caller.user_id,
                    "KANBAN_INVITE",
                    "Mời vào bảng Kanban",
                    f'{inviter} đã mời bạn vào bảng làm việc nhóm "{board.title}"',
                    recipients=invited,
                )
                effects.board_updated(board, caller.user_id, "members_added")
            return list(board.members)

        return await self._run(op, "add_members")

    async def remove_member(
        self,
        caller: CallerIdentity,
        board_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> None:
        """Remove a member (owner or ADMIN, or the member themself)."""

        async def op(session: AsyncSession, effects: _Effects) -> None:
            board = await self._board(session, board_id)
            if not is_board_admin(board, caller.user_id) and caller.user_id != user_id:
                raise ForbiddenError(ACCESS_DENIED)
            if user_id == board.owner_id:
                raise ValidationError("Không thể xóa chủ sở hữu khỏi bảng")
            effects.board_updated(board, caller.user_id, "member_removed", userId=user_id)
            if not await remove_board_member(session, board.id, user_id):
                raise NotFoundError("BoardMember", user_id, "Người dùng không phải thành viên của bảng")

        await self._run(op, "remove_member")

    async def create_label(
        self,
        caller: CallerIdentity,
        board_id: uuid.UUID,
        name: str | None = None,
        color: str | None = None,
    ) -> KanbanLabel:
        """Create a label on a board (owner only)."""

        async def op(session: AsyncSession, effects: _Effects) -> KanbanLabel:
            board = await self._board(session, board_id)
            if board.owner_id != caller.user_id:
                raise ForbiddenError("Chỉ người tạo bảng mới có thể quản lý nhãn")
            label = KanbanLabel(board_id=board.id, name=name or None)
            if color:
                label.color = color
            session.add(label)
            await session.flush()
            effects.board_updated(board, caller.user_id, "label_created", labelId=label.id)
            return label

        return await self._run(op, "create_label")

    async def delete_label(self, caller: CallerIdentity, label_id: uuid.UUID) -> None:
        """Delete a label and detach it from every card (owner only)."""

        async def op(session: AsyncSession, effects: _Effects) -> None:
            label = await get_label(session, label_id)
            if label is None:
                raise NotFoundError("Label", label_id, "Không tìm thấy nhãn")
            board = await self._board(session, label.board_id)
            if board.owner_id != caller.user_id:
                raise ForbiddenError("Chỉ người tạo bảng mới có thể quản lý nhãn")
            await session.execute(delete(card_labels).where(card_labels.c.label_id == label.id))
            await session.delete(label)
            effects.board_updated(board, caller.user_id, "label_deleted", labelId=label_id)

        await self._run(op, "delete_label")

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    async def create_list(
        self,
        caller: CallerIdentity,
        board_id: uuid.UUID,
        title: str,
    ) -> KanbanList:
        """Append a list at the end of the board."""
        if not title or not title.strip():
            raise ValidationError("Tiêu đề danh sách là bắt buộc")

        async def op(session: AsyncSession, effects: _Effects) -> KanbanList:
            board = await self._member_board(session, caller, board_id, for_update=True)
            lists = await get_lists(session, board.id)
            kanban_list = KanbanList(
                board_id=board.id,
                title=title.strip(),
                position=next_position(item.position for item in lists),
                version=0,
            )
            session.add(kanban_list)
            await apply_positions(session, board, [], {})
            effects.board_updated(board, caller.user_id, "list_created", listId=kanban_list.id)
            return kanban_list

        return await self._run(op, "create_list", ordered=True)

    async def update_list(
        self,
        caller: CallerIdentity,
        list_id: uuid.UUID,
        title: str,
    ) -> KanbanList:
        """Rename a list."""
        if not title or not title.strip():
            raise ValidationError("Tiêu đề danh sách là bắt buộc")

        async def op(session: AsyncSession, effects: _Effects) -> KanbanList:
            kanban_list = await self._list(session, list_id)
            board = await self._member_board(session, caller, kanban_list.board_id)
            kanban_list.title = title.strip()
            await session.flush()
            effects.board_updated(board, caller.user_id, "list_updated", listId=list_id)
            return kanban_list

        return await self._run(op, "update_list")

    async def delete_list(self, caller: CallerIdentity, list_id: uuid.UUID) -> None:
        """Delete a list with its cards and close the gap it leaves."""
        async with self.session_factory() as session:
            kanban_list = await self._list(session, list_id)
            await self._member_board(session, caller, kanban_list.board_id)
            paths = await get_upload_paths(session, await get_card_ids(session, [list_id]))

        await self._purge_storage(paths)

        async def op(session: AsyncSession, effects: _Effects) -> None:
            kanban_list = await self._list(session, list_id)
            board = await self._member_board(session, caller, kanban_list.board_id, for_update=True)
            await delete_lists(session, [list_id])
            remaining = await get_lists(session, board.id)
            await apply_positions(
                session, board, remaining, plan_compaction([item.id for item in remaining])
            )
            effects.board_updated(board, caller.user_id, "list_deleted", listId=list_id)

        await self._run(op, "delete_list", ordered=True)

    async def reorder_lists(
        self,
        caller: CallerIdentity,
        board_id: uuid.UUID,
        list_ids: Sequence[uuid.UUID],
    ) -> list[KanbanList]:
        """Rewrite list positions from an explicit order of every list."""

        async def op(session: AsyncSession, effects: _Effects) -> list[KanbanList]:
            board = await self._member_board(session, caller, board_id, for_update=True)
            lists = await get_lists(session, board.id)
            plan = plan_reorder([item.id for item in lists], list(list_ids))
            await apply_positions(session, board, lists, plan)
            effects.board_updated(board, caller.user_id, "lists_reordered")
            return sorted(lists, key=lambda item: item.position)

        return await self._run(op, "reorder_lists", ordered=True)

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    async def create_card(
        self,
        caller: CallerIdentity,
        list_id: uuid.UUID,
        title: str,
        description: str | None = None,
        due_date: datetime | None = None,
        assignee_ids: Sequence[uuid.UUID] = (),
        label_ids: Sequence[uuid.UUID] = (),
    ) -> KanbanCard:
        """Append a card at the end of a list."""
        if not title or not title.strip():
            raise ValidationError("Tiêu đề thẻ là bắt buộc")

        async def op(session: AsyncSession, effects: _Effects) -> KanbanCard:
            kanban_list = await self._list(session, list_id, for_update=True)
            board = await self._member_board(session, caller, kanban_list.board_id)
            cards = await get_cards(session, [kanban_list.id])

            card = KanbanCard(
                list_id=kanban_list.id,
                title=title.strip(),
                description=description or None,
                position=next_position(item.position for item in cards),
                due_date=due_date,
                creator_id=caller.user_id,
            )
            card.assignees = await get_users(session, assignee_ids)
            card.labels = await get_labels(session, board.id, label_ids) if label_ids else []
            session.add(card)
            await apply_positions(session, kanban_list, [], {})

            creator = await get_user_name(session, caller.user_id)
            await self._notify_board(
                session,
                effects,
                board,
                caller.user_id,
                "KANBAN_CARD_CREATED",
                "Thẻ mới trong Kanban",
                f'{creator} đã tạo thẻ "{card.title}" trong danh sách "{kanban_list.title}"',
                card=card,
            )
            effects.board_updated(board, caller.user_id, "card_created", cardId=card.id)
            return card

        return await self._run(op, "create_card", ordered=True)

    async def get_card(self, caller: CallerIdentity, card_id: uuid.UUID) -> CardDetail:
        """Card with comments (oldest first), checklist and attachments."""
        async with self.session_factory() as session:
            card, _, board = await self._card_context(session, caller, card_id)
            return CardDetail(
                card=card,
                board_id=board.id,
                comments=await get_comments(session, card.id),
                checklist=await get_checklist(session, card.id),
                attachments=await get_attachments(session, card.id),
            )

    async def update_card(
        self,
        caller: CallerIdentity,
        card_id: uuid.UUID,
        **changes: Any,
    ) -> KanbanCard:
        """Update card fields.

        Accepts title, description, due_date, completed, assignee_ids and
        label_ids. Changing ``completed`` is limited to the card creator and
        board admins, and a card can only be marked completed while it sits
        in the terminal column. Moving is only possible through move_card.
        """
        allowed = {"title", "description", "due_date", "completed", "assignee_ids", "label_ids"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Trường không hợp lệ: {', '.join(sorted(unknown))}")
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValidationError("Tiêu đề thẻ là bắt buộc")

        async def op(session: AsyncSession, effects: _Effects) -> KanbanCard:
            card, kanban_list, board = await self._card_context(session, caller, card_id)

            if "completed" in changes and changes["completed"] != card.completed:
                if not (is_board_admin(board, caller.user_id) or card.creator_id == caller.user_id):
                    raise ForbiddenError(
                        "Chỉ người tạo thẻ, quản lý hoặc admin mới có thể thay đổi trạng thái hoàn thành"
                    )
                if changes["completed"] and not is_terminal_list(kanban_list.title):
                    raise ValidationError(
                        "Chỉ có thể đánh dấu hoàn thành khi thẻ nằm trong cột Hoàn thành"
                    )

            if "title" in changes:
                card.title = changes["title"].strip()
            if "description" in changes:
                card.description = changes["description"] or None
            if "due_date" in changes:
                card.due_date = changes["due_date"]
            if "completed" in changes:
                card.completed = bool(changes["completed"])
            if "assignee_ids" in changes:
                card.assignees = await get_users(session, changes["assignee_ids"] or [])
            if "label_ids" in changes:
                label_ids = changes["label_ids"] or []
                card.labels = await get_labels(session, board.id, label_ids) if label_ids else []

            await session.flush()
            effects.board_updated(board, caller.user_id, "card_updated", cardId=card.id)
            return card

        return await self._run(op, "update_card")

    async def delete_card(self, caller: CallerIdentity, card_id: uuid.UUID) -> None:
        """Delete a card and close the gap it leaves in its list."""
        async with self.session_factory() as session:
            await self._card_context(session, caller, card_id)
            paths = await get_upload_paths(session, [card_id])

        await self._purge_storage(paths)

        async def op(session: AsyncSession, effects: _Effects) -> None:
            card, kanban_list, board = await self._card_context(session, caller, card_id)
            kanban_list = await self._list(session, kanban_list.id, for_update=True)
            cards = await get_cards(session, [kanban_list.id])
            if card.id not in {item.id for item in cards}:
                raise StalePlanError(str(kanban_list.id))
            remaining = [item for item in cards if item.id != card.id]
            await delete_cards(session, [card.id])
            await apply_positions(
                session, kanban_list, remaining, plan_compaction([item.id for item in remaining])
            )
            effects.board_updated(
                board, caller.user_id, "card_deleted", cardId=card_id, listId=kanban_list.id
            )

        await self._run(op, "delete_card", ordered=True)

    async def move_card(
        self,
        caller: CallerIdentity,
        card_id: uuid.UUID,
        target_list_id: uuid.UUID,
        position: int = 0,
    ) -> KanbanCard:
        """Move a card to a list of the same board at a target index.

        Entering the terminal column requires the caller to be the board
        owner or an ADMIN member, or the card to be approved; the card is
        then marked completed. The destination is renumbered with the card
        inserted at the (clamped) index and the source list is compacted.

        Raises:
            NotFoundError: If the card or destination list does not exist.
            ValidationError: If the destination belongs to another board.
            ForbiddenError: If the terminal-column gate is not satisfied.
        """

        async def op(session: AsyncSession, effects: _Effects) -> KanbanCard:
            card, source, board = await self._card_context(session, caller, card_id)
            target = await self._list(session, target_list_id, message="Không tìm thấy danh sách đích")
            if target.board_id != board.id:
                raise ValidationError("Danh sách đích phải thuộc cùng một bảng")

            entering_terminal = is_terminal_list(target.title)
            if entering_terminal and not (
                is_board_admin(board, caller.user_id) or card.approved
            ):
                raise ForbiddenError(MOVE_FORBIDDEN)

            locked = await self._lock_lists(session, [source.id, target.id])
            cards = await get_cards(session, list(locked))
            moved = next((item for item in cards if item.id == card.id), None)
            if moved is None or moved.list_id != source.id:
                raise StalePlanError(str(source.id))

            destination = [item for item in cards if item.list_id == target.id]
            plan = plan_move([item.id for item in destination], moved.id, position)
            moved.list_id = target.id
            if entering_terminal:
                moved.completed = True

            members = [*destination, moved]
            if source.id != target.id:
                remaining = [
                    item for item in cards if item.list_id == source.id and item.id != moved.id
                ]
                plan.update(plan_compaction([item.id for item in remaining]))
                members.extend(remaining)
                await apply_positions(session, locked[source.id], [], {})
            await apply_positions(session, locked[target.id], members, plan)

            if source.id != target.id:
                actor = await get_user_name(session, caller.user_id)
                await self._notify_board(
                    session,
                    effects,
                    board,
                    caller.user_id,
                    "KANBAN_CARD_MOVED",
                    "Thẻ được di chuyển",
                    f'{actor} đã chuyển "{moved.title}" từ "{source.title}" sang "{target.title}"',
                    card=moved,
                )
            effects.board_updated(
                board,
                caller.user_id,
                "card_moved",
                cardId=moved.id,
                sourceListId=source.id,
                targetListId=target.id,
            )

            self.logger.info(
                "card_moved",
                card_id=str(moved.id),
                source_list_id=str(source.id),
                target_list_id=str(target.id),
                position=moved.position,
                completed=moved.completed,
            )
            return moved

        return await self._run(op, "move_card", ordered=True)

    async def approve_card(self, caller: CallerIdentity, card_id: uuid.UUID) -> KanbanCard:
        """Approve a card so any member may move it into the terminal column.

        Allowed for the card creator and the board owner or ADMIN members.
        Does not move or complete the card.
        """

        async def op(session: AsyncSession, effects: _Effects) -> KanbanCard:
            card, _, board = await self._card_context(session, caller, card_id)
            allowed = is_board_admin(board, caller.user_id) or card.creator_id == caller.user_id
            if not allowed:
                raise ForbiddenError(APPROVE_FORBIDDEN)
            if card.approved or not await approve_card(session, card, caller.user_id, utcnow()):
                raise AlreadyDoneError("Công việc đã được duyệt rồi")

            approver = await get_user_name(session, caller.user_id)
            await self._notify_board(
                session,
                effects,
                board,
                caller.user_id,
                "KANBAN_CARD_APPROVED",
                "Công việc đã được duyệt",
                f'"{card.title}" đã được duyệt bởi {approver}. Có thể chuyển sang Hoàn thành.',
                card=card,
            )
            effects.board_updated(board, caller.user_id, "card_approved", cardId=card.id)
            return card

        return await self._run(op, "approve_card")

    async def reorder_cards(
        self,
        caller: CallerIdentity,
        list_id: uuid.UUID,
        card_ids: Sequence[uuid.UUID],
    ) -> list[KanbanCard]:
        """Rewrite card positions from an explicit order of every card in a list."""

        async def op(session: AsyncSession, effects: _Effects) -> list[KanbanCard]:
            kanban_list = await self._list(session, list_id, for_update=True)
            board = await self._member_board(session, caller, kanban_list.board_id)
            cards = await get_cards(session, [kanban_list.id])
            plan = plan_reorder([item.id for item in cards], list(card_ids))
            await apply_positions(session, kanban_list, cards, plan)
            effects.board_updated(board, caller.user_id, "cards_reordered", listId=list_id)
            return sorted(cards, key=lambda item: item.position)

        return await self._run(op, "reorder_cards", ordered=True)

    # ------------------------------------------------------------------
    # Comments and checklist
    # ------------------------------------------------------------------

    async def add_comment(
        self,
        caller: CallerIdentity,
        card_id: uuid.UUID,
        content: str,
    ) -> KanbanComment:
        if not content or not content.strip():
            raise ValidationError("Nội dung bình luận là bắt buộc")

        async def op(session: AsyncSession, effects: _Effects) -> KanbanComment:
            card, _, board = await self._card_context(session, caller, card_id)
            comment = KanbanComment(card_id=card.id, author_id=caller.user_id, content=content.strip())
            session.add(comment)
            await session.flush()

            author = await get_user_name(session, caller.user_id)
            await self._notify_board(
                session,
                effects,
                board,
                caller.user_id,
                "KANBAN_COMMENT",
                "Bình luận mới trên thẻ Kanban",
                f'{author} đã bình luận trên "{card.title}": {comment.content[:100]}',
                card=card,
            )
            effects.board_updated(board, caller.user_id, "comment_added", cardId=card.id)
            return comment

        return await self._run(op, "add_comment")

    async def delete_comment(self, caller: CallerIdentity, comment_id: uuid.UUID) -> None:
        """Delete a comment (author only)."""

        async def op(session: AsyncSession, effects: _Effects) -> None:
            comment = await get_comment(session, comment_id)
            if comment is None:
                raise NotFoundError("Comment", comment_id, "Không tìm thấy bình luận")
            if comment.author_id != caller.user_id:
                raise ForbiddenError("Chỉ người viết mới có thể xóa bình luận")
            card, _, board = await self._card_context(session, caller, comment.card_id)
            await session.delete(comment)
            effects.board_updated(board, caller.user_id, "comment_deleted", cardId=card.id)

        await self._run(op, "delete_comment")

    async def add_checklist_item(
        self,
        caller: CallerIdentity,
        card_id: uuid.UUID,
        title: str,
    ) -> KanbanChecklistItem:
        if not title or not title.strip():
            raise ValidationError("Tiêu đề công việc là bắt buộc")

        async def op(session: AsyncSession, effects: _Effects) -> KanbanChecklistItem:
            card, _, board = await self._card_context(session, caller, card_id)
            items = await get_checklist(session, card.id)
            item = KanbanChecklistItem(
                card_id=card.id,
                title=title.strip(),
                position=next_position(existing.position for existing in items),
            )
            session.add(item)
            await session.flush()

            actor = await get_user_name(session, caller.user_id)
            await self._notify_board(
                session,
                effects,
                board,
                caller.user_id,
                "KANBAN_CHECKLIST",
                "Công việc mới trong Kanban",
                f'{actor} đã thêm "{item.title}" vào danh sách công việc của "{card.title}"',
                card=card,
            )
            effects.board_updated(board, caller.user_id, "checklist_added", cardId=card.id)
            return item

        return await self._run(op, "add_checklist_item")

    async def update_checklist_item(
        self,
        caller: CallerIdentity,
        item_id: uuid.UUID,
        title: str | None = None,
        checked: bool | None = None,
    ) -> KanbanChecklistItem:
        """Rename or toggle a checklist item; a toggle notifies the board."""
        if title is not None and not title.strip():
            raise ValidationError("Tiêu đề công việc là bắt buộc")

        async def op(session: AsyncSession, effects: _Effects) -> KanbanChecklistItem:
            item = await get_checklist_item(session, item_id)
            if item is None:
                raise NotFoundError("ChecklistItem", item_id, "Không tìm thấy công việc")
            card, _, board = await self._card_context(session, caller, item.card_id)

            if title is not None:
                item.title = title.strip()
            toggled = checked is not None and checked != item.checked
            if checked is not None:
                item.checked = checked
            await session.flush()

            if toggled:
                actor = await get_user_name(session, caller.user_id)
                verb = "hoàn thành" if item.checked else "mở lại"
                await self._notify_board(
                    session,
                    effects,
                    board,
                    caller.user_id,
                    "KANBAN_CHECKLIST",
                    "Hoàn thành công việc" if item.checked else "Mở lại công việc",
                    f'{actor} đã {verb} "{item.title}" trong thẻ "{card.title}"',
                    card=card,
                )
            effects.board_updated(
                board,
                caller.user_id,
                "checklist_toggled" if toggled else "checklist_updated",
                cardId=card.id,
            )
            return item

        return await self._run(op, "update_checklist_item")

    async def delete_checklist_item(self, caller: CallerIdentity, item_id: uuid.UUID) -> None:

        async def op(session: AsyncSession, effects: _Effects) -> None:
            item = await get_checklist_item(session, item_id)
            if item is None:
                raise NotFoundError("ChecklistItem", item_id, "Không tìm thấy công việc")
            card, _, board = await self._card_context(session, caller, item.card_id)
            await session.delete(item)
            effects.board_updated(board, caller.user_id, "checklist_deleted", cardId=card.id)

        await self._run(op, "delete_checklist_item")

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    async def _notify_attachments(
        self,
        session: AsyncSession,
        effects: _Effects,
        caller: CallerIdentity,
        board: KanbanBoard,
        card: KanbanCard,
        count: int,
    ) -> None:
        actor = await get_user_name(session, caller.user_id)
        await self._notify_board(
            session,
            effects,
            board,
            caller.user_id,
            "KANBAN_ATTACHMENT",
            "File đính kèm mới",
            f'{actor} đã đính kèm {count} file vào thẻ "{card.title}"',
            card=card,
        )
        effects.board_updated(board, caller.user_id, "attachment_added", cardId=card.id)

    async def upload_attachments(
        self,
        caller: CallerIdentity,
        card_id: uuid.UUID,
        files: Sequence[UploadedFile],
    ) -> list[KanbanAttachment]:
        """Store files and attach them to a card.

        Objects are written to ``kanban/cards/<card>/<timestamp>-<name>``.
        If recording the attachments fails, the stored objects are removed.
        """
        if not files:
            raise ValidationError("Chưa có file nào được tải lên")

        async with self.session_factory() as session:
            await self._card_context(session, caller, card_id)

        stored: list[tuple[UploadedFile, str, str]] = []
        try:
            for upload in files:
                name = normalize_filename(upload.filename)
                path = f"kanban/cards/{card_id}/{int(time.time() * 1000)}-{name}"
                await self.storage.put(path, upload.data, {"Content-Type": upload.content_type})
                stored.append((upload, name, path))

            async def op(session: AsyncSession, effects: _Effects) -> list[KanbanAttachment]:
                card, _, board = await self._card_context(session, caller, card_id)
                attachments = [
                    KanbanAttachment(
                        card_id=card.id,
                        uploaded_by_id=caller.user_id,
                        file_name=name,
                        file_size=len(upload.data),
                        mime_type=upload.content_type,
                        storage_path=path,
                        source=AttachmentSource.upload,
                    )
                    for upload, name, path in stored
                ]
                session.add_all(attachments)
                await session.flush()
                await self._notify_attachments(session, effects, caller, board, card, len(attachments))
                return attachments

            return await self._run(op, "upload_attachments")
        except Exception:
            await self._purge_storage([path for _, _, path in stored])
            raise

    async def attach_existing(
        self,
        caller: CallerIdentity,
        card_id: uuid.UUID,
        source: AttachmentSource,
        files: Sequence[ExternalFile],
    ) -> list[KanbanAttachment]:
        """Attach project-folder files or Google Drive links to a card.

        Nothing is written to storage: folder attachments point at the
        folder's object and Drive attachments keep only the link.
        """
        if source == AttachmentSource.upload:
            raise ValidationError("Nguồn đính kèm không hợp lệ")
        if not files:
            raise ValidationError("Chưa chọn file nào")
        for item in files:
            if source == AttachmentSource.folder and not item.storage_path:
                raise ValidationError(f'Thiếu đường dẫn lưu trữ cho "{item.name}"')
            if source == AttachmentSource.google_drive and not item.link:
                raise ValidationError(f'Thiếu liên kết Google Drive cho "{item.name}"')

        async def op(session: AsyncSession, effects: _Effects) -> list[KanbanAttachment]:
            card, _, board = await self._card_context(session, caller, card_id)
            attachments = [
                KanbanAttachment(
                    card_id=card.id,
                    uploaded_by_id=caller.user_id,
                    file_name=item.name,
                    file_size=item.size or 0,
                    mime_type=item.mime_type or "application/octet-stream",
                    storage_path=item.storage_path if source == AttachmentSource.folder else "",
                    source=source,
                    external_link=item.link if source == AttachmentSource.google_drive else None,
                )
                for item in files
            ]
            session.add_all(attachments)
            await session.flush()
            await self._notify_attachments(session, effects, caller, board, card, len(attachments))
            return attachments

        return await self._run(op, "attach_existing")

    async def delete_attachment(self, caller: CallerIdentity, attachment_id: uuid.UUID) -> None:
        """Delete an attachment (board owner or ADMIN, or the uploader)."""

        async def check(session: AsyncSession) -> KanbanAttachment:
            attachment = await get_attachment(session, attachment_id)
            if attachment is None:
                raise NotFoundError("Attachment", attachment_id, "Không tìm thấy file đính kèm")
            _, _, board = await self._card_context(session, caller, attachment.card_id)
            if not (
                is_board_admin(board, caller.user_id) or attachment.uploaded_by_id == caller.user_id
            ):
                raise ForbiddenError(ACCESS_DENIED)
            return attachment

        async with self.session_factory() as session:
            attachment = await check(session)

        if attachment.source == AttachmentSource.upload and attachment.storage_path:
            await self._purge_storage([attachment.storage_path])

        async def op(session: AsyncSession, effects: _Effects) -> None:
            current = await check(session)
            _, _, board = await self._card_context(session, caller, current.card_id)
            await session.delete(current)
            effects.board_updated(
                board, caller.user_id, "attachment_deleted", cardId=current.card_id
            )

        await self._run(op, "delete_attachment")

    async def attachment_url(
        self,
        caller: CallerIdentity,
        attachment_id: uuid.UUID,
    ) -> AttachmentLink:
        """Download URL: a presigned storage URL, or the Drive link."""
        async with self.session_factory() as session:
            attachment = await get_attachment(session, attachment_id)
            if attachment is None:
                raise NotFoundError("Attachment", attachment_id, "Không tìm thấy file đính kèm")
            await self._card_context(session, caller, attachment.card_id)

        if attachment.source == AttachmentSource.google_drive:
            return AttachmentLink(url=attachment.external_link or "", is_external=True)

        url = await self.storage.presigned_url(attachment.storage_path, self.presign_ttl_seconds)
        return AttachmentLink(url=url, is_external=False)


async def seed_canonical_lists(session: AsyncSession, board: KanbanBoard) -> list[KanbanList]:
    """Create the four canonical lists at positions 0-3 on a new board."""
    lists = [
        KanbanList(board_id=board.id, title=title, position=index, version=0)
        for index, title in enumerate(CANONICAL_LISTS)
    ]
    session.add_all(lists)
    await session.flush()
    return lists
