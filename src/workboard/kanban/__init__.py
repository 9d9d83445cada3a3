"""Kanban boards: ordering, board operations and project provisioning."""

from workboard.kanban.ordering import (
    CANONICAL_LISTS,
    TODO_LIST_TITLE,
    is_terminal_list,
    next_position,
    plan_compaction,
    plan_move,
    plan_reorder,
)
from workboard.kanban.provisioning import BoardProvisioner
from workboard.kanban.service import (
    BOARD_UPDATED_EVENT,
    AttachmentLink,
    BoardService,
    BoardSnapshot,
    CardDetail,
    ExternalFile,
    UploadedFile,
)

__all__ = [
    "AttachmentLink",
    "BOARD_UPDATED_EVENT",
    "BoardProvisioner",
    "BoardService",
    "BoardSnapshot",
    "CANONICAL_LISTS",
    "CardDetail",
    "ExternalFile",
    "TODO_LIST_TITLE",
    "UploadedFile",
    "is_terminal_list",
    "next_position",
    "plan_compaction",
    "plan_move",
    "plan_reorder",
]
