"""Database query functions for Workboard.

This module provides async query functions for all database entities:
- User and project lookups, project creation and status mirror writes
- Workflow rows with guarded (compare-and-swap) transitions
- Project activity (audit trail)
- Kanban boards, lists, cards and their sub-records
- Persisted notifications and the notification outbox

Query functions never commit; the calling service owns the transaction.
"""

from workboard.database.queries.activity import create_activity, list_activities
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
    get_board_member,
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
    get_project_board,
    get_upload_paths,
    remove_board_member,
)
from workboard.database.queries.notification import create_notifications, list_notifications
from workboard.database.queries.outbox import (
    claim_event,
    enqueue_event,
    get_due_event_ids,
    get_event,
    get_outbox_stats,
    mark_channels,
    record_attempt,
)
from workboard.database.queries.project import (
    create_project,
    get_project,
    update_project_mirror,
)
from workboard.database.queries.user import get_user, get_user_name, get_users
from workboard.database.queries.workflow import (
    create_workflow,
    get_workflow,
    transition_workflow,
)

__all__ = [
    # User and project queries
    "get_user",
    "get_users",
    "get_user_name",
    "create_project",
    "get_project",
    "update_project_mirror",
    # Workflow queries
    "get_workflow",
    "create_workflow",
    "transition_workflow",
    # Activity queries
    "create_activity",
    "list_activities",
    # Kanban queries
    "get_board",
    "get_project_board",
    "create_board",
    "get_board_member",
    "add_board_member",
    "approve_card",
    "remove_board_member",
    "get_list",
    "get_lists",
    "get_card",
    "get_cards",
    "get_card_ids",
    "bump_version",
    "get_label",
    "get_labels",
    "get_comment",
    "get_comments",
    "get_checklist_item",
    "get_checklist",
    "get_attachment",
    "get_attachments",
    "get_upload_paths",
    "delete_cards",
    "delete_lists",
    "delete_board_tree",
    # Notification and outbox queries
    "create_notifications",
    "list_notifications",
    "enqueue_event",
    "get_event",
    "get_due_event_ids",
    "claim_event",
    "mark_channels",
    "record_attempt",
    "get_outbox_stats",
]
