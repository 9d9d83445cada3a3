"""Notification fan-out for Workboard.

Resolves who must hear about a change, records the change in the outbox
inside the mutating transaction, and delivers it through the persisted,
push and socket channels after commit (with retries by the outbox worker).
"""

from workboard.notifications.fanout import NotificationFanout
from workboard.notifications.membership import (
    board_member_ids,
    exclude_actor,
    project_approver_ids,
    project_member_ids,
)
from workboard.notifications.outbox import OutboxWorker
from workboard.notifications.transport import PushGateway, SocketEmitter

__all__ = [
    "NotificationFanout",
    "OutboxWorker",
    "PushGateway",
    "SocketEmitter",
    "board_member_ids",
    "exclude_actor",
    "project_approver_ids",
    "project_member_ids",
]
