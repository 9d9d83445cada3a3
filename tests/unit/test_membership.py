"""Unit tests for notification recipient resolution."""

from __future__ import annotations

import uuid
from types import SimpleNamespace

from workboard.notifications.membership import (
    board_member_ids,
    exclude_actor,
    project_approver_ids,
    project_member_ids,
)

MANAGER, CREATOR, DEV, FOLLOWER, PARTNER = (uuid.uuid4() for _ in range(5))


def _users(*ids: uuid.UUID) -> list[SimpleNamespace]:
    return [SimpleNamespace(id=user_id) for user_id in ids]


def _project(**overrides):
    values = {
        "manager_id": MANAGER,
        "created_by_id": CREATOR,
        "implementers": _users(DEV),
        "followers": _users(FOLLOWER),
        "cooperators": _users(PARTNER),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestProjectMembers:
    def test_all_roles_in_order(self):
        assert project_member_ids(_project()) == [MANAGER, CREATOR, DEV, FOLLOWER, PARTNER]

    def test_duplicates_dropped(self):
        """A manager who is also an implementer appears once."""
        project = _project(implementers=_users(MANAGER, DEV), followers=_users(DEV))

        assert project_member_ids(project) == [MANAGER, CREATOR, DEV, PARTNER]

    def test_missing_creator(self):
        project = _project(created_by_id=None, implementers=[], followers=[], cooperators=[])

        assert project_member_ids(project) == [MANAGER]

    def test_approvers(self):
        assert project_approver_ids(_project()) == [MANAGER, CREATOR]
        assert project_approver_ids(_project(created_by_id=MANAGER)) == [MANAGER]


class TestBoardMembers:
    def test_owner_first(self):
        board = SimpleNamespace(
            owner_id=MANAGER,
            members=[SimpleNamespace(user_id=DEV), SimpleNamespace(user_id=MANAGER)],
        )

        assert board_member_ids(board) == [MANAGER, DEV]


class TestExcludeActor:
    def test_actor_removed(self):
        assert exclude_actor([MANAGER, DEV, MANAGER], MANAGER) == [DEV]

    def test_none_values_dropped(self):
        assert exclude_actor([None, DEV, None], None) == [DEV]

    def test_only_actor(self):
        assert exclude_actor([DEV], DEV) == []
