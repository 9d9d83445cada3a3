"""Integration tests for the project workflow engine.

Tests cover:
- Project creation with its RECEIVED workflow row and duplicate codes
- Lazy creation of a missing workflow row
- The full lifecycle with the project status mirror at every step
- Approval gate permissions and idempotency
- Rejections for out-of-order and concurrent transitions
- Audit entries and notification recipients
"""

from __future__ import annotations

import uuid

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from workboard.auth import CallerIdentity
from workboard.database.models import (
    Notification,
    OutboxEvent,
    OutboxStatus,
    Project,
    ProjectStatus,
    User,
    WorkflowStatus,
)
from workboard.database.queries.activity import list_activities
from workboard.database.queries.project import create_project
from workboard.errors import (
    AlreadyDoneError,
    ForbiddenError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from workboard.workflow import ProjectWorkflowEngine, state_machine


def _caller(user: User) -> CallerIdentity:
    return CallerIdentity(user_id=user.id, role=user.role)


async def _mirror(session_factory, project_id: uuid.UUID) -> tuple[ProjectStatus, int]:
    async with session_factory() as session:
        project = await session.get(Project, project_id)
        return project.status, project.progress


async def _events(session_factory, event_type: str) -> list[OutboxEvent]:
    async with session_factory() as session:
        result = await session.execute(
            select(OutboxEvent)
            .where(OutboxEvent.event_type == event_type)
            .order_by(OutboxEvent.created_at.asc())
        )
        return list(result.scalars().all())


@pytest_asyncio.fixture
async def project(
    workflow_engine: ProjectWorkflowEngine,
    manager: User,
    creator: User,
    implementer: User,
    follower: User,
) -> Project:
    """Project created by `creator`, managed by `manager`."""
    created, _ = await workflow_engine.create_project(
        _caller(creator),
        code="PRJ-001",
        name="Website redesign",
        manager_id=manager.id,
        implementer_ids=[implementer.id],
        follower_ids=[follower.id],
    )
    return created


class TestCreateProject:
    """Test project creation."""

    @pytest.mark.asyncio
    async def test_creates_received_workflow(
        self,
        workflow_engine: ProjectWorkflowEngine,
        project: Project,
        session_factory,
    ) -> None:
        """A new project starts at RECEIVED with the IN_PROGRESS mirror."""
        workflow = await workflow_engine.get_workflow(project.id)

        assert workflow.current_status == WorkflowStatus.RECEIVED
        assert workflow.received_start_at is not None
        assert workflow.completed_approved_at is None
        assert await _mirror(session_factory, project.id) == (ProjectStatus.IN_PROGRESS, 0)

    @pytest.mark.asyncio
    async def test_notifies_members_except_creator(
        self,
        project: Project,
        session_factory,
        manager: User,
        creator: User,
        implementer: User,
        follower: User,
        push,
        emitter,
    ) -> None:
        """Assignment notification goes to every member but the creator."""
        [event] = await _events(session_factory, "PROJECT_ASSIGNED")
        expected = {str(manager.id), str(implementer.id), str(follower.id)}

        assert set(event.recipient_ids) == expected
        assert event.status == OutboxStatus.delivered

        async with session_factory() as session:
            result = await session.execute(select(Notification.user_id))
            assert {str(user_id) for user_id in result.scalars()} == expected

        assert {str(user_id) for user_id in push.sent[0]["user_ids"]} == expected
        assert {str(user_id) for user_id in emitter.recipients("new_notification")} == expected

    @pytest.mark.asyncio
    async def test_duplicate_code_rejected(
        self,
        workflow_engine: ProjectWorkflowEngine,
        project: Project,
        session_factory,
        manager: User,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await workflow_engine.create_project(
                _caller(manager), code="PRJ-001", name="Copy", manager_id=manager.id
            )

        assert exc_info.value.code == "duplicate_code"
        assert exc_info.value.status_code == 400
        async with session_factory() as session:
            result = await session.execute(select(Project.name))
            assert list(result.scalars()) == ["Website redesign"]

    @pytest.mark.asyncio
    async def test_duplicate_code_inserted_concurrently(
        self,
        workflow_engine: ProjectWorkflowEngine,
        project: Project,
        manager: User,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A code taken after the existence check still maps to a rejection."""
        code_exists = state_machine.project_code_exists
        checks = []

        async def stale_check(session, code):
            checks.append(code)
            if len(checks) == 1:
                return False
            return await code_exists(session, code)

        monkeypatch.setattr(state_machine, "project_code_exists", stale_check)

        with pytest.raises(ValidationError) as exc_info:
            await workflow_engine.create_project(
                _caller(manager), code="PRJ-001", name="Copy", manager_id=manager.id
            )

        assert exc_info.value.code == "duplicate_code"
        assert checks == ["PRJ-001", "PRJ-001"]

    @pytest.mark.asyncio
    async def test_other_constraint_failure_is_internal(
        self,
        workflow_engine: ProjectWorkflowEngine,
        manager: User,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def broken_insert(session, project_id, now):
            raise IntegrityError("INSERT INTO project_workflows", {}, Exception("constraint"))

        monkeypatch.setattr(state_machine, "create_workflow", broken_insert)

        with pytest.raises(InternalError) as exc_info:
            await workflow_engine.create_project(
                _caller(manager), code="PRJ-002", name="Intranet", manager_id=manager.id
            )

        assert exc_info.value.status_code == 500


class TestGetWorkflow:
    """Test reading and lazily creating workflow rows."""

    @pytest.mark.asyncio
    async def test_lazily_creates_missing_row(
        self,
        workflow_engine: ProjectWorkflowEngine,
        session_factory,
        manager: User,
    ) -> None:
        """A project without a workflow row gets one at RECEIVED."""
        async with session_factory() as session:
            async with session.begin():
                legacy = await create_project(
                    session, code="OLD-1", name="Legacy", manager_id=manager.id
                )

        first = await workflow_engine.get_workflow(legacy.id)
        second = await workflow_engine.get_workflow(legacy.id)

        assert first.current_status == WorkflowStatus.RECEIVED
        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_unknown_project(self, workflow_engine: ProjectWorkflowEngine) -> None:
        """Unknown project IDs are rejected as not found."""
        with pytest.raises(NotFoundError):
            await workflow_engine.get_workflow(uuid.uuid4())


class TestLifecycle:
    """Test the four-phase lifecycle end to end."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(
        self,
        workflow_engine: ProjectWorkflowEngine,
        project: Project,
        session_factory,
        manager: User,
        implementer: User,
    ) -> None:
        """Walk RECEIVED to SENT_TO_CUSTOMER checking the mirror each step."""
        worker = _caller(implementer)

        workflow = await workflow_engine.confirm_received(worker, project.id)
        assert workflow.current_status == WorkflowStatus.IN_PROGRESS
        assert workflow.received_confirmed_at is not None
        assert workflow.in_progress_start_at is not None
        assert await _mirror(session_factory, project.id) == (ProjectStatus.IN_PROGRESS, 0)

        workflow = await workflow_engine.confirm_in_progress(worker, project.id)
        assert workflow.current_status == WorkflowStatus.COMPLETED
        assert workflow.in_progress_confirmed_at is not None
        assert workflow.completed_start_at is not None
        assert await _mirror(session_factory, project.id) == (ProjectStatus.PENDING_APPROVAL, 100)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await workflow_engine.confirm_sent_to_customer(worker, project.id)
        assert exc_info.value.code == "approval_required"

        workflow = await workflow_engine.approve_completed(_caller(manager), project.id)
        assert workflow.current_status == WorkflowStatus.COMPLETED
        assert workflow.completed_approved_at is not None
        assert workflow.completed_approved_by_id == manager.id
        assert await _mirror(session_factory, project.id) == (ProjectStatus.COMPLETED, 100)

        workflow = await workflow_engine.confirm_sent_to_customer(worker, project.id)
        assert workflow.current_status == WorkflowStatus.SENT_TO_CUSTOMER
        assert workflow.completed_confirmed_at is not None
        assert workflow.sent_to_customer_at is not None
        assert await _mirror(session_factory, project.id) == (ProjectStatus.COMPLETED, 100)

        async with session_factory() as session:
            activities = await list_activities(session, project.id)
        fields = [(item.field_name, item.old_value, item.new_value) for item in activities[1:]]
        assert fields == [
            ("workflowStatus", "RECEIVED", "IN_PROGRESS"),
            ("workflowStatus", "IN_PROGRESS", "COMPLETED"),
            ("workflowApproval", "pending", "approved"),
            ("workflowStatus", "COMPLETED", "SENT_TO_CUSTOMER"),
        ]

    @pytest.mark.asyncio
    async def test_terminal_state_rejects_everything(
        self,
        workflow_engine: ProjectWorkflowEngine,
        project: Project,
        manager: User,
    ) -> None:
        """Nothing leaves SENT_TO_CUSTOMER."""
        caller = _caller(manager)
        await workflow_engine.confirm_received(caller, project.id)
        await workflow_engine.confirm_in_progress(caller, project.id)
        await workflow_engine.approve_completed(caller, project.id)
        await workflow_engine.confirm_sent_to_customer(caller, project.id)

        for operation in (
            workflow_engine.confirm_received,
            workflow_engine.confirm_in_progress,
            workflow_engine.confirm_sent_to_customer,
        ):
            with pytest.raises(InvalidTransitionError):
                await operation(caller, project.id)

    @pytest.mark.asyncio
    async def test_repeated_transition_is_rejected(
        self,
        workflow_engine: ProjectWorkflowEngine,
        project: Project,
        session_factory,
        implementer: User,
    ) -> None:
        """A second identical call fails and leaves the first result intact."""
        worker = _caller(implementer)
        await workflow_engine.confirm_received(worker, project.id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await workflow_engine.confirm_received(worker, project.id)

        assert exc_info.value.details == {"expected": "RECEIVED", "actual": "IN_PROGRESS"}
        workflow = await workflow_engine.get_workflow(project.id)
        assert workflow.current_status == WorkflowStatus.IN_PROGRESS
        assert len(await _events(session_factory, "WORKFLOW_STATUS")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_transition_has_one_winner(
        self,
        workflow_engine: ProjectWorkflowEngine,
        project: Project,
        session_factory,
        implementer: User,
        manager: User,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A call whose guarded write loses gets the normal rejection.

        The competing call runs to completion after the loser has read the
        row as RECEIVED and before its guarded UPDATE.
        """
        guarded_update = state_machine.transition_workflow
        raced = False

        async def racing_update(session, project_id, **kwargs):
            nonlocal raced
            if not raced:
                raced = True
                await workflow_engine.confirm_received(_caller(manager), project_id)
            return await guarded_update(session, project_id, **kwargs)

        monkeypatch.setattr(state_machine, "transition_workflow", racing_update)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await workflow_engine.confirm_received(_caller(implementer), project.id)

        assert raced
        assert exc_info.value.details == {"expected": "RECEIVED", "actual": "IN_PROGRESS"}
        [event] = await _events(session_factory, "WORKFLOW_STATUS")
        assert event.actor_id == manager.id
        async with session_factory() as session:
            activities = await list_activities(session, project.id)
        assert [item.user_id for item in activities if item.field_name == "workflowStatus"] == [
            manager.id
        ]
        assert await _mirror(session_factory, project.id) == (ProjectStatus.IN_PROGRESS, 0)

    @pytest.mark.asyncio
    async def test_skipping_a_phase_is_rejected(
        self,
        workflow_engine: ProjectWorkflowEngine,
        project: Project,
        manager: User,
    ) -> None:
        """RECEIVED cannot jump to COMPLETED or be approved."""
        caller = _caller(manager)
        with pytest.raises(InvalidTransitionError):
            await workflow_engine.confirm_in_progress(caller, project.id)
        with pytest.raises(InvalidTransitionError):
            await workflow_engine.approve_completed(caller, project.id)

    @pytest.mark.asyncio
    async def test_transition_table_is_enforced(
        self,
        workflow_engine: ProjectWorkflowEngine,
        project: Project,
        session_factory,
        implementer: User,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Status changes follow VALID_TRANSITIONS."""
        monkeypatch.setitem(state_machine.VALID_TRANSITIONS, WorkflowStatus.RECEIVED, set())

        with pytest.raises(InvalidTransitionError):
            await workflow_engine.confirm_received(_caller(implementer), project.id)

        workflow = await workflow_engine.get_workflow(project.id)
        assert workflow.current_status == WorkflowStatus.RECEIVED
        assert await _events(session_factory, "WORKFLOW_STATUS") == []

    @pytest.mark.asyncio
    async def test_unknown_project_transition(
        self,
        workflow_engine: ProjectWorkflowEngine,
        manager: User,
    ) -> None:
        """Transitions on an unknown project are rejected as not found."""
        with pytest.raises(NotFoundError):
            await workflow_engine.confirm_received(_caller(manager), uuid.uuid4())


class TestApprovalGate:
    """Test who may approve and what approval notifies."""

    @pytest_asyncio.fixture
    async def completed_project(
        self,
        workflow_engine: ProjectWorkflowEngine,
        project: Project,
        implementer: User,
    ) -> Project:
        worker = _caller(implementer)
        await workflow_engine.confirm_received(worker, project.id)
        await workflow_engine.confirm_in_progress(worker, project.id)
        return project

    @pytest.mark.asyncio
    async def test_implementer_cannot_approve(
        self,
        workflow_engine: ProjectWorkflowEngine,
        completed_project: Project,
        session_factory,
        implementer: User,
    ) -> None:
        """Only the manager, creator or an ADMIN may approve."""
        with pytest.raises(ForbiddenError):
            await workflow_engine.approve_completed(_caller(implementer), completed_project.id)

        workflow = await workflow_engine.get_workflow(completed_project.id)
        assert workflow.completed_approved_at is None
        assert await _mirror(session_factory, completed_project.id) == (
            ProjectStatus.PENDING_APPROVAL,
            100,
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("approver", ["manager", "creator", "admin"])
    async def test_allowed_approvers(
        self,
        workflow_engine: ProjectWorkflowEngine,
        completed_project: Project,
        manager: User,
        creator: User,
        admin: User,
        approver: str,
    ) -> None:
        """Manager, creator and platform ADMIN can all approve."""
        user = {"manager": manager, "creator": creator, "admin": admin}[approver]

        workflow = await workflow_engine.approve_completed(_caller(user), completed_project.id)

        assert workflow.completed_approved_by_id == user.id

    @pytest.mark.asyncio
    async def test_second_approval_is_already_done(
        self,
        workflow_engine: ProjectWorkflowEngine,
        completed_project: Project,
        manager: User,
        creator: User,
    ) -> None:
        """Approving twice is rejected and keeps the first approver."""
        await workflow_engine.approve_completed(_caller(manager), completed_project.id)

        with pytest.raises(AlreadyDoneError):
            await workflow_engine.approve_completed(_caller(creator), completed_project.id)

        workflow = await workflow_engine.get_workflow(completed_project.id)
        assert workflow.completed_approved_by_id == manager.id

    @pytest.mark.asyncio
    async def test_approval_notifies_approvers_only(
        self,
        workflow_engine: ProjectWorkflowEngine,
        completed_project: Project,
        session_factory,
        manager: User,
        creator: User,
    ) -> None:
        """Approval events go to manager and creator, minus the actor."""
        await workflow_engine.approve_completed(_caller(manager), completed_project.id)

        [event] = await _events(session_factory, "WORKFLOW_APPROVAL")
        assert event.recipient_ids == [str(creator.id)]
