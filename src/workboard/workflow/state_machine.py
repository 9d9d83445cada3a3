"""Project workflow state machine for Workboard.

This module implements the four-phase project lifecycle:

    RECEIVED -> IN_PROGRESS -> COMPLETED -> SENT_TO_CUSTOMER

with an approval sub-gate on COMPLETED. Leaving COMPLETED requires the
manager (or the project creator, or an ADMIN) to approve first.

Each transition runs in one transaction that writes the workflow row with a
compare-and-swap guard, the project status mirror, an audit entry and an
outbox event. Of two concurrent calls for the same transition only one
matches the guard; the other is rejected exactly as a late retry would be.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workboard.auth import CallerIdentity
from workboard.database.models.base import utcnow
from workboard.database.models.project import Project, ProjectStatus
from workboard.database.models.workflow import ProjectWorkflow, WorkflowStatus
from workboard.database.queries.activity import create_activity
from workboard.database.queries.project import (
    create_project,
    get_project,
    project_code_exists,
    update_project_mirror,
)
from workboard.database.queries.user import get_user_name
from workboard.database.queries.workflow import (
    create_workflow,
    get_workflow,
    transition_workflow,
)
from workboard.errors import (
    AlreadyDoneError,
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from workboard.notifications.fanout import NotificationFanout
from workboard.notifications.membership import project_approver_ids, project_member_ids

logger = structlog.get_logger(__name__)


# Authoritative state machine definition
VALID_TRANSITIONS: dict[WorkflowStatus, set[WorkflowStatus]] = {
    WorkflowStatus.RECEIVED: {WorkflowStatus.IN_PROGRESS},
    WorkflowStatus.IN_PROGRESS: {WorkflowStatus.COMPLETED},
    WorkflowStatus.COMPLETED: {WorkflowStatus.SENT_TO_CUSTOMER},
    WorkflowStatus.SENT_TO_CUSTOMER: set(),  # Terminal state
}

STATUS_LABELS: dict[WorkflowStatus, str] = {
    WorkflowStatus.RECEIVED: "Đã nhận thông tin",
    WorkflowStatus.IN_PROGRESS: "Đang thực hiện",
    WorkflowStatus.COMPLETED: "Đã hoàn thành",
    WorkflowStatus.SENT_TO_CUSTOMER: "Đã gửi khách hàng",
}

WORKFLOW_NOT_FOUND = "Không tìm thấy quy trình của dự án"
PROJECT_NOT_FOUND = "Không tìm thấy dự án"
APPROVAL_REQUIRED = 'Phải có quản lý dự án duyệt "Đã hoàn thành" trước khi gửi khách hàng'
APPROVE_FORBIDDEN = (
    "Chỉ quản lý dự án, người tạo dự án hoặc Admin mới có quyền duyệt hoàn thành"
)
ALREADY_APPROVED = "Dự án đã được duyệt hoàn thành rồi"
DUPLICATE_CODE = "Mã dự án đã tồn tại"
STORAGE_FAILURE = "Không thể lưu quy trình dự án"


def validate_transition(current: WorkflowStatus, target: WorkflowStatus) -> bool:
    """Validate if a workflow transition is allowed.

    Args:
        current: Current workflow status.
        target: Target workflow status.

    Returns:
        True if the transition is valid according to VALID_TRANSITIONS.
    """
    return target in VALID_TRANSITIONS.get(current, set())


def mirror_for(workflow: ProjectWorkflow) -> tuple[ProjectStatus, int]:
    """Project status and progress implied by a workflow row.

    COMPLETED maps to PENDING_APPROVAL until the approval gate flips.
    """
    status = workflow.current_status
    if status in (WorkflowStatus.RECEIVED, WorkflowStatus.IN_PROGRESS):
        return ProjectStatus.IN_PROGRESS, 0
    if status == WorkflowStatus.COMPLETED and workflow.completed_approved_at is None:
        return ProjectStatus.PENDING_APPROVAL, 100
    return ProjectStatus.COMPLETED, 100


def _wrong_state(expected: WorkflowStatus, workflow: ProjectWorkflow) -> InvalidTransitionError:
    return InvalidTransitionError(
        f'Dự án không ở trạng thái "{STATUS_LABELS[expected]}"',
        expected=expected.value,
        actual=workflow.current_status.value,
    )


@dataclass(frozen=True)
class _Transition:
    """One workflow operation.

    Attributes:
        name: Operation name used in logs.
        source: Status the workflow must be in.
        target: Status written on success (same as source for the approval).
        stamp_fields: Timestamp columns set to the transition time.
        action: Audit entry text.
        field_name: Audited field.
        old_value: Audited value before.
        new_value: Audited value after.
        recipients: Membership policy for the notification.
        event_type: Notification type.
        approval: This is the approval gate rather than a status change.
    """

    name: str
    source: WorkflowStatus
    target: WorkflowStatus
    stamp_fields: tuple[str, ...]
    action: str
    field_name: str
    old_value: str
    new_value: str
    recipients: Callable[[Project], list[uuid.UUID]] = field(default=project_member_ids)
    event_type: str = "WORKFLOW_STATUS"
    approval: bool = False


CONFIRM_RECEIVED = _Transition(
    name="confirm_received",
    source=WorkflowStatus.RECEIVED,
    target=WorkflowStatus.IN_PROGRESS,
    stamp_fields=("received_confirmed_at", "in_progress_start_at"),
    action='Xác nhận đã nhận thông tin - Chuyển sang trạng thái "Đang thực hiện"',
    field_name="workflowStatus",
    old_value="RECEIVED",
    new_value="IN_PROGRESS",
)

CONFIRM_IN_PROGRESS = _Transition(
    name="confirm_in_progress",
    source=WorkflowStatus.IN_PROGRESS,
    target=WorkflowStatus.COMPLETED,
    stamp_fields=("in_progress_confirmed_at", "completed_start_at"),
    action="Xác nhận hoàn thành công việc - Chờ PM duyệt",
    field_name="workflowStatus",
    old_value="IN_PROGRESS",
    new_value="COMPLETED",
)

APPROVE_COMPLETED = _Transition(
    name="approve_completed",
    source=WorkflowStatus.COMPLETED,
    target=WorkflowStatus.COMPLETED,
    stamp_fields=("completed_approved_at",),
    action="PM duyệt hoàn thành - Có thể gửi khách hàng",
    field_name="workflowApproval",
    old_value="pending",
    new_value="approved",
    recipients=project_approver_ids,
    event_type="WORKFLOW_APPROVAL",
    approval=True,
)

CONFIRM_SENT_TO_CUSTOMER = _Transition(
    name="confirm_sent_to_customer",
    source=WorkflowStatus.COMPLETED,
    target=WorkflowStatus.SENT_TO_CUSTOMER,
    stamp_fields=("completed_confirmed_at", "sent_to_customer_at"),
    action="Xác nhận đã gửi khách hàng - Hoàn tất dự án",
    field_name="workflowStatus",
    old_value="COMPLETED",
    new_value="SENT_TO_CUSTOMER",
)


class ProjectWorkflowEngine:
    """Runs workflow transitions and keeps the project mirror in step.

    This class handles:
    - Lazy creation of the workflow row on first read
    - Precondition checks with typed rejections
    - Guarded writes of the workflow row and the project mirror
    - Audit entries and notification fan-out for every transition
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fanout: NotificationFanout,
    ) -> None:
        """Initialize the workflow engine.

        Args:
            session_factory: Factory producing one session per operation.
            fanout: Notification fan-out shared with the board service.
        """
        self.session_factory = session_factory
        self.fanout = fanout
        self.logger = logger.bind(component="ProjectWorkflowEngine")

    async def create_project(
        self,
        caller: CallerIdentity,
        code: str,
        name: str,
        manager_id: uuid.UUID,
        description: str | None = None,
        implementer_ids: list[uuid.UUID] | None = None,
        follower_ids: list[uuid.UUID] | None = None,
        cooperator_ids: list[uuid.UUID] | None = None,
    ) -> tuple[Project, ProjectWorkflow]:
        """Create a project together with its RECEIVED workflow row.

        Members other than the caller are notified of the assignment.

        Returns:
            Tuple of the new project and its workflow row.

        Raises:
            ValidationError: If another project already uses ``code``.
            InternalError: If the insert failed for any other constraint.
        """
        try:
            project, workflow, event_id = await self._insert_project(
                caller,
                code=code,
                name=name,
                manager_id=manager_id,
                description=description,
                implementer_ids=implementer_ids or (),
                follower_ids=follower_ids or (),
                cooperator_ids=cooperator_ids or (),
            )
        except IntegrityError as exc:
            # Another request took the code between the check and the insert
            async with self.session_factory() as session:
                taken = await project_code_exists(session, code)
            if taken:
                raise ValidationError(
                    DUPLICATE_CODE, code="duplicate_code", project_code=code
                ) from exc
            self.logger.error("project_insert_failed", code=code, error=str(exc))
            raise InternalError(STORAGE_FAILURE, project_code=code) from exc

        await self.fanout.deliver([event_id])
        return project, workflow

    async def _insert_project(
        self,
        caller: CallerIdentity,
        code: str,
        name: str,
        manager_id: uuid.UUID,
        description: str | None,
        implementer_ids: Iterable[uuid.UUID],
        follower_ids: Iterable[uuid.UUID],
        cooperator_ids: Iterable[uuid.UUID],
    ) -> tuple[Project, ProjectWorkflow, uuid.UUID | None]:
        async with self.session_factory() as session:
            async with session.begin():
                if await project_code_exists(session, code):
                    raise ValidationError(DUPLICATE_CODE, code="duplicate_code", project_code=code)
                project = await create_project(
                    session,
                    code=code,
                    name=name,
                    manager_id=manager_id,
                    created_by_id=caller.user_id,
                    description=description,
                    implementer_ids=implementer_ids,
                    follower_ids=follower_ids,
                    cooperator_ids=cooperator_ids,
                )
                workflow = await create_workflow(session, project.id, utcnow())
                await create_activity(session, project.id, caller.user_id, "Tạo dự án")
                actor_name = await get_user_name(session, caller.user_id)
                event_id = await self.fanout.enqueue(
                    session,
                    recipients=project_member_ids(project),
                    actor_id=caller.user_id,
                    event_type="PROJECT_ASSIGNED",
                    title=f"{project.code} - {project.name}",
                    message=f"{actor_name} đã thêm bạn vào dự án {project.name}",
                    project_id=project.id,
                )
        return project, workflow, event_id

    async def get_workflow(self, project_id: uuid.UUID) -> ProjectWorkflow:
        """Return a project's workflow row, creating it at RECEIVED if missing.

        Raises:
            NotFoundError: If the project does not exist.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    if await get_project(session, project_id) is None:
                        raise NotFoundError("Project", project_id, PROJECT_NOT_FOUND)
                    workflow = await get_workflow(session, project_id)
                    if workflow is None:
                        workflow = await create_workflow(session, project_id, utcnow())
                        self.logger.info("workflow_lazily_created", project_id=str(project_id))
                    return workflow
        except IntegrityError as exc:
            # Lost the lazy-creation race; the winner's row is there now
            async with self.session_factory() as session:
                workflow = await get_workflow(session, project_id)
            if workflow is None:
                raise InternalError(STORAGE_FAILURE, project_id=str(project_id)) from exc
            return workflow

    async def confirm_received(
        self, caller: CallerIdentity, project_id: uuid.UUID
    ) -> ProjectWorkflow:
        """RECEIVED -> IN_PROGRESS."""
        return await self._apply(caller, project_id, CONFIRM_RECEIVED)

    async def confirm_in_progress(
        self, caller: CallerIdentity, project_id: uuid.UUID
    ) -> ProjectWorkflow:
        """IN_PROGRESS -> COMPLETED; the project mirror becomes PENDING_APPROVAL."""
        return await self._apply(caller, project_id, CONFIRM_IN_PROGRESS)

    async def approve_completed(
        self, caller: CallerIdentity, project_id: uuid.UUID
    ) -> ProjectWorkflow:
        """Flip the approval gate on a COMPLETED workflow.

        Only the manager, the project creator, or an ADMIN may approve.
        Notifies the manager and the creator.
        """
        return await self._apply(caller, project_id, APPROVE_COMPLETED)

    async def confirm_sent_to_customer(
        self, caller: CallerIdentity, project_id: uuid.UUID
    ) -> ProjectWorkflow:
        """COMPLETED -> SENT_TO_CUSTOMER, allowed only once approved."""
        return await self._apply(caller, project_id, CONFIRM_SENT_TO_CUSTOMER)

    def _check(
        self,
        transition: _Transition,
        workflow: ProjectWorkflow,
        project: Project,
        caller: CallerIdentity,
    ) -> None:
        """Raise the rejection for the first precondition that fails."""
        if transition.approval:
            allowed = caller.is_admin or caller.user_id in (
                project.manager_id,
                project.created_by_id,
            )
            if not allowed:
                raise ForbiddenError(APPROVE_FORBIDDEN)

        if transition.approval:
            in_state = workflow.current_status == transition.source
        else:
            in_state = validate_transition(workflow.current_status, transition.target)
        if not in_state:
            raise _wrong_state(transition.source, workflow)

        if transition.approval and workflow.completed_approved_at is not None:
            raise AlreadyDoneError(ALREADY_APPROVED)

        if transition.target == WorkflowStatus.SENT_TO_CUSTOMER:
            if workflow.completed_approved_at is None:
                raise InvalidTransitionError(
                    APPROVAL_REQUIRED,
                    expected="approved",
                    actual="pending",
                    code="approval_required",
                )

    async def _apply(
        self,
        caller: CallerIdentity,
        project_id: uuid.UUID,
        transition: _Transition,
    ) -> ProjectWorkflow:
        async with self.session_factory() as session:
            async with session.begin():
                project = await get_project(session, project_id)
                if project is None:
                    raise NotFoundError("Project", project_id, PROJECT_NOT_FOUND)
                workflow = await get_workflow(session, project_id)
                if workflow is None:
                    raise NotFoundError("Workflow", project_id, WORKFLOW_NOT_FOUND)

                self._check(transition, workflow, project, caller)

                now = utcnow()
                values: dict[str, Any] = {name: now for name in transition.stamp_fields}
                values["current_status"] = transition.target
                if transition.approval:
                    values["completed_approved_by_id"] = caller.user_id

                updated = await transition_workflow(
                    session,
                    project_id,
                    expected_status=transition.source,
                    require_unapproved=transition.approval,
                    require_approved=transition.target == WorkflowStatus.SENT_TO_CUSTOMER,
                    **values,
                )
                if updated is None:
                    # A concurrent call won; reject against the state it left
                    current = await get_workflow(session, project_id)
                    self._check(transition, current, project, caller)
                    raise ConflictError("Quy trình dự án vừa được cập nhật, vui lòng thử lại")

                status, progress = mirror_for(updated)
                await update_project_mirror(session, project_id, status, progress)
                await create_activity(
                    session,
                    project_id,
                    caller.user_id,
                    transition.action,
                    field_name=transition.field_name,
                    old_value=transition.old_value,
                    new_value=transition.new_value,
                )

                event_id = await self._enqueue(session, caller, project, transition)

        self.logger.info(
            "workflow_transition",
            project_id=str(project_id),
            operation=transition.name,
            from_status=transition.source.value,
            to_status=updated.current_status.value,
            approved=updated.completed_approved_at is not None,
            mirror_status=status.value,
            progress=progress,
        )

        await self.fanout.deliver([event_id])
        return updated

    async def _enqueue(
        self,
        session: AsyncSession,
        caller: CallerIdentity,
        project: Project,
        transition: _Transition,
    ) -> uuid.UUID | None:
        actor_name = await get_user_name(session, caller.user_id)
        if transition.approval:
            message = f"{actor_name} đã duyệt hoàn thành dự án {project.name}"
        else:
            label = STATUS_LABELS[transition.target]
            message = f'{actor_name} đã chuyển dự án {project.name} sang "{label}"'

        return await self.fanout.enqueue(
            session,
            recipients=transition.recipients(project),
            actor_id=caller.user_id,
            event_type=transition.event_type,
            title=f"{project.code} - {project.name}",
            message=message,
            project_id=project.id,
            payload={"workflowStatus": transition.target.value},
        )
