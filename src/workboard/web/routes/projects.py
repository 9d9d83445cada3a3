"""Project and workflow endpoints for Workboard.

This module provides REST API endpoints for:
- Creating projects (the workflow row is created eagerly at RECEIVED)
- Reading a project's workflow (created lazily if missing)
- The four workflow transitions
- Resolving a project's Kanban board (provisioned on first use)
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi import status as http_status

from workboard.auth import CallerIdentity
from workboard.errors import ForbiddenError, NotFoundError
from workboard.kanban.provisioning import BoardProvisioner
from workboard.kanban.service import ACCESS_DENIED, is_board_member
from workboard.logging import get_logger
from workboard.web.dependencies import get_caller, get_provisioner, get_workflow_engine
from workboard.web.schemas import (
    BoardResponse,
    ProjectCreate,
    ProjectResponse,
    ProjectWithWorkflowResponse,
    WorkflowResponse,
)
from workboard.workflow.state_machine import PROJECT_NOT_FOUND, ProjectWorkflowEngine

logger = get_logger(__name__)


def create_projects_router() -> APIRouter:
    """Create projects router.

    Routes:
        POST /projects/ - Create project with its workflow
        GET /projects/{project_id}/workflow - Get (or lazily create) workflow
        POST /projects/{project_id}/workflow/confirm-received
        POST /projects/{project_id}/workflow/confirm-in-progress
        POST /projects/{project_id}/workflow/approve-completed
        POST /projects/{project_id}/workflow/confirm-sent-to-customer
        GET /projects/{project_id}/board - Get (or provision) the project board
    """
    router = APIRouter(prefix="/projects", tags=["projects"])

    @router.post(
        "/",
        response_model=ProjectWithWorkflowResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def create_project(
        body: ProjectCreate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        engine: ProjectWorkflowEngine = Depends(get_workflow_engine),  # noqa: B008
    ) -> ProjectWithWorkflowResponse:
        project, workflow = await engine.create_project(
            caller,
            code=body.code,
            name=body.name,
            manager_id=body.manager_id,
            description=body.description,
            implementer_ids=body.implementer_ids,
            follower_ids=body.follower_ids,
            cooperator_ids=body.cooperator_ids,
        )
        return ProjectWithWorkflowResponse(
            project=ProjectResponse.model_validate(project),
            workflow=WorkflowResponse.model_validate(workflow),
        )

    @router.get("/{project_id}/workflow", response_model=WorkflowResponse)
    async def get_workflow(
        project_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        engine: ProjectWorkflowEngine = Depends(get_workflow_engine),  # noqa: B008
    ) -> WorkflowResponse:
        workflow = await engine.get_workflow(project_id)
        return WorkflowResponse.model_validate(workflow)

    @router.post("/{project_id}/workflow/confirm-received", response_model=WorkflowResponse)
    async def confirm_received(
        project_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        engine: ProjectWorkflowEngine = Depends(get_workflow_engine),  # noqa: B008
    ) -> WorkflowResponse:
        workflow = await engine.confirm_received(caller, project_id)
        return WorkflowResponse.model_validate(workflow)

    @router.post("/{project_id}/workflow/confirm-in-progress", response_model=WorkflowResponse)
    async def confirm_in_progress(
        project_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        engine: ProjectWorkflowEngine = Depends(get_workflow_engine),  # noqa: B008
    ) -> WorkflowResponse:
        workflow = await engine.confirm_in_progress(caller, project_id)
        return WorkflowResponse.model_validate(workflow)

    @router.post("/{project_id}/workflow/approve-completed", response_model=WorkflowResponse)
    async def approve_completed(
        project_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        engine: ProjectWorkflowEngine = Depends(get_workflow_engine),  # noqa: B008
    ) -> WorkflowResponse:
        workflow = await engine.approve_completed(caller, project_id)
        return WorkflowResponse.model_validate(workflow)

    @router.post(
        "/{project_id}/workflow/confirm-sent-to-customer",
        response_model=WorkflowResponse,
    )
    async def confirm_sent_to_customer(
        project_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        engine: ProjectWorkflowEngine = Depends(get_workflow_engine),  # noqa: B008
    ) -> WorkflowResponse:
        workflow = await engine.confirm_sent_to_customer(caller, project_id)
        return WorkflowResponse.model_validate(workflow)

    @router.get("/{project_id}/board", response_model=BoardResponse)
    async def get_project_board(
        project_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        provisioner: BoardProvisioner = Depends(get_provisioner),  # noqa: B008
    ) -> BoardResponse:
        """Resolve the project's board, provisioning it on first use.

        Board members and platform admins may read it.
        """
        board = await provisioner.get_or_create_project_board(project_id)
        if board is None:
            raise NotFoundError("Project", project_id, PROJECT_NOT_FOUND)
        if not (caller.is_admin or is_board_member(board, caller.user_id)):
            raise ForbiddenError(ACCESS_DENIED)
        return BoardResponse.model_validate(board)

    return router
