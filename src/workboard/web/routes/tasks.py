"""Task-system hook: mirror a new task as a card on its project board."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi import status as http_status

from workboard.auth import CallerIdentity
from workboard.kanban.provisioning import BoardProvisioner
from workboard.logging import get_logger
from workboard.web.dependencies import get_caller, get_provisioner
from workboard.web.schemas import CardResponse, TaskCardCreate, TaskCardResponse

logger = get_logger(__name__)


def create_tasks_router() -> APIRouter:
    """Create tasks router.

    Routes:
        POST /tasks/cards - Create the Kanban card for a task
    """
    router = APIRouter(prefix="/tasks", tags=["tasks"])

    @router.post(
        "/cards",
        response_model=TaskCardResponse,
        status_code=http_status.HTTP_202_ACCEPTED,
    )
    async def create_task_card(
        body: TaskCardCreate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        provisioner: BoardProvisioner = Depends(get_provisioner),  # noqa: B008
    ) -> TaskCardResponse:
        """Create the card for a task.

        Card creation never fails the task system's request: when no card
        could be created the response says so with ``created: false``.
        """
        card = await provisioner.create_card_for_task(
            task_id=body.task_id,
            title=body.title,
            description=body.description,
            assignee_id=body.assignee_id,
            creator_id=body.creator_id,
            project_id=body.project_id,
            due_date=body.due_date,
        )
        if card is None:
            logger.warning("task_card_not_created", task_id=str(body.task_id))
            return TaskCardResponse(created=False)
        return TaskCardResponse(created=True, card=CardResponse.model_validate(card))

    return router
