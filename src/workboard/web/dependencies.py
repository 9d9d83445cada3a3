"""FastAPI dependencies for Workboard routes.

Services live in ``app.state`` (created by the application lifespan);
the caller identity is built per request from the gateway headers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import Request

from workboard.auth import CallerIdentity, UserRole
from workboard.errors import ForbiddenError
from workboard.logging import bind_caller_context

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from workboard.kanban.provisioning import BoardProvisioner
    from workboard.kanban.service import BoardService
    from workboard.storage.local_provider import LocalStorageProvider
    from workboard.workflow.state_machine import ProjectWorkflowEngine

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"

UNAUTHENTICATED = "Bạn cần đăng nhập để thực hiện thao tác này"


async def get_caller(request: Request) -> CallerIdentity:
    """Build the caller identity from the headers set by the auth gateway.

    Raises:
        ForbiddenError: If the user header is missing or malformed.
    """
    raw_user_id = request.headers.get(USER_ID_HEADER)
    if not raw_user_id:
        raise ForbiddenError(UNAUTHENTICATED, code="unauthenticated")
    try:
        user_id = UUID(raw_user_id)
    except ValueError:
        raise ForbiddenError(UNAUTHENTICATED, code="unauthenticated") from None

    raw_role = (request.headers.get(USER_ROLE_HEADER) or UserRole.USER.value).upper()
    try:
        role = UserRole(raw_role)
    except ValueError:
        role = UserRole.USER

    caller = CallerIdentity(user_id=user_id, role=role)
    bind_caller_context(user_id=str(caller.user_id), role=caller.role.value)
    return caller


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Dependency that retrieves session factory from app state."""
    return request.app.state.session_factory  # type: ignore[no-any-return]


def get_workflow_engine(request: Request) -> ProjectWorkflowEngine:
    return request.app.state.workflow_engine  # type: ignore[no-any-return]


def get_board_service(request: Request) -> BoardService:
    return request.app.state.board_service  # type: ignore[no-any-return]


def get_provisioner(request: Request) -> BoardProvisioner:
    return request.app.state.provisioner  # type: ignore[no-any-return]


def get_storage(request: Request) -> LocalStorageProvider:
    return request.app.state.storage  # type: ignore[no-any-return]
