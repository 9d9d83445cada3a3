"""Board, member, label and list endpoints for Workboard.

Every handler resolves the caller from the gateway headers and delegates
to BoardService; rejections are mapped to responses by the application's
exception handlers.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response
from fastapi import status as http_status

from workboard.auth import CallerIdentity
from workboard.kanban.service import BoardService, BoardSnapshot
from workboard.logging import get_logger
from workboard.web.dependencies import get_board_service, get_caller
from workboard.web.schemas import (
    BoardCreate,
    BoardDetailResponse,
    BoardListResponse,
    BoardResponse,
    BoardUpdate,
    CardResponse,
    LabelCreate,
    LabelResponse,
    ListCreate,
    ListResponse,
    ListUpdate,
    MemberResponse,
    MembersAdd,
    ReorderRequest,
)

logger = get_logger(__name__)


def _board_detail(snapshot: BoardSnapshot) -> BoardDetailResponse:
    lists = [
        BoardListResponse(
            id=item.id,
            board_id=item.board_id,
            title=item.title,
            position=item.position,
            cards=[CardResponse.model_validate(card) for card in snapshot.cards.get(item.id, [])],
        )
        for item in snapshot.lists
    ]
    return BoardDetailResponse(
        board=BoardResponse.model_validate(snapshot.board),
        labels=[LabelResponse.model_validate(label) for label in snapshot.labels],
        lists=lists,
    )


def create_boards_router() -> APIRouter:
    """Create boards router.

    Routes:
        POST /boards/ - Create board with the canonical lists
        GET /boards/{board_id} - Board with labels, lists and cards
        PATCH /boards/{board_id} - Update title, description, background
        DELETE /boards/{board_id} - Delete board (owner only)
        POST /boards/{board_id}/members - Invite members
        DELETE /boards/{board_id}/members/{user_id} - Remove member
        POST /boards/{board_id}/labels - Create label
        DELETE /labels/{label_id} - Delete label
        POST /boards/{board_id}/lists - Append list
        PUT /boards/{board_id}/lists/order - Reorder lists
        PATCH /lists/{list_id} - Rename list
        DELETE /lists/{list_id} - Delete list
    """
    router = APIRouter(tags=["boards"])

    @router.post(
        "/boards/",
        response_model=BoardResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def create_board(
        body: BoardCreate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> BoardResponse:
        board = await service.create_board(
            caller,
            title=body.title,
            description=body.description,
            background=body.background,
        )
        return BoardResponse.model_validate(board)

    @router.get("/boards/{board_id}", response_model=BoardDetailResponse)
    async def get_board(
        board_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> BoardDetailResponse:
        return _board_detail(await service.get_board(caller, board_id))

    @router.patch("/boards/{board_id}", response_model=BoardResponse)
    async def update_board(
        board_id: UUID,
        body: BoardUpdate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> BoardResponse:
        board = await service.update_board(caller, board_id, **body.model_dump(exclude_unset=True))
        return BoardResponse.model_validate(board)

    @router.delete("/boards/{board_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_board(
        board_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> Response:
        await service.delete_board(caller, board_id)
        return Response(status_code=http_status.HTTP_204_NO_CONTENT)

    @router.post("/boards/{board_id}/members", response_model=list[MemberResponse])
    async def add_members(
        board_id: UUID,
        body: MembersAdd,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> list[MemberResponse]:
        members = await service.add_members(caller, board_id, body.user_ids)
        return [MemberResponse.model_validate(member) for member in members]

    @router.delete(
        "/boards/{board_id}/members/{user_id}",
        status_code=http_status.HTTP_204_NO_CONTENT,
    )
    async def remove_member(
        board_id: UUID,
        user_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> Response:
        await service.remove_member(caller, board_id, user_id)
        return Response(status_code=http_status.HTTP_204_NO_CONTENT)

    @router.post(
        "/boards/{board_id}/labels",
        response_model=LabelResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def create_label(
        board_id: UUID,
        body: LabelCreate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> LabelResponse:
        label = await service.create_label(caller, board_id, name=body.name, color=body.color)
        return LabelResponse.model_validate(label)

    @router.delete("/labels/{label_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_label(
        label_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> Response:
        await service.delete_label(caller, label_id)
        return Response(status_code=http_status.HTTP_204_NO_CONTENT)

    @router.post(
        "/boards/{board_id}/lists",
        response_model=ListResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def create_list(
        board_id: UUID,
        body: ListCreate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> ListResponse:
        kanban_list = await service.create_list(caller, board_id, body.title)
        return ListResponse.model_validate(kanban_list)

    @router.put("/boards/{board_id}/lists/order", response_model=list[ListResponse])
    async def reorder_lists(
        board_id: UUID,
        body: ReorderRequest,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> list[ListResponse]:
        lists = await service.reorder_lists(caller, board_id, body.ids)
        return [ListResponse.model_validate(item) for item in lists]

    @router.patch("/lists/{list_id}", response_model=ListResponse)
    async def update_list(
        list_id: UUID,
        body: ListUpdate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> ListResponse:
        kanban_list = await service.update_list(caller, list_id, body.title)
        return ListResponse.model_validate(kanban_list)

    @router.delete("/lists/{list_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_list(
        list_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> Response:
        await service.delete_list(caller, list_id)
        return Response(status_code=http_status.HTTP_204_NO_CONTENT)

    return router
