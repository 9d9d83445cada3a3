"""Card, comment, checklist and attachment endpoints for Workboard."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Response, UploadFile
from fastapi import status as http_status

from workboard.auth import CallerIdentity
from workboard.kanban.service import BoardService, ExternalFile, UploadedFile
from workboard.logging import get_logger
from workboard.web.dependencies import get_board_service, get_caller
from workboard.web.schemas import (
    AttachExisting,
    AttachmentResponse,
    AttachmentUrlResponse,
    CardCreate,
    CardDetailResponse,
    CardMove,
    CardResponse,
    CardUpdate,
    ChecklistCreate,
    ChecklistItemResponse,
    ChecklistUpdate,
    CommentCreate,
    CommentResponse,
    ReorderRequest,
)

logger = get_logger(__name__)


def create_cards_router() -> APIRouter:
    """Create cards router.

    Routes:
        POST /cards/ - Append card to a list
        GET /cards/{card_id} - Card with comments, checklist, attachments
        PATCH /cards/{card_id} - Update card fields
        DELETE /cards/{card_id} - Delete card
        POST /cards/{card_id}/move - Move card to a list at an index
        POST /cards/{card_id}/approve - Approve card for the terminal column
        PUT /lists/{list_id}/cards/order - Reorder a list's cards
        POST /cards/{card_id}/comments - Add comment
        DELETE /comments/{comment_id} - Delete comment (author only)
        POST /cards/{card_id}/checklist - Add checklist item
        PATCH /checklist/{item_id} - Rename or toggle checklist item
        DELETE /checklist/{item_id} - Delete checklist item
        POST /cards/{card_id}/attachments - Upload files
        POST /cards/{card_id}/attachments/existing - Attach folder or Drive files
        GET /attachments/{attachment_id}/url - Download URL
        DELETE /attachments/{attachment_id} - Delete attachment
    """
    router = APIRouter(tags=["cards"])

    @router.post(
        "/cards/",
        response_model=CardResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def create_card(
        body: CardCreate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> CardResponse:
        card = await service.create_card(
            caller,
            body.list_id,
            title=body.title,
            description=body.description,
            due_date=body.due_date,
            assignee_ids=body.assignee_ids,
            label_ids=body.label_ids,
        )
        return CardResponse.model_validate(card)

    @router.get("/cards/{card_id}", response_model=CardDetailResponse)
    async def get_card(
        card_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> CardDetailResponse:
        detail = await service.get_card(caller, card_id)
        return CardDetailResponse(
            card=CardResponse.model_validate(detail.card),
            board_id=detail.board_id,
            comments=[CommentResponse.model_validate(item) for item in detail.comments],
            checklist=[ChecklistItemResponse.model_validate(item) for item in detail.checklist],
            attachments=[AttachmentResponse.model_validate(item) for item in detail.attachments],
        )

    @router.patch("/cards/{card_id}", response_model=CardResponse)
    async def update_card(
        card_id: UUID,
        body: CardUpdate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> CardResponse:
        card = await service.update_card(caller, card_id, **body.model_dump(exclude_unset=True))
        return CardResponse.model_validate(card)

    @router.delete("/cards/{card_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_card(
        card_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> Response:
        await service.delete_card(caller, card_id)
        return Response(status_code=http_status.HTTP_204_NO_CONTENT)

    @router.post("/cards/{card_id}/move", response_model=CardResponse)
    async def move_card(
        card_id: UUID,
        body: CardMove,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> CardResponse:
        card = await service.move_card(caller, card_id, body.list_id, body.position)
        return CardResponse.model_validate(card)

    @router.post("/cards/{card_id}/approve", response_model=CardResponse)
    async def approve_card(
        card_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> CardResponse:
        card = await service.approve_card(caller, card_id)
        return CardResponse.model_validate(card)

    @router.put("/lists/{list_id}/cards/order", response_model=list[CardResponse])
    async def reorder_cards(
        list_id: UUID,
        body: ReorderRequest,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> list[CardResponse]:
        cards = await service.reorder_cards(caller, list_id, body.ids)
        return [CardResponse.model_validate(card) for card in cards]

    @router.post(
        "/cards/{card_id}/comments",
        response_model=CommentResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def add_comment(
        card_id: UUID,
        body: CommentCreate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> CommentResponse:
        comment = await service.add_comment(caller, card_id, body.content)
        return CommentResponse.model_validate(comment)

    @router.delete("/comments/{comment_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_comment(
        comment_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> Response:
        await service.delete_comment(caller, comment_id)
        return Response(status_code=http_status.HTTP_204_NO_CONTENT)

    @router.post(
        "/cards/{card_id}/checklist",
        response_model=ChecklistItemResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def add_checklist_item(
        card_id: UUID,
        body: ChecklistCreate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> ChecklistItemResponse:
        item = await service.add_checklist_item(caller, card_id, body.title)
        return ChecklistItemResponse.model_validate(item)

    @router.patch("/checklist/{item_id}", response_model=ChecklistItemResponse)
    async def update_checklist_item(
        item_id: UUID,
        body: ChecklistUpdate,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> ChecklistItemResponse:
        item = await service.update_checklist_item(
            caller, item_id, title=body.title, checked=body.checked
        )
        return ChecklistItemResponse.model_validate(item)

    @router.delete("/checklist/{item_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_checklist_item(
        item_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> Response:
        await service.delete_checklist_item(caller, item_id)
        return Response(status_code=http_status.HTTP_204_NO_CONTENT)

    @router.post(
        "/cards/{card_id}/attachments",
        response_model=list[AttachmentResponse],
        status_code=http_status.HTTP_201_CREATED,
    )
    async def upload_attachments(
        card_id: UUID,
        files: list[UploadFile] = File(...),  # noqa: B008
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> list[AttachmentResponse]:
        uploads = [
            UploadedFile(
                filename=upload.filename or "upload",
                data=await upload.read(),
                content_type=upload.content_type or "application/octet-stream",
            )
            for upload in files
        ]
        attachments = await service.upload_attachments(caller, card_id, uploads)
        return [AttachmentResponse.model_validate(item) for item in attachments]

    @router.post(
        "/cards/{card_id}/attachments/existing",
        response_model=list[AttachmentResponse],
        status_code=http_status.HTTP_201_CREATED,
    )
    async def attach_existing(
        card_id: UUID,
        body: AttachExisting,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> list[AttachmentResponse]:
        files = [ExternalFile(**item.model_dump()) for item in body.files]
        attachments = await service.attach_existing(caller, card_id, body.source, files)
        return [AttachmentResponse.model_validate(item) for item in attachments]

    @router.get("/attachments/{attachment_id}/url", response_model=AttachmentUrlResponse)
    async def attachment_url(
        attachment_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> AttachmentUrlResponse:
        link = await service.attachment_url(caller, attachment_id)
        return AttachmentUrlResponse(url=link.url, is_external=link.is_external)

    @router.delete("/attachments/{attachment_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_attachment(
        attachment_id: UUID,
        caller: CallerIdentity = Depends(get_caller),  # noqa: B008
        service: BoardService = Depends(get_board_service),  # noqa: B008
    ) -> Response:
        await service.delete_attachment(caller, attachment_id)
        return Response(status_code=http_status.HTTP_204_NO_CONTENT)

    return router
