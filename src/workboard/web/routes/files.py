"""Signed download endpoint for the local storage provider."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from workboard.errors import ForbiddenError, NotFoundError
from workboard.logging import get_logger
from workboard.storage.local_provider import LocalStorageProvider
from workboard.web.dependencies import get_storage

logger = get_logger(__name__)

LINK_EXPIRED = "Liên kết tải xuống không hợp lệ hoặc đã hết hạn"


def create_files_router() -> APIRouter:
    """Create files router.

    Routes:
        GET /files/{path} - Download a stored object with a presigned link
    """
    router = APIRouter(prefix="/files", tags=["files"])

    @router.get("/{path:path}")
    async def download(
        path: str,
        expires: int = Query(...),  # noqa: B008
        signature: str = Query(...),  # noqa: B008
        storage: LocalStorageProvider = Depends(get_storage),  # noqa: B008
    ) -> FileResponse:
        if not storage.verify(path, expires, signature):
            logger.warning("download_link_rejected", path=path)
            raise ForbiddenError(LINK_EXPIRED, code="invalid_signature")
        local_path = storage.open_path(path)
        if local_path is None:
            raise NotFoundError("File", path, "Không tìm thấy file")
        return FileResponse(local_path, filename=local_path.name)

    return router
