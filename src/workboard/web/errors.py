"""Exception handlers mapping Workboard errors to HTTP responses.

Typed rejections become ``{"message": ..., "code": ...}`` with the error's
status code. Anything else is logged with its traceback and answered with
a generic 500 message.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from workboard.errors import WorkboardError
from workboard.logging import get_logger

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Lỗi máy chủ, vui lòng thử lại sau"


async def workboard_error_handler(request: Request, exc: WorkboardError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_rejected",
        path=request.url.path,
        status_code=exc.status_code,
        code=exc.code,
        **exc.details,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "code": exc.code},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_error",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"message": INTERNAL_ERROR_MESSAGE, "code": "internal_error"},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the exception handlers on an application."""
    app.add_exception_handler(WorkboardError, workboard_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
