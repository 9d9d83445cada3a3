"""Exception hierarchy for Workboard core operations.

Every rejection raised by the workflow engine, the board service, or the
provisioning layer is a WorkboardError subclass carrying an HTTP-style
status code, a machine-readable reason code, and a localized message.
The web layer maps these to responses with a single exception handler.
"""

from __future__ import annotations

from typing import Any


class WorkboardError(Exception):
    """Base class for typed rejections.

    Attributes:
        status_code: HTTP-style status class for the rejection.
        code: Machine-readable reason, stable across locales.
        message: Localized message safe to show to the caller.
        details: Structured context for logs (never rendered to callers).
    """

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, code: str | None = None, **details: Any) -> None:
        self.message = message
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(message)


class NotFoundError(WorkboardError):
    """A workflow, board, list, card, or project does not exist.

    Args:
        resource: Entity name (e.g. "Board", "Workflow").
        resource_id: The identifier that was looked up.
        message: Localized message; defaults to "<resource> not found".
    """

    status_code = 404
    code = "not_found"

    def __init__(
        self,
        resource: str,
        resource_id: Any = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            message or f"{resource} not found",
            resource=resource,
            resource_id=str(resource_id),
        )


class InvalidTransitionError(WorkboardError):
    """A state-machine precondition does not hold.

    Attributes:
        expected: The state the operation requires.
        actual: The state the record is actually in.
    """

    status_code = 400
    code = "invalid_transition"

    def __init__(
        self,
        message: str,
        expected: str,
        actual: str,
        code: str | None = None,
    ) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(message, code=code, expected=expected, actual=actual)


class ValidationError(WorkboardError):
    """Input was well-formed but violates a business rule."""

    status_code = 400
    code = "validation_error"


class ForbiddenError(WorkboardError):
    """The caller lacks the role or relationship required for a mutation."""

    status_code = 403
    code = "forbidden"


class AlreadyDoneError(WorkboardError):
    """An approval was attempted on a record that is already approved."""

    status_code = 400
    code = "already_done"


class ConflictError(WorkboardError):
    """A concurrent write invalidated the plan computed for this request."""

    status_code = 409
    code = "conflict"


class InternalError(WorkboardError):
    """Unexpected storage or database failure."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Lỗi máy chủ", **details: Any) -> None:
        super().__init__(message, **details)
