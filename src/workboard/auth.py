"""Caller identity passed explicitly through every core operation.

Authentication is handled by an external gateway. Each request builds one
CallerIdentity value from the headers the gateway sets; the value is
immutable and discarded with the request.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass


class UserRole(str, enum.Enum):
    """Platform-wide role of a user."""

    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    USER = "USER"


@dataclass(frozen=True)
class CallerIdentity:
    """The authenticated user performing an operation.

    Attributes:
        user_id: Identifier of the acting user.
        role: Platform role of the acting user.
    """

    user_id: uuid.UUID
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
