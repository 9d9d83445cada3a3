"""Request and response schemas for the Workboard HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from workboard.database.models.kanban import AttachmentSource, BoardRole
from workboard.database.models.project import ProjectStatus
from workboard.database.models.workflow import WorkflowStatus


# ---------------------------------------------------------------------------
# Projects and workflow
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    """Request schema for creating a project.

    Attributes:
        code: Unique short project code
        name: Human-readable project name
        manager_id: Project manager
        description: Optional description
        implementer_ids: Users doing the work
        follower_ids: Users following progress
        cooperator_ids: Users from other teams
    """

    code: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    manager_id: UUID
    description: str | None = None
    implementer_ids: list[UUID] = Field(default_factory=list)
    follower_ids: list[UUID] = Field(default_factory=list)
    cooperator_ids: list[UUID] = Field(default_factory=list)


class ProjectResponse(BaseModel):
    id: UUID
    code: str
    name: str
    description: str | None
    manager_id: UUID
    created_by_id: UUID | None
    status: ProjectStatus
    progress: int
    created_at: datetime

    model_config = {"from_attributes": True}


class WorkflowResponse(BaseModel):
    """Workflow row with its phase timestamps and approval fields."""

    id: UUID
    project_id: UUID
    current_status: WorkflowStatus
    received_start_at: datetime | None
    received_confirmed_at: datetime | None
    in_progress_start_at: datetime | None
    in_progress_confirmed_at: datetime | None
    completed_start_at: datetime | None
    completed_approved_at: datetime | None
    completed_approved_by_id: UUID | None
    completed_confirmed_at: datetime | None
    sent_to_customer_at: datetime | None

    model_config = {"from_attributes": True}


class ProjectWithWorkflowResponse(BaseModel):
    project: ProjectResponse
    workflow: WorkflowResponse


# ---------------------------------------------------------------------------
# Boards
# ---------------------------------------------------------------------------


class BoardCreate(BaseModel):
    title: str = Field(..., max_length=255)
    description: str | None = None
    background: str | None = Field(default=None, max_length=32)


class BoardUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    description: str | None = None
    background: str | None = Field(default=None, max_length=32)


class MemberResponse(BaseModel):
    user_id: UUID
    role: BoardRole

    model_config = {"from_attributes": True}


class MembersAdd(BaseModel):
    user_ids: list[UUID] = Field(..., min_length=1)


class LabelCreate(BaseModel):
    name: str | None = Field(default=None, max_length=64)
    color: str | None = Field(default=None, max_length=32)


class LabelResponse(BaseModel):
    id: UUID
    board_id: UUID
    name: str | None
    color: str

    model_config = {"from_attributes": True}


class BoardResponse(BaseModel):
    id: UUID
    title: str
    description: str | None
    background: str
    owner_id: UUID
    project_id: UUID | None
    is_project_board: bool
    members: list[MemberResponse]
    created_at: datetime

    model_config = {"from_attributes": True}


class ListCreate(BaseModel):
    title: str = Field(..., max_length=255)


class ListUpdate(BaseModel):
    title: str = Field(..., max_length=255)


class ListResponse(BaseModel):
    id: UUID
    board_id: UUID
    title: str
    position: int

    model_config = {"from_attributes": True}


class ReorderRequest(BaseModel):
    """Full ordered list of the container's member IDs."""

    ids: list[UUID]


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


class UserRef(BaseModel):
    id: UUID
    name: str

    model_config = {"from_attributes": True}


class CardCreate(BaseModel):
    list_id: UUID
    title: str = Field(..., max_length=500)
    description: str | None = None
    due_date: datetime | None = None
    assignee_ids: list[UUID] = Field(default_factory=list)
    label_ids: list[UUID] = Field(default_factory=list)


class CardUpdate(BaseModel):
    """Partial card update; only fields present in the body are changed."""

    title: str | None = Field(default=None, max_length=500)
    description: str | None = None
    due_date: datetime | None = None
    completed: bool | None = None
    assignee_ids: list[UUID] | None = None
    label_ids: list[UUID] | None = None


class CardMove(BaseModel):
    list_id: UUID
    position: int = 0


class CardResponse(BaseModel):
    id: UUID
    list_id: UUID
    title: str
    description: str | None
    position: int
    due_date: datetime | None
    completed: bool
    approved: bool
    approved_by_id: UUID | None
    approved_at: datetime | None
    creator_id: UUID | None
    task_id: UUID | None
    project_id: UUID | None
    assignees: list[UserRef]
    labels: list[LabelResponse]
    created_at: datetime

    model_config = {"from_attributes": True}


class BoardListResponse(ListResponse):
    cards: list[CardResponse]


class BoardDetailResponse(BaseModel):
    """A board with its labels and its lists, each carrying its cards."""

    board: BoardResponse
    labels: list[LabelResponse]
    lists: list[BoardListResponse]


class CommentCreate(BaseModel):
    content: str = Field(..., max_length=10000)


class CommentResponse(BaseModel):
    id: UUID
    card_id: UUID
    author_id: UUID
    content: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ChecklistCreate(BaseModel):
    title: str = Field(..., max_length=500)


class ChecklistUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=500)
    checked: bool | None = None


class ChecklistItemResponse(BaseModel):
    id: UUID
    card_id: UUID
    title: str
    checked: bool
    position: int

    model_config = {"from_attributes": True}


class ExternalAttachment(BaseModel):
    """A project-folder file or Google Drive file to attach by reference."""

    name: str = Field(..., min_length=1)
    mime_type: str = "application/octet-stream"
    size: int = Field(default=0, ge=0)
    storage_path: str = ""
    link: str | None = None


class AttachExisting(BaseModel):
    source: AttachmentSource
    files: list[ExternalAttachment] = Field(..., min_length=1)


class AttachmentResponse(BaseModel):
    id: UUID
    card_id: UUID
    uploaded_by_id: UUID
    file_name: str
    file_size: int
    mime_type: str
    source: AttachmentSource
    external_link: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class AttachmentUrlResponse(BaseModel):
    url: str
    is_external: bool


class CardDetailResponse(BaseModel):
    card: CardResponse
    board_id: UUID
    comments: list[CommentResponse]
    checklist: list[ChecklistItemResponse]
    attachments: list[AttachmentResponse]


# ---------------------------------------------------------------------------
# Task-system hook
# ---------------------------------------------------------------------------


class TaskCardCreate(BaseModel):
    """Card request sent by the task system when a task is created."""

    task_id: UUID
    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    assignee_id: UUID
    creator_id: UUID
    project_id: UUID
    due_date: datetime | None = None


class TaskCardResponse(BaseModel):
    created: bool
    card: CardResponse | None = None


class MessageResponse(BaseModel):
    message: str
    details: dict[str, Any] | None = None
