"""Project tracking routes.

Every hired job has a project: a stage pipeline, a timeline of events, a
chat thread and unread badges for both participants.
"""

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from homico.marketplace.tracking.models import (
    HistoryEvent,
    HistoryEventType,
    ProjectTracking,
    metadata_from_dict,
)

from ...auth import CurrentUser
from ...dependencies import Services
from ...logging_config import get_logger
from ...rate_limit import limiter

logger = get_logger("app.marketplace.projects")
router = APIRouter(prefix="/projects", tags=["marketplace", "projects"])


# =============================================================================
# Request/Response Models
# =============================================================================

ProjectStage = Literal["hired", "started", "in_progress", "review", "completed"]


class StageEntry(BaseModel):
    stage: ProjectStage
    entered_at: datetime
    exited_at: datetime | None = None
    changed_by: str | None = None
    note: str | None = None


class ProjectResponse(BaseModel):
    """Project tracking details, without timeline or chat."""

    id: str
    job_id: str
    client_id: str
    pro_id: str
    proposal_id: str | None = None
    current_stage: ProjectStage
    progress: int
    hired_at: datetime
    started_at: datetime | None = None
    expected_end_date: datetime | None = None
    completed_at: datetime | None = None
    client_confirmed_at: datetime | None = None
    agreed_price: float | None = None
    estimated_duration: int | None = None
    estimated_duration_unit: str | None = None
    stage_history: list[StageEntry]
    portfolio_images: list[str]
    portfolio_item_id: str | None = None

    @classmethod
    def from_tracking(cls, tracking: ProjectTracking) -> "ProjectResponse":
        return cls(**tracking.to_dict(include_children=False))


class ProjectListResponse(BaseModel):
    projects: list[ProjectResponse]
    total: int


class StageUpdate(BaseModel):
    stage: ProjectStage
    note: str | None = Field(None, max_length=1000)
    portfolio_images: list[str] | None = None


class ProgressUpdate(BaseModel):
    progress: int


class ExpectedEndDateUpdate(BaseModel):
    expected_end_date: datetime


class ConfirmResponse(BaseModel):
    project: ProjectResponse
    job_completed: bool
    portfolio_item_id: str | None = None


class HistoryEventCreate(BaseModel):
    event_type: HistoryEventType
    metadata: dict[str, Any] | None = None


class HistoryEventResponse(BaseModel):
    id: str
    event_type: str
    user_id: str
    user_role: str
    metadata: dict[str, Any] | None = None
    created_at: datetime

    @classmethod
    def from_event(cls, event: HistoryEvent) -> "HistoryEventResponse":
        return cls(**event.to_dict())


class HistoryResponse(BaseModel):
    events: list[HistoryEventResponse]
    total: int


class MessageCreate(BaseModel):
    content: str = Field("", max_length=5000)
    attachments: list[str] = Field(default_factory=list)


class MessageResponse(BaseModel):
    id: str
    sender_id: str
    sender_role: str
    content: str
    attachments: list[str]
    created_at: datetime
    is_read: bool = True


class MessagesResponse(BaseModel):
    messages: list[MessageResponse]
    unread: int


class UnreadResponse(BaseModel):
    chat: int
    polls: int
    materials: int


class ViewedResponse(BaseModel):
    viewed_at: datetime


# =============================================================================
# Routes
# =============================================================================


@router.get("", response_model=ProjectListResponse)
@limiter.limit("60/minute")
async def list_projects(
    request: Request,
    auth: CurrentUser,
    services: Services,
    role: Literal["client", "pro"] = Query("client"),
):
    """Projects where the caller is the client or the professional."""
    projects = services.tracking.list_projects(auth.user_id, role)
    return ProjectListResponse(
        projects=[ProjectResponse.from_tracking(p) for p in projects], total=len(projects)
    )


@router.get("/{job_id}", response_model=ProjectResponse)
@limiter.limit("120/minute")
async def get_project(request: Request, job_id: str, auth: CurrentUser, services: Services):
    return ProjectResponse.from_tracking(services.tracking.get_project(job_id, auth.user_id))


@router.post("/{job_id}/stage", response_model=ProjectResponse)
@limiter.limit("30/minute")
async def update_stage(
    request: Request,
    job_id: str,
    body: StageUpdate,
    auth: CurrentUser,
    services: Services,
):
    """Move the project to another stage."""
    logger.info(f"POST /projects/{job_id}/stage | user={auth.user_id} | stage={body.stage}")
    tracking = services.tracking.update_stage(
        job_id, auth.user_id, body.stage, note=body.note, portfolio_images=body.portfolio_images
    )
    return ProjectResponse.from_tracking(tracking)


@router.post("/{job_id}/progress", response_model=ProjectResponse)
@limiter.limit("30/minute")
async def update_progress(
    request: Request,
    job_id: str,
    body: ProgressUpdate,
    auth: CurrentUser,
    services: Services,
):
    tracking = services.tracking.update_progress(job_id, auth.user_id, body.progress)
    return ProjectResponse.from_tracking(tracking)


@router.post("/{job_id}/expected-end-date", response_model=ProjectResponse)
@limiter.limit("30/minute")
async def set_expected_end_date(
    request: Request,
    job_id: str,
    body: ExpectedEndDateUpdate,
    auth: CurrentUser,
    services: Services,
):
    tracking = services.tracking.set_expected_end_date(job_id, auth.user_id, body.expected_end_date)
    return ProjectResponse.from_tracking(tracking)


@router.post("/{job_id}/confirm", response_model=ConfirmResponse)
@limiter.limit("10/minute")
async def confirm_completion(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """Client confirms the finished work. Completes the job."""
    logger.info(f"POST /projects/{job_id}/confirm | user={auth.user_id}")
    result = services.tracking.confirm_completion(job_id, auth.user_id)
    return ConfirmResponse(
        project=ProjectResponse.from_tracking(result.tracking),
        job_completed=result.job_completed,
        portfolio_item_id=result.portfolio_item_id,
    )


@router.get("/{job_id}/history", response_model=HistoryResponse)
@limiter.limit("60/minute")
async def get_history(
    request: Request,
    job_id: str,
    auth: CurrentUser,
    services: Services,
    limit: int | None = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    event_type: list[str] | None = Query(None),
    user_filter: str | None = Query(None),
):
    """Project timeline, newest first."""
    events, total = services.tracking.get_history(
        job_id, auth.user_id, limit=limit, offset=offset, event_types=event_type, user_filter=user_filter
    )
    return HistoryResponse(events=[HistoryEventResponse.from_event(e) for e in events], total=total)


@router.post(
    "/{job_id}/history", response_model=HistoryEventResponse | None, status_code=status.HTTP_201_CREATED
)
@limiter.limit("60/minute")
async def add_history_event(
    request: Request,
    job_id: str,
    body: HistoryEventCreate,
    auth: CurrentUser,
    services: Services,
):
    """Record a timeline event from a participant (polls, resources, attachments)."""
    services.tracking.get_project(job_id, auth.user_id)
    try:
        metadata = metadata_from_dict(body.event_type, body.metadata)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    event = services.tracking.add_history_event(job_id, body.event_type, auth.user_id, metadata)
    return HistoryEventResponse.from_event(event) if event else None


@router.get("/{job_id}/messages", response_model=MessagesResponse)
@limiter.limit("120/minute")
async def get_messages(request: Request, job_id: str, auth: CurrentUser, services: Services):
    messages, unread = services.tracking.get_messages(job_id, auth.user_id)
    return MessagesResponse(messages=[MessageResponse(**m) for m in messages], unread=unread)


@router.post("/{job_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
async def add_message(
    request: Request,
    job_id: str,
    body: MessageCreate,
    auth: CurrentUser,
    services: Services,
):
    message = services.tracking.add_message(job_id, auth.user_id, body.content, body.attachments)
    return MessageResponse(**message.to_dict())


@router.post("/{job_id}/messages/read", response_model=ViewedResponse)
@limiter.limit("120/minute")
async def mark_messages_read(request: Request, job_id: str, auth: CurrentUser, services: Services):
    return ViewedResponse(viewed_at=services.tracking.mark_messages_read(job_id, auth.user_id))


@router.post("/{job_id}/polls/viewed", response_model=ViewedResponse)
@limiter.limit("120/minute")
async def mark_polls_viewed(request: Request, job_id: str, auth: CurrentUser, services: Services):
    return ViewedResponse(viewed_at=services.tracking.mark_polls_viewed(job_id, auth.user_id))


@router.post("/{job_id}/materials/viewed", response_model=ViewedResponse)
@limiter.limit("120/minute")
async def mark_materials_viewed(request: Request, job_id: str, auth: CurrentUser, services: Services):
    return ViewedResponse(viewed_at=services.tracking.mark_materials_viewed(job_id, auth.user_id))


@router.get("/{job_id}/unread", response_model=UnreadResponse)
@limiter.limit("120/minute")
async def get_unread_counts(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """Unread chat, poll and material badges for the caller."""
    return UnreadResponse(**services.tracking.get_unread_counts(job_id, auth.user_id).to_dict())
