"""Job routes for the Homico marketplace.

Posting, invitations, cancellation and renewal. Hiring goes through the
proposal and direct-request routes.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field, field_validator

from homico.marketplace.jobs.models import Job, JobStatus as JobStatusEnum, JobType as JobTypeEnum

from ...auth import CurrentUser
from ...dependencies import Services
from ...logging_config import get_logger
from ...rate_limit import limiter

logger = get_logger("app.marketplace.jobs")
router = APIRouter(prefix="/jobs", tags=["marketplace", "jobs"])


# =============================================================================
# Request/Response Models
# =============================================================================

JobStatus = Literal["open", "in_progress", "completed", "cancelled", "expired"]
JobType = Literal["marketplace", "direct_request"]


class JobCreate(BaseModel):
    """Request to post a job."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    category: str | None = None
    job_type: JobType = "marketplace"
    invited_pros: list[str] = Field(default_factory=list)
    budget_amount: float | None = Field(None, ge=0)
    location: str | None = None
    images: list[str] = Field(default_factory=list)

    @field_validator("invited_pros")
    @classmethod
    def dedupe_invitees(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(p.strip() for p in v if p.strip()))


class JobResponse(BaseModel):
    """Job details response."""

    id: str
    client_id: str
    job_number: int
    title: str
    description: str
    category: str | None = None
    job_type: JobType
    status: JobStatus
    hired_pro_id: str | None = None
    invited_pros: list[str]
    declined_pros: list[str]
    proposal_count: int
    view_count: int
    budget_amount: float | None = None
    location: str | None = None
    images: list[str]
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(**job.to_dict())


class JobListResponse(BaseModel):
    """List of jobs."""

    jobs: list[JobResponse]
    total: int


class InviteRequest(BaseModel):
    """Request to invite professionals to a job."""

    pro_ids: list[str] = Field(..., min_length=1, max_length=50)


class InviteResponse(BaseModel):
    job_id: str
    invited: int


class InvitedProsResponse(BaseModel):
    job_id: str
    pro_ids: list[str]


# =============================================================================
# Routes
# =============================================================================


@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_job(
    request: Request,
    job: JobCreate,
    auth: CurrentUser,
    services: Services,
):
    """Post a new job. Direct requests invite their roster immediately."""
    logger.info(f"POST /jobs | user={auth.user_id} | type={job.job_type}")

    created = services.jobs.create_job(
        client_id=auth.user_id,
        title=job.title,
        description=job.description,
        category=job.category,
        job_type=JobTypeEnum(job.job_type),
        invited_pros=job.invited_pros,
        budget_amount=job.budget_amount,
        location=job.location,
        images=job.images,
    )
    return JobResponse.from_job(created)


@router.get("/mine", response_model=JobListResponse)
@limiter.limit("60/minute")
async def list_my_jobs(
    request: Request,
    auth: CurrentUser,
    services: Services,
    status_filter: JobStatus | None = Query(None, alias="status"),
):
    """List jobs posted by the caller."""
    status_enum = JobStatusEnum(status_filter) if status_filter else None
    jobs = services.jobs.get_jobs_for_client(auth.user_id, status=status_enum)
    return JobListResponse(jobs=[JobResponse.from_job(j) for j in jobs], total=len(jobs))


@router.get("/{job_id}", response_model=JobResponse)
@limiter.limit("60/minute")
async def get_job(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """Get job details."""
    return JobResponse.from_job(services.jobs.get_job(job_id))


@router.post("/{job_id}/view", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("120/minute")
async def record_job_view(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """Count a listing view."""
    services.jobs.record_view(job_id)


@router.post("/{job_id}/cancel", response_model=JobResponse)
@limiter.limit("10/minute")
async def cancel_job(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """Cancel a job. Hired jobs can only be cancelled before work starts."""
    logger.info(f"POST /jobs/{job_id}/cancel | user={auth.user_id}")
    return JobResponse.from_job(services.jobs.cancel_job(job_id, auth.user_id))


@router.post("/{job_id}/renew", response_model=JobResponse)
@limiter.limit("10/minute")
async def renew_job(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """Relist an expired job."""
    logger.info(f"POST /jobs/{job_id}/renew | user={auth.user_id}")
    return JobResponse.from_job(services.jobs.renew_job(job_id, auth.user_id))


@router.post("/{job_id}/invite", response_model=InviteResponse)
@limiter.limit("20/minute")
async def invite_pros(
    request: Request,
    job_id: str,
    body: InviteRequest,
    auth: CurrentUser,
    services: Services,
):
    """Invite professionals to an open job."""
    logger.info(f"POST /jobs/{job_id}/invite | user={auth.user_id} | count={len(body.pro_ids)}")
    invited = services.jobs.invite_pros(job_id, auth.user_id, body.pro_ids)
    return InviteResponse(job_id=job_id, invited=invited)


@router.get("/{job_id}/invited-pros", response_model=InvitedProsResponse)
@limiter.limit("60/minute")
async def get_invited_pros(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """List the professionals invited to a job. Owner only."""
    return InvitedProsResponse(job_id=job_id, pro_ids=services.jobs.get_invited_pros(job_id, auth.user_id))
