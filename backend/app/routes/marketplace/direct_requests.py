"""Direct-request routes for invited professionals."""

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from ...auth import CurrentUser
from ...dependencies import Services
from ...logging_config import get_logger
from ...rate_limit import limiter
from .jobs import JobListResponse, JobResponse

logger = get_logger("app.marketplace.direct_requests")
router = APIRouter(prefix="/direct-requests", tags=["marketplace", "direct-requests"])


class DeclineResponse(BaseModel):
    job_id: str
    declined: bool
    all_declined: bool


class RequestCountResponse(BaseModel):
    count: int


@router.get("", response_model=JobListResponse)
@limiter.limit("60/minute")
async def list_direct_requests(
    request: Request,
    auth: CurrentUser,
    services: Services,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Open direct requests that invited the caller."""
    jobs = services.direct_requests.list_for_pro(auth.user_id, limit=limit, offset=offset)
    return JobListResponse(jobs=[JobResponse.from_job(j) for j in jobs], total=len(jobs))


@router.get("/count", response_model=RequestCountResponse)
@limiter.limit("120/minute")
async def count_direct_requests(request: Request, auth: CurrentUser, services: Services):
    return RequestCountResponse(count=services.direct_requests.count_for_pro(auth.user_id))


@router.post("/{job_id}/accept", response_model=JobResponse)
@limiter.limit("10/minute")
async def accept_direct_request(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """Accept a direct request. The first invitee to accept is hired."""
    logger.info(f"POST /direct-requests/{job_id}/accept | user={auth.user_id}")
    return JobResponse.from_job(services.direct_requests.accept(job_id, auth.user_id))


@router.post("/{job_id}/decline", response_model=DeclineResponse)
@limiter.limit("10/minute")
async def decline_direct_request(request: Request, job_id: str, auth: CurrentUser, services: Services):
    logger.info(f"POST /direct-requests/{job_id}/decline | user={auth.user_id}")
    result = services.direct_requests.decline(job_id, auth.user_id)
    return DeclineResponse(job_id=job_id, declined=result.declined, all_declined=result.all_declined)
