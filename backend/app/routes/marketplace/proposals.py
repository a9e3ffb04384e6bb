"""Proposal routes for the Homico marketplace.

Professionals bid on open jobs; the job owner shortlists, accepts or
rejects. Accepting hires the professional and opens project tracking.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Request, status
from pydantic import BaseModel, Field

from homico.marketplace.jobs.models import Proposal

from ...auth import CurrentUser
from ...dependencies import Services
from ...logging_config import get_logger
from ...rate_limit import limiter

logger = get_logger("app.marketplace.proposals")
router = APIRouter(tags=["marketplace", "proposals"])


# =============================================================================
# Request/Response Models
# =============================================================================

ProposalStatus = Literal["pending", "shortlisted", "accepted", "rejected", "withdrawn"]
HiringChoice = Literal["homico", "direct"]


class ProposalCreate(BaseModel):
    """Request to submit a proposal."""

    cover_letter: str = Field(..., min_length=1, max_length=5000)
    proposed_price: float | None = Field(None, ge=0)
    estimated_duration: int | None = Field(None, ge=0)
    estimated_duration_unit: Literal["days", "weeks", "months"] | None = None


class ProposalResponse(BaseModel):
    """Proposal details response."""

    id: str
    job_id: str
    pro_id: str
    cover_letter: str
    proposed_price: float | None = None
    estimated_duration: int | None = None
    estimated_duration_unit: str | None = None
    status: ProposalStatus
    hiring_choice: HiringChoice | None = None
    contact_revealed: bool
    revealed_at: datetime | None = None
    viewed_by_client: bool
    viewed_by_pro: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_proposal(cls, proposal: Proposal) -> "ProposalResponse":
        return cls(**proposal.to_dict())


class ProposalListResponse(BaseModel):
    proposals: list[ProposalResponse]
    total: int


class ShortlistRequest(BaseModel):
    hiring_choice: HiringChoice


class CountResponse(BaseModel):
    count: int


def _list(proposals: list[Proposal]) -> ProposalListResponse:
    return ProposalListResponse(
        proposals=[ProposalResponse.from_proposal(p) for p in proposals], total=len(proposals)
    )


# =============================================================================
# Routes: per job
# =============================================================================


@router.post(
    "/jobs/{job_id}/proposals", response_model=ProposalResponse, status_code=status.HTTP_201_CREATED
)
@limiter.limit("30/minute")
async def submit_proposal(
    request: Request,
    job_id: str,
    body: ProposalCreate,
    auth: CurrentUser,
    services: Services,
):
    """Submit a proposal on an open job."""
    logger.info(f"POST /jobs/{job_id}/proposals | user={auth.user_id}")
    proposal = services.hiring.submit_proposal(
        job_id,
        auth.user_id,
        body.cover_letter,
        proposed_price=body.proposed_price,
        estimated_duration=body.estimated_duration,
        estimated_duration_unit=body.estimated_duration_unit,
    )
    return ProposalResponse.from_proposal(proposal)


@router.get("/jobs/{job_id}/proposals", response_model=ProposalListResponse)
@limiter.limit("60/minute")
async def list_job_proposals(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """List proposals on a job. Owner only."""
    return _list(services.hiring.get_job_proposals(job_id, auth.user_id))


@router.get("/jobs/{job_id}/proposals/mine", response_model=ProposalResponse | None)
@limiter.limit("60/minute")
async def get_my_proposal(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """The caller's proposal on a job, if any."""
    proposal = services.hiring.get_my_proposal(job_id, auth.user_id)
    return ProposalResponse.from_proposal(proposal) if proposal else None


@router.post("/jobs/{job_id}/proposals/mark-viewed", response_model=CountResponse)
@limiter.limit("60/minute")
async def mark_job_proposals_viewed(request: Request, job_id: str, auth: CurrentUser, services: Services):
    """Clear the new-proposal badge for a job."""
    return CountResponse(count=services.hiring.mark_viewed_by_client(job_id, auth.user_id))


# =============================================================================
# Routes: per proposal
# =============================================================================


@router.get("/proposals/mine", response_model=ProposalListResponse)
@limiter.limit("60/minute")
async def list_my_proposals(request: Request, auth: CurrentUser, services: Services):
    """List proposals the caller submitted."""
    return _list(services.hiring.get_pro_proposals(auth.user_id))


@router.get("/proposals/unviewed-count", response_model=CountResponse)
@limiter.limit("120/minute")
async def count_unviewed_proposals(request: Request, auth: CurrentUser, services: Services):
    """New proposals across the caller's jobs."""
    return CountResponse(count=services.hiring.count_unviewed_for_client(auth.user_id))


@router.get("/proposals/updates-count", response_model=CountResponse)
@limiter.limit("120/minute")
async def count_proposal_updates(request: Request, auth: CurrentUser, services: Services):
    """Accepted or rejected proposals the caller has not seen yet."""
    return CountResponse(count=services.hiring.count_unviewed_updates_for_pro(auth.user_id))


@router.post("/proposals/mark-updates-viewed", response_model=CountResponse)
@limiter.limit("60/minute")
async def mark_proposal_updates_viewed(request: Request, auth: CurrentUser, services: Services):
    return CountResponse(count=services.hiring.mark_updates_viewed_by_pro(auth.user_id))


@router.post("/proposals/{proposal_id}/withdraw", response_model=ProposalResponse)
@limiter.limit("10/minute")
async def withdraw_proposal(request: Request, proposal_id: str, auth: CurrentUser, services: Services):
    logger.info(f"POST /proposals/{proposal_id}/withdraw | user={auth.user_id}")
    return ProposalResponse.from_proposal(services.hiring.withdraw(proposal_id, auth.user_id))


@router.post("/proposals/{proposal_id}/shortlist", response_model=ProposalResponse)
@limiter.limit("30/minute")
async def shortlist_proposal(
    request: Request,
    proposal_id: str,
    body: ShortlistRequest,
    auth: CurrentUser,
    services: Services,
):
    """Shortlist a pending proposal, choosing how to hire."""
    logger.info(f"POST /proposals/{proposal_id}/shortlist | user={auth.user_id} | choice={body.hiring_choice}")
    proposal = services.hiring.shortlist(proposal_id, auth.user_id, body.hiring_choice)
    return ProposalResponse.from_proposal(proposal)


@router.post("/proposals/{proposal_id}/accept", response_model=ProposalResponse)
@limiter.limit("10/minute")
async def accept_proposal(request: Request, proposal_id: str, auth: CurrentUser, services: Services):
    """Hire the professional behind a proposal."""
    logger.info(f"POST /proposals/{proposal_id}/accept | user={auth.user_id}")
    return ProposalResponse.from_proposal(services.hiring.accept(proposal_id, auth.user_id))


@router.post("/proposals/{proposal_id}/reject", response_model=ProposalResponse)
@limiter.limit("30/minute")
async def reject_proposal(request: Request, proposal_id: str, auth: CurrentUser, services: Services):
    logger.info(f"POST /proposals/{proposal_id}/reject | user={auth.user_id}")
    return ProposalResponse.from_proposal(services.hiring.reject(proposal_id, auth.user_id))


@router.post("/proposals/{proposal_id}/revert", response_model=ProposalResponse)
@limiter.limit("30/minute")
async def revert_proposal(request: Request, proposal_id: str, auth: CurrentUser, services: Services):
    """Move a shortlisted or rejected proposal back to pending."""
    logger.info(f"POST /proposals/{proposal_id}/revert | user={auth.user_id}")
    return ProposalResponse.from_proposal(services.hiring.revert_to_pending(proposal_id, auth.user_id))


@router.post("/proposals/{proposal_id}/reveal-contact", response_model=ProposalResponse)
@limiter.limit("30/minute")
async def reveal_contact(request: Request, proposal_id: str, auth: CurrentUser, services: Services):
    return ProposalResponse.from_proposal(services.hiring.reveal_contact(proposal_id, auth.user_id))
