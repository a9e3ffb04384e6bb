"""Maintenance routes for the Homico marketplace.

Admin endpoints meant to be called periodically (e.g., via cron):
- expire open jobs whose listing lifetime ran out
- find and repair hired jobs that are missing project tracking
"""

from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from homico.marketplace.types import utc_now

from ...auth import AdminUser
from ...dependencies import Services
from ...logging_config import get_logger
from ...rate_limit import limiter

logger = get_logger("app.marketplace.maintenance")
router = APIRouter(prefix="/maintenance", tags=["marketplace", "maintenance"])


# =============================================================================
# Request/Response Models
# =============================================================================


class MaintenanceRequest(BaseModel):
    dry_run: bool = Field(
        default=False, description="If true, report what would be done without making changes"
    )


class ExpireJobsResponse(BaseModel):
    dry_run: bool
    checked_at: datetime
    job_ids: list[str]
    total: int


class OrphanedHireResponse(BaseModel):
    job_id: str
    job_type: str
    hired_pro_id: str | None = None
    proposal_id: str | None = None
    repairable: bool
    reason: str | None = None


class OrphanedHiresResponse(BaseModel):
    orphans: list[OrphanedHireResponse]
    total: int
    checked_at: datetime


class RepairHiresResponse(BaseModel):
    dry_run: bool
    checked_at: datetime
    repaired: list[str]
    skipped: list[OrphanedHireResponse]


class HealthResponse(BaseModel):
    """Health check for the maintenance subsystem."""

    status: str
    jobs_past_expiry: int
    orphaned_hires: int
    checked_at: datetime


# =============================================================================
# Routes
# =============================================================================


@router.get("/health", response_model=HealthResponse)
@limiter.limit("60/minute")
async def maintenance_health(request: Request, admin: AdminUser, services: Services):
    """Counts of what the next sweep and repair would touch."""
    logger.info(f"GET /maintenance/health | user={admin.user_id}")
    now = utc_now()
    expirable = services.jobs.storage.list_expirable_jobs(now)
    orphans = services.maintenance.find_orphaned_hires()
    return HealthResponse(
        status="healthy" if not (expirable or orphans) else "action_needed",
        jobs_past_expiry=len(expirable),
        orphaned_hires=len(orphans),
        checked_at=now,
    )


@router.post("/expire-jobs", response_model=ExpireJobsResponse)
@limiter.limit("10/minute")
async def expire_jobs(
    request: Request,
    body: MaintenanceRequest,
    admin: AdminUser,
    services: Services,
):
    """Move open jobs past their expiry date to expired."""
    logger.info(f"POST /maintenance/expire-jobs | user={admin.user_id} | dry_run={body.dry_run}")
    report = services.maintenance.run_expiration_sweep(dry_run=body.dry_run)
    return ExpireJobsResponse(**report.to_dict())


@router.get("/orphaned-hires", response_model=OrphanedHiresResponse)
@limiter.limit("30/minute")
async def list_orphaned_hires(request: Request, admin: AdminUser, services: Services):
    """Hired jobs without a project tracking record."""
    orphans = services.maintenance.find_orphaned_hires()
    return OrphanedHiresResponse(
        orphans=[OrphanedHireResponse(**o.to_dict()) for o in orphans],
        total=len(orphans),
        checked_at=utc_now(),
    )


@router.post("/repair-hires", response_model=RepairHiresResponse)
@limiter.limit("10/minute")
async def repair_hires(
    request: Request,
    body: MaintenanceRequest,
    admin: AdminUser,
    services: Services,
):
    """Recreate missing project tracking records."""
    logger.info(f"POST /maintenance/repair-hires | user={admin.user_id} | dry_run={body.dry_run}")
    report = services.maintenance.repair_orphaned_hires(dry_run=body.dry_run)
    if report.repaired and not report.dry_run:
        logger.warning(f"Repaired {len(report.repaired)} orphaned hire(s)")
    return RepairHiresResponse(**report.to_dict())
