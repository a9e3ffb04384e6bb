"""
Scheduled maintenance for the marketplace.

Two jobs meant to run from cron (CLI ``homico sweep`` / ``homico
repair-hires`` or the backend's admin maintenance routes):

- the expiration sweep, which moves lapsed open jobs to expired;
- the orphaned-hire repair, which finds in-progress jobs without a project
  tracking record (a hire interrupted between claiming the job and creating
  the record) and recreates the record.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from homico.marketplace.errors import TrackingExistsError
from homico.marketplace.jobs.models import Job, JobStatus, ProposalStatus
from homico.marketplace.jobs.service import JobService
from homico.marketplace.tracking.service import ProjectTrackingService
from homico.marketplace.types import format_datetime, utc_now

logger = logging.getLogger(__name__)

SCAN_LIMIT = 10000


@dataclass
class SweepReport:
    """Result of an expiration sweep."""

    dry_run: bool
    checked_at: datetime
    job_ids: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.job_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "checked_at": format_datetime(self.checked_at),
            "job_ids": list(self.job_ids),
            "total": self.total,
        }


@dataclass
class OrphanedHire:
    """An in-progress job with no project tracking record."""

    job_id: str
    job_type: str
    hired_pro_id: Optional[str]
    proposal_id: Optional[str] = None
    reason: Optional[str] = None  # Why it cannot be repaired automatically

    @property
    def repairable(self) -> bool:
        return self.reason is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_type": self.job_type,
            "hired_pro_id": self.hired_pro_id,
            "proposal_id": self.proposal_id,
            "repairable": self.repairable,
            "reason": self.reason,
        }


@dataclass
class RepairReport:
    """Result of an orphaned-hire repair run."""

    dry_run: bool
    checked_at: datetime
    repaired: List[str] = field(default_factory=list)
    skipped: List[OrphanedHire] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "checked_at": format_datetime(self.checked_at),
            "repaired": list(self.repaired),
            "skipped": [o.to_dict() for o in self.skipped],
        }


class MaintenanceService:
    """Batch operations over jobs and project tracking."""

    def __init__(self, jobs: JobService, tracking: ProjectTrackingService):
        self.jobs = jobs
        self.tracking = tracking

    def run_expiration_sweep(self, dry_run: bool = False, now: Optional[datetime] = None) -> SweepReport:
        """Expire every open job whose listing lapsed.

        With ``dry_run`` the jobs are reported but left untouched.
        """
        now = now or utc_now()
        if dry_run:
            job_ids = [j.id for j in self.jobs.storage.list_expirable_jobs(now)]
            logger.info(f"Expiration sweep (dry run) | would_expire={len(job_ids)}")
        else:
            job_ids = self.jobs.expire_stale_jobs(now)
        return SweepReport(dry_run=dry_run, checked_at=now, job_ids=job_ids)

    def _diagnose(self, job: Job) -> OrphanedHire:
        orphan = OrphanedHire(job_id=job.id, job_type=job.job_type, hired_pro_id=job.hired_pro_id)
        if job.is_direct_request:
            return orphan

        accepted = self.jobs.storage.list_proposals(job_id=job.id, status=ProposalStatus.ACCEPTED)
        if not accepted:
            orphan.reason = "no accepted proposal, manual review needed"
        elif accepted[0].pro_id != job.hired_pro_id:
            orphan.proposal_id = accepted[0].id
            orphan.reason = "accepted proposal belongs to a different professional"
        else:
            orphan.proposal_id = accepted[0].id
        return orphan

    def find_orphaned_hires(self) -> List[OrphanedHire]:
        """In-progress jobs that have no project tracking record."""
        orphans = []
        for job in self.jobs.storage.list_jobs(status=JobStatus.IN_PROGRESS, limit=SCAN_LIMIT):
            if self.tracking.storage.get_tracking(job.id) is None:
                orphans.append(self._diagnose(job))
        logger.info(f"Orphaned hire scan | found={len(orphans)}")
        return orphans

    def repair_orphaned_hires(self, dry_run: bool = False) -> RepairReport:
        """Recreate missing tracking records from the accepted proposal or the direct request."""
        report = RepairReport(dry_run=dry_run, checked_at=utc_now())
        for orphan in self.find_orphaned_hires():
            if not orphan.repairable:
                report.skipped.append(orphan)
                continue
            if dry_run:
                report.repaired.append(orphan.job_id)
                continue

            job = self.jobs.storage.get_job(orphan.job_id)
            if job is None or job.status != JobStatus.IN_PROGRESS.value or not job.hired_pro_id:
                # The job moved on after the scan
                orphan.reason = "job is no longer in progress"
                report.skipped.append(orphan)
                logger.info(f"Orphaned hire changed during repair | job={orphan.job_id}")
                continue
            proposal = self.jobs.storage.get_proposal(orphan.proposal_id) if orphan.proposal_id else None
            try:
                self.tracking.create_for_hire(job, job.hired_pro_id, proposal)
            except TrackingExistsError:
                logger.info(f"Tracking appeared during repair | job={orphan.job_id}")
                continue
            report.repaired.append(orphan.job_id)
            logger.warning(f"Repaired orphaned hire | job={orphan.job_id} | pro={job.hired_pro_id}")
        return report
