"""
Job lifecycle service.

Handles posting jobs, the direct-request invite roster, cancellation,
expiry and renewal. Hiring lives in ``HiringService`` (proposals) and
``DirectRequestService`` (invites).
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from homico.marketplace.collaborators import Collaborators, NotificationType, best_effort
from homico.marketplace.config import MarketplaceConfig
from homico.marketplace.errors import (
    CancellationBlockedError,
    ConflictError,
    InvalidTransitionError,
    JobNotFoundError,
    MarketplaceError,
    UnauthorizedError,
)
from homico.marketplace.jobs.models import Job, JobStatus, JobType
from homico.marketplace.jobs.storage import JobStorage
from homico.marketplace.tracking.storage import TrackingStorage
from homico.marketplace.types import utc_now

logger = logging.getLogger(__name__)

UNCANCELLABLE_STATUSES = (JobStatus.COMPLETED.value, JobStatus.CANCELLED.value, JobStatus.EXPIRED.value)


class JobService:
    """Service for job lifecycle operations.

    Jobs are created open, hired through HiringService or
    DirectRequestService, and end completed, cancelled, or expired.
    """

    def __init__(
        self,
        storage: JobStorage,
        tracking_storage: TrackingStorage,
        collaborators: Optional[Collaborators] = None,
        config: Optional[MarketplaceConfig] = None,
    ):
        """Initialize job service.

        Args:
            storage: Job storage backend
            tracking_storage: Tracking storage, consulted before cancelling hired jobs
            collaborators: Notification and SMS hooks
            config: Marketplace configuration
        """
        self.storage = storage
        self.tracking_storage = tracking_storage
        self.collaborators = collaborators or Collaborators()
        self.config = config or MarketplaceConfig()

    # =========================================================================
    # Job CRUD
    # =========================================================================

    def create_job(
        self,
        client_id: str,
        title: str,
        description: str = "",
        category: Optional[str] = None,
        job_type: JobType = JobType.MARKETPLACE,
        invited_pros: Optional[List[str]] = None,
        budget_amount: Optional[float] = None,
        location: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> Job:
        """Post a new job.

        A second post with the same title from the same client inside the
        duplicate window returns the first job instead of creating another.

        Raises:
            MarketplaceError: Invalid job data
        """
        now = utc_now()
        recent = self.storage.find_recent_job(
            client_id, title, now - timedelta(seconds=self.config.duplicate_window_seconds)
        )
        if recent is not None:
            logger.info(f"Duplicate job post ignored | client={client_id} | job={recent.id}")
            return recent

        try:
            job = Job(
                id=str(uuid.uuid4()),
                client_id=client_id,
                title=title,
                description=description,
                category=category,
                job_number=self.storage.next_job_number(self.config.first_job_number),
                job_type=job_type,
                budget_amount=budget_amount,
                location=location,
                images=list(images or []),
                expires_at=now + timedelta(days=self.config.job_lifetime_days),
                created_at=now,
                updated_at=now,
            )
        except ValueError as e:
            raise MarketplaceError(str(e)) from e

        self.storage.save_job(job)
        logger.info(f"Job created | job={job.id} | number={job.job_number} | client={client_id} | type={job.job_type}")

        if invited_pros:
            try:
                self.invite_pros(job.id, client_id, invited_pros)
                job = self.storage.get_job(job.id) or job
            except MarketplaceError as e:
                logger.error(f"Failed to auto-invite pros | job={job.id}: {e}")

        return job

    def get_job(self, job_id: str) -> Job:
        """Get a job by ID.

        Raises:
            JobNotFoundError: Job does not exist
        """
        job = self.storage.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def get_jobs_for_client(self, client_id: str, status: Optional[JobStatus] = None) -> List[Job]:
        """Get jobs posted by a client."""
        return self.storage.list_jobs(client_id=client_id, status=status)

    def record_view(self, job_id: str) -> None:
        """Count a listing view."""
        self.storage.increment_view_count(job_id)

    def _get_owned_job(self, job_id: str, client_id: str, action: str) -> Job:
        job = self.get_job(job_id)
        if job.client_id != client_id:
            raise UnauthorizedError(f"Only the job owner can {action}")
        return job

    # =========================================================================
    # Invitations
    # =========================================================================

    def get_invited_pros(self, job_id: str, client_id: str) -> List[str]:
        """List invited professional IDs. Job owner only."""
        job = self._get_owned_job(job_id, client_id, "view invited professionals")
        return list(job.invited_pros)

    def invite_pros(self, job_id: str, client_id: str, pro_ids: List[str]) -> int:
        """Invite professionals to a job.

        Already-invited professionals are skipped. Each new invitee gets a
        notification and an SMS.

        Returns:
            Number of professionals newly invited
        """
        job = self._get_owned_job(job_id, client_id, "invite professionals")
        if job.status != JobStatus.OPEN.value:
            raise InvalidTransitionError(f"Cannot invite professionals to a {job.status} job")

        updated, added = self.storage.add_invited_pros(job_id, [p for p in pro_ids if p != client_id])
        if updated is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if not added:
            return 0

        logger.info(f"Pros invited | job={job_id} | count={len(added)}")
        link = f"/jobs/{job_id}"
        for pro_id in added:
            best_effort(
                "Invitation notification",
                self.collaborators.notifications.notify,
                pro_id,
                NotificationType.JOB_INVITATION,
                "You have been invited to a job",
                f'You have been invited to "{job.title}"',
                link=link,
                reference_id=job_id,
                metadata={"job_title": job.title, "client_id": client_id},
            )
            sms = f'You are invited to "{job.title}"'
            if job.location:
                sms += f", {job.location}"
            if job.budget_amount:
                sms += f", {job.budget_amount:g} GEL"
            best_effort(
                "Invitation SMS",
                self.collaborators.sms.send,
                pro_id,
                f"{sms}. {self.config.site_url}{link}",
            )
        return len(added)

    # =========================================================================
    # Cancellation, expiry, renewal
    # =========================================================================

    def cancel_job(self, job_id: str, client_id: str) -> Job:
        """Cancel a job.

        Open jobs can always be cancelled. A hired job can only be
        cancelled while its project is still at a cancellable stage.

        Raises:
            JobNotFoundError: Job does not exist
            UnauthorizedError: Caller is not the job owner
            InvalidTransitionError: Job already finished, cancelled or expired
            CancellationBlockedError: Work on the project is underway
            ConflictError: The job changed under a concurrent request
        """
        job = self._get_owned_job(job_id, client_id, "cancel this job")
        if job.status in UNCANCELLABLE_STATUSES:
            raise InvalidTransitionError(f"Cannot cancel a {job.status} job")

        if job.status == JobStatus.IN_PROGRESS.value:
            tracking = self.tracking_storage.get_tracking(job_id)
            if tracking is not None and tracking.current_stage not in self.config.cancellable_stages:
                raise CancellationBlockedError(job_id, tracking.current_stage)

        cancelled = self.storage.transition_job(
            job_id, job.status, JobStatus.CANCELLED, hired_pro_id=None, cancelled_at=utc_now()
        )
        if cancelled is None:
            raise ConflictError(f"Job {job_id} changed while cancelling, please retry")

        logger.info(f"Job cancelled | job={job_id} | from={job.status}")
        if job.hired_pro_id:
            best_effort(
                "Cancellation notification",
                self.collaborators.notifications.notify,
                job.hired_pro_id,
                NotificationType.JOB_CANCELLED,
                "Order cancelled",
                f'The client cancelled "{job.title}"',
                link=f"/my-jobs/{job_id}",
                reference_id=job_id,
            )
        return cancelled

    def expire_stale_jobs(self, now: Optional[datetime] = None) -> List[str]:
        """Move every open job whose listing lapsed to expired.

        Returns:
            IDs of the jobs that expired
        """
        expired = self.storage.expire_open_jobs(now or utc_now())
        logger.info(f"Expiration sweep | expired={len(expired)}")
        return expired

    def renew_job(self, job_id: str, client_id: str) -> Job:
        """Relist an expired job for another full lifetime.

        Raises:
            InvalidTransitionError: Job is not expired
        """
        job = self._get_owned_job(job_id, client_id, "renew this job")
        if job.status != JobStatus.EXPIRED.value:
            raise InvalidTransitionError("Only expired jobs can be renewed")

        renewed = self.storage.transition_job(
            job_id,
            JobStatus.EXPIRED,
            JobStatus.OPEN,
            expires_at=utc_now() + timedelta(days=self.config.job_lifetime_days),
        )
        if renewed is None:
            raise ConflictError(f"Job {job_id} changed while renewing, please retry")
        logger.info(f"Job renewed | job={job_id} | expires_at={renewed.expires_at.isoformat()}")
        return renewed

