"""
Direct-request hiring.

A direct request is a job offered to a fixed roster of invited
professionals. The first invitee to accept is hired; the accept is a
single conditional update on the job, so concurrent accepts resolve to one
winner and every loser gets RequestUnavailableError.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from homico.marketplace.collaborators import Collaborators, NotificationType, best_effort
from homico.marketplace.errors import JobNotFoundError, RequestUnavailableError, TrackingExistsError
from homico.marketplace.jobs.models import Job, JobStatus, JobType
from homico.marketplace.jobs.storage import JobStorage
from homico.marketplace.tracking.service import ProjectTrackingService

logger = logging.getLogger(__name__)


@dataclass
class DeclineResult:
    """Outcome of an invitee declining a direct request."""

    declined: bool
    all_declined: bool


class DirectRequestService:
    """Service for invited professionals accepting or declining direct requests."""

    def __init__(
        self,
        storage: JobStorage,
        tracking: ProjectTrackingService,
        collaborators: Optional[Collaborators] = None,
    ):
        self.storage = storage
        self.tracking = tracking
        self.collaborators = collaborators or Collaborators()

    def list_for_pro(self, pro_id: str, limit: int = 100, offset: int = 0) -> List[Job]:
        """Open direct requests that invited the professional and that they have not declined."""
        jobs = self.storage.list_jobs(
            status=JobStatus.OPEN,
            job_type=JobType.DIRECT_REQUEST,
            invited_pro_id=pro_id,
            limit=1000,
        )
        jobs = [j for j in jobs if pro_id not in j.declined_pros]
        return jobs[offset : offset + limit]

    def count_for_pro(self, pro_id: str) -> int:
        return len(self.list_for_pro(pro_id, limit=1000))

    def accept(self, job_id: str, pro_id: str) -> Job:
        """Accept a direct request, hiring the caller if nobody beat them to it.

        Raises:
            RequestUnavailableError: Job was taken, is no longer open, or
                never invited this professional
        """
        job = self.storage.claim_direct_request(job_id, pro_id)
        if job is None:
            logger.info(f"Direct request unavailable | job={job_id} | pro={pro_id}")
            raise RequestUnavailableError(job_id)

        logger.info(f"Direct request accepted | job={job_id} | pro={pro_id}")

        try:
            self.tracking.create_for_hire(job, pro_id)
        except TrackingExistsError:
            logger.warning(f"Project tracking already existed on direct hire | job={job_id}")

        best_effort(
            "Direct request accepted notification",
            self.collaborators.notifications.notify,
            job.client_id,
            NotificationType.DIRECT_REQUEST_ACCEPTED,
            "Request accepted!",
            f'A professional accepted your request "{job.title}"',
            link=f"/my-jobs/{job_id}",
            reference_id=job_id,
            metadata={"job_id": job_id, "job_title": job.title, "pro_id": pro_id},
        )

        others = job.pending_invitees(exclude=pro_id)
        if others:
            best_effort(
                "Request taken notification",
                self.collaborators.notifications.notify_many,
                others,
                NotificationType.DIRECT_REQUEST_TAKEN,
                "Request already taken",
                f'"{job.title}" was accepted by another professional',
                reference_id=job_id,
                metadata={"job_id": job_id, "job_title": job.title},
            )
        return job

    def decline(self, job_id: str, pro_id: str) -> DeclineResult:
        """Decline a direct request. Declining twice is harmless.

        Raises:
            JobNotFoundError: No open direct request invited this professional
        """
        job = self.storage.get_job(job_id)
        if (
            job is None
            or not job.is_direct_request
            or job.status != JobStatus.OPEN.value
            or pro_id not in job.invited_pros
        ):
            raise JobNotFoundError("Request not found or you are not invited")

        updated, added = self.storage.add_declined_pro(job_id, pro_id)
        if updated is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        all_declined = len(set(updated.declined_pros)) >= len(set(updated.invited_pros))
        logger.info(
            f"Direct request declined | job={job_id} | pro={pro_id} | added={added} | all_declined={all_declined}"
        )

        # Only the decline that completed the roster tells the client
        if added and all_declined:
            best_effort(
                "All declined notification",
                self.collaborators.notifications.notify,
                updated.client_id,
                NotificationType.DIRECT_REQUEST_DECLINED,
                "Everyone declined",
                f'All invited professionals declined "{updated.title}"',
                link=f"/my-jobs/{job_id}",
                reference_id=job_id,
                metadata={"job_id": job_id, "job_title": updated.title},
            )
        return DeclineResult(declined=True, all_declined=all_declined)
