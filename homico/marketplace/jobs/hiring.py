"""
Proposal-based hiring.

Professionals submit proposals on open jobs; the client shortlists,
rejects, reverts or accepts them. Accepting a proposal hires the
professional: the job moves to in_progress and a project tracking record
is created.

Accept claims the job first with a compare-and-swap on its status, then
moves the proposal to accepted with a second compare-and-swap. If the
proposal was withdrawn in between, the job claim is rolled back. Two
clients racing to accept different proposals on one job therefore get
exactly one hire.
"""

import logging
import uuid
from typing import List, Optional, Tuple, Union

from homico.marketplace.collaborators import Collaborators, NotificationType, best_effort
from homico.marketplace.config import MarketplaceConfig
from homico.marketplace.errors import (
    CategoryNotEligibleError,
    ConflictError,
    DuplicateProposalError,
    InvalidTransitionError,
    JobNotFoundError,
    MarketplaceError,
    ProposalNotFoundError,
    TrackingExistsError,
    UnauthorizedError,
    VerificationRequiredError,
)
from homico.marketplace.jobs.models import (
    HiringChoice,
    Job,
    JobStatus,
    Proposal,
    ProposalStatus,
)
from homico.marketplace.jobs.storage import JobStorage
from homico.marketplace.tracking.service import ProjectTrackingService
from homico.marketplace.types import utc_now

logger = logging.getLogger(__name__)

# Statuses a proposal can be accepted from
ACCEPTABLE_STATUSES = (ProposalStatus.PENDING, ProposalStatus.SHORTLISTED, ProposalStatus.REJECTED)


class HiringService:
    """Service for proposal submission and the client's hiring decisions."""

    def __init__(
        self,
        storage: JobStorage,
        tracking: ProjectTrackingService,
        collaborators: Optional[Collaborators] = None,
        config: Optional[MarketplaceConfig] = None,
    ):
        """Initialize hiring service.

        Args:
            storage: Job and proposal storage backend
            tracking: Project tracking service, creates the record on hire
            collaborators: Notification, SMS and trust hooks
            config: Marketplace configuration
        """
        self.storage = storage
        self.tracking = tracking
        self.collaborators = collaborators or Collaborators()
        self.config = config or MarketplaceConfig()

    # =========================================================================
    # Lookup helpers
    # =========================================================================

    def _get_job(self, job_id: str) -> Job:
        job = self.storage.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def _get_proposal(self, proposal_id: str) -> Proposal:
        proposal = self.storage.get_proposal(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(f"Proposal {proposal_id} not found")
        return proposal

    def _get_for_client(self, proposal_id: str, client_id: str) -> Tuple[Proposal, Job]:
        """Resolve a proposal and its job, checking the caller owns the job."""
        proposal = self._get_proposal(proposal_id)
        job = self._get_job(proposal.job_id)
        if job.client_id != client_id:
            raise UnauthorizedError("You can only manage proposals for your own jobs")
        return proposal, job

    # =========================================================================
    # Professional actions
    # =========================================================================

    def submit_proposal(
        self,
        job_id: str,
        pro_id: str,
        cover_letter: str,
        proposed_price: Optional[float] = None,
        estimated_duration: Optional[int] = None,
        estimated_duration_unit: Optional[str] = None,
    ) -> Proposal:
        """Submit a proposal on a job.

        Raises:
            VerificationRequiredError: Professional is not verified
            JobNotFoundError: Job does not exist
            InvalidTransitionError: Job is not open
            CategoryNotEligibleError: Job category does not take proposals
            UnauthorizedError: Professional owns the job
            DuplicateProposalError: Professional already has a proposal on this job
        """
        if not self.collaborators.trust.is_verified(pro_id):
            raise VerificationRequiredError("Profile verification is required to send proposals")

        job = self._get_job(job_id)
        if job.status != JobStatus.OPEN.value:
            raise InvalidTransitionError(f"Job is {job.status} and not accepting proposals")
        if not self.config.accepts_proposals(job.category):
            raise CategoryNotEligibleError(
                f"Proposals are only accepted for {', '.join(self.config.proposal_categories)} jobs; "
                "use comments for other categories"
            )
        if job.client_id == pro_id:
            raise UnauthorizedError("You cannot send a proposal to your own job")
        if self.storage.find_proposal(job_id, pro_id) is not None:
            raise DuplicateProposalError("You have already sent a proposal for this job")

        now = utc_now()
        try:
            proposal = Proposal(
                id=str(uuid.uuid4()),
                job_id=job_id,
                pro_id=pro_id,
                cover_letter=cover_letter,
                proposed_price=proposed_price,
                estimated_duration=estimated_duration,
                estimated_duration_unit=estimated_duration_unit,
                created_at=now,
                updated_at=now,
            )
        except ValueError as e:
            raise MarketplaceError(str(e)) from e

        # Storage enforces (job, pro) uniqueness, catching the race the check above cannot
        self.storage.save_proposal(proposal)
        self.storage.increment_proposal_count(job_id)
        logger.info(f"Proposal submitted | job={job_id} | pro={pro_id} | proposal={proposal.id}")

        best_effort(
            "New proposal notification",
            self.collaborators.notifications.notify,
            job.client_id,
            NotificationType.NEW_PROPOSAL,
            "New proposal",
            f'You received a proposal for "{job.title}"',
            link=f"/my-jobs/{job_id}/proposals",
            reference_id=proposal.id,
            metadata={"job_id": job_id, "job_title": job.title, "proposed_price": proposed_price},
        )
        return proposal

    def withdraw(self, proposal_id: str, pro_id: str) -> Proposal:
        """Withdraw a proposal. Only its author can, and not once accepted."""
        proposal = self._get_proposal(proposal_id)
        if proposal.pro_id != pro_id:
            raise UnauthorizedError("You can only withdraw your own proposals")
        if proposal.status == ProposalStatus.WITHDRAWN.value:
            raise InvalidTransitionError("Proposal has already been withdrawn")
        if proposal.status == ProposalStatus.ACCEPTED.value:
            raise InvalidTransitionError("Proposal has already been accepted")

        withdrawn = self.storage.transition_proposal(
            proposal_id,
            (ProposalStatus.PENDING, ProposalStatus.SHORTLISTED, ProposalStatus.REJECTED),
            ProposalStatus.WITHDRAWN,
        )
        if withdrawn is None:
            raise ConflictError("Proposal changed while withdrawing, please retry")
        logger.info(f"Proposal withdrawn | proposal={proposal_id} | pro={pro_id}")
        return withdrawn

    # =========================================================================
    # Client actions
    # =========================================================================

    def shortlist(
        self, proposal_id: str, client_id: str, hiring_choice: Union[str, HiringChoice]
    ) -> Proposal:
        """Shortlist a pending proposal.

        A ``direct`` hiring choice also reveals the professional's contact
        details straight away.
        """
        try:
            choice = HiringChoice(hiring_choice)
        except ValueError:
            raise MarketplaceError(f"Invalid hiring choice: {hiring_choice}")

        proposal, _ = self._get_for_client(proposal_id, client_id)
        if proposal.status != ProposalStatus.PENDING.value:
            raise InvalidTransitionError("Only pending proposals can be shortlisted")

        updates = {"hiring_choice": choice.value, "viewed_by_pro": False}
        if choice == HiringChoice.DIRECT:
            updates["contact_revealed"] = True
            updates["revealed_at"] = utc_now()

        shortlisted = self.storage.transition_proposal(
            proposal_id, (ProposalStatus.PENDING,), ProposalStatus.SHORTLISTED, **updates
        )
        if shortlisted is None:
            raise ConflictError("Proposal changed while shortlisting, please retry")
        logger.info(f"Proposal shortlisted | proposal={proposal_id} | choice={choice.value}")
        return shortlisted

    def accept(self, proposal_id: str, client_id: str) -> Proposal:
        """Accept a proposal and hire its professional.

        Raises:
            ProposalNotFoundError: Proposal does not exist
            UnauthorizedError: Caller does not own the job
            InvalidTransitionError: Proposal already accepted or withdrawn, or job not open
            ConflictError: Another hire or a withdrawal won the race
        """
        proposal, job = self._get_for_client(proposal_id, client_id)
        if proposal.status == ProposalStatus.ACCEPTED.value:
            raise InvalidTransitionError("Proposal has already been accepted")
        if proposal.status == ProposalStatus.WITHDRAWN.value:
            raise InvalidTransitionError("Cannot accept a withdrawn proposal")
        if job.status != JobStatus.OPEN.value:
            raise InvalidTransitionError(f"Job is {job.status}, a professional cannot be hired")

        hired_job = self.storage.transition_job(
            job.id, JobStatus.OPEN, JobStatus.IN_PROGRESS, hired_pro_id=proposal.pro_id
        )
        if hired_job is None:
            logger.warning(f"Accept lost the job race | job={job.id} | proposal={proposal_id}")
            raise ConflictError("This job already has a hired professional")

        accepted = self.storage.transition_proposal(
            proposal_id, ACCEPTABLE_STATUSES, ProposalStatus.ACCEPTED, viewed_by_pro=False
        )
        if accepted is None:
            # Proposal was withdrawn after the job was claimed; give the job back
            self.storage.transition_job(job.id, JobStatus.IN_PROGRESS, JobStatus.OPEN, hired_pro_id=None)
            logger.warning(f"Accept rolled back, proposal changed | job={job.id} | proposal={proposal_id}")
            raise ConflictError("Proposal changed while accepting, please retry")

        logger.info(f"Proposal accepted | job={job.id} | pro={accepted.pro_id} | proposal={proposal_id}")

        try:
            self.tracking.create_for_hire(hired_job, accepted.pro_id, accepted)
        except TrackingExistsError:
            logger.warning(f"Project tracking already existed on hire | job={job.id}")

        best_effort(
            "Hired notification",
            self.collaborators.notifications.notify,
            accepted.pro_id,
            NotificationType.PROPOSAL_ACCEPTED,
            "You have been hired!",
            f'You have been hired for "{job.title}"',
            link="/my-work",
            reference_id=job.id,
            metadata={"job_id": job.id, "job_title": job.title},
        )
        best_effort(
            "Hired SMS",
            self.collaborators.sms.send,
            accepted.pro_id,
            f'You have been hired for "{job.title}". {self.config.site_url}/my-jobs/{job.id}',
        )
        return accepted

    def reject(self, proposal_id: str, client_id: str) -> Proposal:
        """Reject a proposal. Accepted proposals cannot be rejected."""
        proposal, job = self._get_for_client(proposal_id, client_id)
        if proposal.status == ProposalStatus.REJECTED.value:
            raise InvalidTransitionError("Proposal has already been rejected")
        if proposal.status == ProposalStatus.ACCEPTED.value:
            raise InvalidTransitionError("Cannot reject an accepted proposal")
        if proposal.status == ProposalStatus.WITHDRAWN.value:
            raise InvalidTransitionError("Cannot reject a withdrawn proposal")

        rejected = self.storage.transition_proposal(
            proposal_id,
            (ProposalStatus.PENDING, ProposalStatus.SHORTLISTED),
            ProposalStatus.REJECTED,
            viewed_by_pro=False,
        )
        if rejected is None:
            raise ConflictError("Proposal changed while rejecting, please retry")
        logger.info(f"Proposal rejected | proposal={proposal_id} | job={job.id}")

        best_effort(
            "Rejection notification",
            self.collaborators.notifications.notify,
            rejected.pro_id,
            NotificationType.PROPOSAL_REJECTED,
            "Proposal rejected",
            f'Your proposal for "{job.title}" was declined',
            link="/my-proposals",
            reference_id=proposal_id,
            metadata={"job_id": job.id, "job_title": job.title},
        )
        return rejected

    def revert_to_pending(self, proposal_id: str, client_id: str) -> Proposal:
        """Undo a shortlist or rejection, clearing the hiring choice and contact reveal."""
        proposal, _ = self._get_for_client(proposal_id, client_id)
        if proposal.status == ProposalStatus.PENDING.value:
            raise InvalidTransitionError("Proposal is already pending")
        if proposal.status == ProposalStatus.ACCEPTED.value:
            raise InvalidTransitionError("Cannot revert an accepted proposal")
        if proposal.status == ProposalStatus.WITHDRAWN.value:
            raise InvalidTransitionError("Cannot revert a withdrawn proposal")

        reverted = self.storage.transition_proposal(
            proposal_id,
            (ProposalStatus.SHORTLISTED, ProposalStatus.REJECTED),
            ProposalStatus.PENDING,
            hiring_choice=None,
            contact_revealed=False,
            revealed_at=None,
            viewed_by_pro=False,
        )
        if reverted is None:
            raise ConflictError("Proposal changed while reverting, please retry")
        logger.info(f"Proposal reverted to pending | proposal={proposal_id}")
        return reverted

    def reveal_contact(self, proposal_id: str, client_id: str) -> Proposal:
        """Reveal the professional's contact details to the client."""
        self._get_for_client(proposal_id, client_id)
        revealed = self.storage.update_proposal(proposal_id, contact_revealed=True, revealed_at=utc_now())
        if revealed is None:
            raise ProposalNotFoundError(f"Proposal {proposal_id} not found")
        return revealed

    # =========================================================================
    # Reads and badge counters
    # =========================================================================

    def get_job_proposals(self, job_id: str, client_id: str) -> List[Proposal]:
        """Proposals on a job, newest first. Job owner only."""
        job = self._get_job(job_id)
        if job.client_id != client_id:
            raise UnauthorizedError("You can only view proposals for your own jobs")
        return self.storage.list_proposals(job_id=job_id)

    def get_my_proposal(self, job_id: str, pro_id: str) -> Optional[Proposal]:
        return self.storage.find_proposal(job_id, pro_id)

    def get_pro_proposals(self, pro_id: str) -> List[Proposal]:
        return self.storage.list_proposals(pro_id=pro_id)

    def count_unviewed_for_client(self, client_id: str) -> int:
        """Pending proposals on the client's jobs that the client has not opened."""
        count = 0
        for job in self.storage.list_jobs(client_id=client_id, limit=1000):
            count += sum(
                1
                for p in self.storage.list_proposals(job_id=job.id, status=ProposalStatus.PENDING, limit=1000)
                if not p.viewed_by_client
            )
        return count

    def count_unviewed_updates_for_pro(self, pro_id: str) -> int:
        """Accepted or rejected proposals whose outcome the professional has not seen."""
        return sum(
            1
            for p in self.storage.list_proposals(pro_id=pro_id, limit=1000)
            if not p.viewed_by_pro
            and p.status in (ProposalStatus.ACCEPTED.value, ProposalStatus.REJECTED.value)
        )

    def mark_viewed_by_client(self, job_id: str, client_id: str) -> int:
        """Clear the client's unviewed-proposal badge for one job.

        Callers who do not own the job are ignored.
        """
        job = self.storage.get_job(job_id)
        if job is None or job.client_id != client_id:
            return 0
        return self.storage.mark_proposals_viewed_by_client([job_id])

    def mark_updates_viewed_by_pro(self, pro_id: str) -> int:
        return self.storage.mark_proposal_updates_viewed_by_pro(pro_id)
