"""
Jobs storage layer.

Provides persistence for jobs and proposals. Every method is a single
atomic operation against the backing store; the compare-and-swap methods
(``transition_job``, ``transition_proposal``, ``claim_direct_request``)
only write when the document still matches the expected state and return
None otherwise.
"""

import copy
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from homico.marketplace.errors import DuplicateProposalError
from homico.marketplace.jobs.models import (
    Job,
    JobStatus,
    JobType,
    Proposal,
    ProposalStatus,
)
from homico.marketplace.types import enum_value


class JobStorage(Protocol):
    """Protocol for job and proposal persistence backends."""

    # Jobs
    def save_job(self, job: Job) -> str:
        """Save a new job. Returns the job ID."""
        ...

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        ...

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        client_id: Optional[str] = None,
        job_type: Optional[JobType] = None,
        invited_pro_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        """List jobs with optional filters, newest first."""
        ...

    def find_recent_job(self, client_id: str, title: str, since: datetime) -> Optional[Job]:
        """Find a job by the same client and title created at or after ``since``."""
        ...

    def next_job_number(self, floor: int) -> int:
        """Allocate the next sequential job number (greater than ``floor``)."""
        ...

    def update_job(self, job_id: str, **updates) -> Optional[Job]:
        """Apply field updates unconditionally. Returns the updated job."""
        ...

    def transition_job(
        self, job_id: str, expected_status: JobStatus, new_status: JobStatus, **updates
    ) -> Optional[Job]:
        """Move a job to ``new_status`` only if it is still in ``expected_status``."""
        ...

    def claim_direct_request(self, job_id: str, pro_id: str) -> Optional[Job]:
        """Hire ``pro_id`` on an open direct request that invited them.

        Matches only when the job is a direct request, is open and lists the
        professional as invited. A professional who declined earlier may
        still accept; the winner is dropped from the declined roster.
        Returns None on no match.
        """
        ...

    def add_invited_pros(self, job_id: str, pro_ids: Iterable[str]) -> Tuple[Optional[Job], List[str]]:
        """Set-add professionals to the invite roster.

        Returns the updated job and the IDs that were newly added.
        """
        ...

    def add_declined_pro(self, job_id: str, pro_id: str) -> Tuple[Optional[Job], bool]:
        """Set-add a professional to the declined roster.

        Returns the updated job and whether this call added the professional.
        """
        ...

    def increment_proposal_count(self, job_id: str, by: int = 1) -> None:
        ...

    def increment_view_count(self, job_id: str) -> None:
        ...

    def list_expirable_jobs(self, now: datetime) -> List[Job]:
        """Open jobs whose listing lapsed at or before ``now``."""
        ...

    def expire_open_jobs(self, now: datetime) -> List[str]:
        """Bulk-move lapsed open jobs to expired. Returns the expired job IDs."""
        ...

    # Proposals
    def save_proposal(self, proposal: Proposal) -> str:
        """Save a new proposal.

        Raises:
            DuplicateProposalError: The professional already has a proposal on the job
        """
        ...

    def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        ...

    def find_proposal(self, job_id: str, pro_id: str) -> Optional[Proposal]:
        """Get the proposal a professional submitted on a job, if any."""
        ...

    def list_proposals(
        self,
        job_id: Optional[str] = None,
        pro_id: Optional[str] = None,
        status: Optional[ProposalStatus] = None,
        limit: int = 100,
    ) -> List[Proposal]:
        """List proposals with optional filters, newest first."""
        ...

    def update_proposal(self, proposal_id: str, **updates) -> Optional[Proposal]:
        ...

    def transition_proposal(
        self,
        proposal_id: str,
        expected_statuses: Iterable[ProposalStatus],
        new_status: ProposalStatus,
        **updates,
    ) -> Optional[Proposal]:
        """Move a proposal to ``new_status`` only if its status is one of ``expected_statuses``."""
        ...

    def mark_proposals_viewed_by_client(self, job_ids: Iterable[str]) -> int:
        """Flag pending proposals on the given jobs as seen by the client."""
        ...

    def mark_proposal_updates_viewed_by_pro(self, pro_id: str) -> int:
        """Flag a professional's accepted/rejected proposals as seen."""
        ...


class InMemoryJobStorage:
    """In-memory job storage for testing and local development.

    One re-entrant lock serializes every method, which gives each call the
    same all-or-nothing behaviour as a single-row conditional update.
    """

    def __init__(self):
        """Initialize empty storage."""
        self._lock = threading.RLock()
        self._jobs: Dict[str, Job] = {}
        self._proposals: Dict[str, Proposal] = {}
        self._proposal_index: Dict[Tuple[str, str], str] = {}  # (job_id, pro_id) -> proposal_id
        self._last_job_number = 0

    def _utc_now(self) -> datetime:
        """Get current UTC timestamp."""
        return datetime.now(timezone.utc)

    # === Jobs ===

    def save_job(self, job: Job) -> str:
        """Save a new job."""
        with self._lock:
            self._jobs[job.id] = copy.deepcopy(job)
            self._last_job_number = max(self._last_job_number, job.job_number)
            return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        client_id: Optional[str] = None,
        job_type: Optional[JobType] = None,
        invited_pro_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        """List jobs with optional filters."""
        with self._lock:
            jobs = list(self._jobs.values())

            if status is not None:
                jobs = [j for j in jobs if j.status == enum_value(status)]
            if client_id is not None:
                jobs = [j for j in jobs if j.client_id == client_id]
            if job_type is not None:
                jobs = [j for j in jobs if j.job_type == enum_value(job_type)]
            if invited_pro_id is not None:
                jobs = [j for j in jobs if invited_pro_id in j.invited_pros]

            # Sort by created_at desc
            jobs.sort(key=lambda j: j.created_at or self._utc_now(), reverse=True)

            return [copy.deepcopy(j) for j in jobs[offset : offset + limit]]

    def find_recent_job(self, client_id: str, title: str, since: datetime) -> Optional[Job]:
        with self._lock:
            for job in self._jobs.values():
                if (
                    job.client_id == client_id
                    and job.title == title
                    and job.created_at is not None
                    and job.created_at >= since
                ):
                    return copy.deepcopy(job)
            return None

    def next_job_number(self, floor: int) -> int:
        with self._lock:
            self._last_job_number = max(self._last_job_number, floor) + 1
            return self._last_job_number

    def _write_job(self, job: Job, **updates) -> Job:
        # replace() re-runs Job validation, so a write can never break the hire invariant
        updated = replace(job, updated_at=self._utc_now(), **updates)
        self._jobs[job.id] = updated
        return copy.deepcopy(updated)

    def update_job(self, job_id: str, **updates) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            return self._write_job(job, **updates)

    def transition_job(
        self, job_id: str, expected_status: JobStatus, new_status: JobStatus, **updates
    ) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != enum_value(expected_status):
                return None
            return self._write_job(job, status=enum_value(new_status), **updates)

    def claim_direct_request(self, job_id: str, pro_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if (
                job is None
                or job.job_type != JobType.DIRECT_REQUEST.value
                or job.status != JobStatus.OPEN.value
                or pro_id not in job.invited_pros
            ):
                return None
            return self._write_job(
                job,
                status=JobStatus.IN_PROGRESS.value,
                hired_pro_id=pro_id,
                declined_pros=[p for p in job.declined_pros if p != pro_id],
            )

    def add_invited_pros(self, job_id: str, pro_ids: Iterable[str]) -> Tuple[Optional[Job], List[str]]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None, []
            added = []
            for pro_id in pro_ids:
                if pro_id not in job.invited_pros and pro_id not in added:
                    added.append(pro_id)
            if not added:
                return copy.deepcopy(job), []
            return self._write_job(job, invited_pros=job.invited_pros + added), added

    def add_declined_pro(self, job_id: str, pro_id: str) -> Tuple[Optional[Job], bool]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None, False
            if pro_id in job.declined_pros:
                return copy.deepcopy(job), False
            return self._write_job(job, declined_pros=job.declined_pros + [pro_id]), True

    def increment_proposal_count(self, job_id: str, by: int = 1) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.proposal_count = max(0, job.proposal_count + by)

    def increment_view_count(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.view_count += 1

    def list_expirable_jobs(self, now: datetime) -> List[Job]:
        with self._lock:
            return [
                copy.deepcopy(j)
                for j in self._jobs.values()
                if j.status == JobStatus.OPEN.value and j.expires_at is not None and j.expires_at <= now
            ]

    def expire_open_jobs(self, now: datetime) -> List[str]:
        with self._lock:
            expired = []
            for job in self.list_expirable_jobs(now):
                self._write_job(self._jobs[job.id], status=JobStatus.EXPIRED.value)
                expired.append(job.id)
            return expired

    # === Proposals ===

    def save_proposal(self, proposal: Proposal) -> str:
        """Save a new proposal, enforcing one proposal per (job, pro)."""
        with self._lock:
            key = (proposal.job_id, proposal.pro_id)
            existing = self._proposal_index.get(key)
            if existing is not None and existing != proposal.id:
                raise DuplicateProposalError(
                    f"Professional {proposal.pro_id} already submitted a proposal for job {proposal.job_id}"
                )
            self._proposals[proposal.id] = copy.deepcopy(proposal)
            self._proposal_index[key] = proposal.id
            return proposal.id

    def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        with self._lock:
            proposal = self._proposals.get(proposal_id)
            return copy.deepcopy(proposal) if proposal else None

    def find_proposal(self, job_id: str, pro_id: str) -> Optional[Proposal]:
        with self._lock:
            proposal_id = self._proposal_index.get((job_id, pro_id))
            return self.get_proposal(proposal_id) if proposal_id else None

    def list_proposals(
        self,
        job_id: Optional[str] = None,
        pro_id: Optional[str] = None,
        status: Optional[ProposalStatus] = None,
        limit: int = 100,
    ) -> List[Proposal]:
        """List proposals with optional filters."""
        with self._lock:
            proposals = list(self._proposals.values())

            if job_id is not None:
                proposals = [p for p in proposals if p.job_id == job_id]
            if pro_id is not None:
                proposals = [p for p in proposals if p.pro_id == pro_id]
            if status is not None:
                proposals = [p for p in proposals if p.status == enum_value(status)]

            # Sort by created_at desc
            proposals.sort(key=lambda p: p.created_at or self._utc_now(), reverse=True)

            return [copy.deepcopy(p) for p in proposals[:limit]]

    def _write_proposal(self, proposal: Proposal, **updates) -> Proposal:
        updated = replace(proposal, updated_at=self._utc_now(), **updates)
        self._proposals[proposal.id] = updated
        return copy.deepcopy(updated)

    def update_proposal(self, proposal_id: str, **updates) -> Optional[Proposal]:
        with self._lock:
            proposal = self._proposals.get(proposal_id)
            if proposal is None:
                return None
            return self._write_proposal(proposal, **updates)

    def transition_proposal(
        self,
        proposal_id: str,
        expected_statuses: Iterable[ProposalStatus],
        new_status: ProposalStatus,
        **updates,
    ) -> Optional[Proposal]:
        with self._lock:
            proposal = self._proposals.get(proposal_id)
            if proposal is None or proposal.status not in {enum_value(s) for s in expected_statuses}:
                return None
            return self._write_proposal(proposal, status=enum_value(new_status), **updates)

    def mark_proposals_viewed_by_client(self, job_ids: Iterable[str]) -> int:
        with self._lock:
            job_ids = set(job_ids)
            count = 0
            for proposal in self._proposals.values():
                if (
                    proposal.job_id in job_ids
                    and proposal.status == ProposalStatus.PENDING.value
                    and not proposal.viewed_by_client
                ):
                    proposal.viewed_by_client = True
                    count += 1
            return count

    def mark_proposal_updates_viewed_by_pro(self, pro_id: str) -> int:
        with self._lock:
            count = 0
            for proposal in self._proposals.values():
                if (
                    proposal.pro_id == pro_id
                    and proposal.status in (ProposalStatus.ACCEPTED.value, ProposalStatus.REJECTED.value)
                    and not proposal.viewed_by_pro
                ):
                    proposal.viewed_by_pro = True
                    count += 1
            return count
