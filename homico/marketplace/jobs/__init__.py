"""Jobs and proposals for the Homico marketplace.

Models:
- Job: A work listing, either public or a direct request
- Proposal: A professional's bid on a job
- JobStatus / JobType / ProposalStatus / HiringChoice

Storage:
- JobStorage: Storage protocol
- InMemoryJobStorage: Thread-safe in-process implementation

The services (JobService, HiringService, DirectRequestService) are
exported from ``homico.marketplace``.
"""

from homico.marketplace.jobs.models import (
    VALID_JOB_TRANSITIONS,
    VALID_PROPOSAL_TRANSITIONS,
    HiringChoice,
    Job,
    JobStatus,
    JobType,
    Proposal,
    ProposalStatus,
)
from homico.marketplace.jobs.storage import InMemoryJobStorage, JobStorage

__all__ = [
    # Models
    "Job",
    "Proposal",
    "JobStatus",
    "JobType",
    "ProposalStatus",
    "HiringChoice",
    "VALID_JOB_TRANSITIONS",
    "VALID_PROPOSAL_TRANSITIONS",
    # Storage
    "JobStorage",
    "InMemoryJobStorage",
]
