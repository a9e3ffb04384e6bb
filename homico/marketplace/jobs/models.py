"""
Job and proposal data models.

A Job is a work request posted by a client. Marketplace jobs take
proposals from professionals; direct-request jobs are offered to a fixed
roster of invited professionals, the first of whom to accept is hired.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from homico.marketplace.types import enum_value, format_datetime, parse_datetime


class JobStatus(str, Enum):
    """Job lifecycle status."""

    OPEN = "open"  # Listed, accepting proposals or invite responses
    IN_PROGRESS = "in_progress"  # Professional hired, work underway
    COMPLETED = "completed"  # Client confirmed completion
    CANCELLED = "cancelled"  # Cancelled by the client
    EXPIRED = "expired"  # Listing lapsed, may be renewed


class JobType(str, Enum):
    """How professionals get onto a job."""

    MARKETPLACE = "marketplace"  # Open bidding through proposals
    DIRECT_REQUEST = "direct_request"  # Invite-only, first accept wins


class ProposalStatus(str, Enum):
    """Proposal lifecycle status."""

    PENDING = "pending"
    SHORTLISTED = "shortlisted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class HiringChoice(str, Enum):
    """Contact mode picked by the client when shortlisting."""

    HOMICO = "homico"  # Keep talking in-platform
    DIRECT = "direct"  # Reveal private contact details right away


# Valid state transitions for jobs
VALID_JOB_TRANSITIONS: Dict[JobStatus, List[JobStatus]] = {
    JobStatus.OPEN: [JobStatus.IN_PROGRESS, JobStatus.CANCELLED, JobStatus.EXPIRED],
    JobStatus.IN_PROGRESS: [JobStatus.COMPLETED, JobStatus.CANCELLED],
    JobStatus.EXPIRED: [JobStatus.OPEN],
    JobStatus.COMPLETED: [],  # Terminal
    JobStatus.CANCELLED: [],  # Terminal
}

# Valid state transitions for proposals
VALID_PROPOSAL_TRANSITIONS: Dict[ProposalStatus, List[ProposalStatus]] = {
    ProposalStatus.PENDING: [
        ProposalStatus.SHORTLISTED,
        ProposalStatus.ACCEPTED,
        ProposalStatus.REJECTED,
        ProposalStatus.WITHDRAWN,
    ],
    ProposalStatus.SHORTLISTED: [
        ProposalStatus.PENDING,
        ProposalStatus.ACCEPTED,
        ProposalStatus.REJECTED,
        ProposalStatus.WITHDRAWN,
    ],
    ProposalStatus.REJECTED: [
        ProposalStatus.PENDING,
        ProposalStatus.ACCEPTED,
        ProposalStatus.WITHDRAWN,
    ],
    ProposalStatus.ACCEPTED: [],  # Terminal
    ProposalStatus.WITHDRAWN: [],  # Terminal
}

# Statuses in which a job has a hired professional
HIRED_STATUSES = (JobStatus.IN_PROGRESS.value, JobStatus.COMPLETED.value)

MAX_TITLE_LENGTH = 200


@dataclass
class Job:
    """A work request posted by a client.

    Attributes:
        id: Unique identifier (UUID)
        client_id: Client who posted the job, never changes
        title: Short job title (max 200 chars)
        description: Detailed description of the work
        category: Service category, gates proposal-based bidding
        job_number: Sequential display number
        job_type: marketplace or direct_request
        status: Current lifecycle status
        hired_pro_id: Professional doing the job (set on hire)
        invited_pros: Professionals offered a direct request, in invite order
        declined_pros: Invited professionals who declined
        proposal_count: Number of proposals received
        view_count: Number of listing views
        budget_amount: Client budget, becomes the agreed price on direct requests
        location: Free-form location string
        images: Reference image URLs
        expires_at: When the listing lapses
    """

    id: str
    client_id: str
    title: str
    description: str = ""
    category: Optional[str] = None
    job_number: int = 0
    job_type: str = JobType.MARKETPLACE.value
    status: str = JobStatus.OPEN.value
    hired_pro_id: Optional[str] = None
    invited_pros: List[str] = field(default_factory=list)
    declined_pros: List[str] = field(default_factory=list)
    proposal_count: int = 0
    view_count: int = 0
    budget_amount: Optional[float] = None
    location: Optional[str] = None
    images: List[str] = field(default_factory=list)

    # Timestamps
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate job data."""
        self.status = enum_value(self.status)
        self.job_type = enum_value(self.job_type)

        valid_statuses = [s.value for s in JobStatus]
        if self.status not in valid_statuses:
            raise ValueError(f"Invalid status: {self.status}. Must be one of {valid_statuses}")
        valid_types = [t.value for t in JobType]
        if self.job_type not in valid_types:
            raise ValueError(f"Invalid job type: {self.job_type}. Must be one of {valid_types}")

        if not self.title or not self.title.strip():
            raise ValueError("Title cannot be empty")
        if len(self.title) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title too long (max {MAX_TITLE_LENGTH} characters)")

        if self.proposal_count < 0 or self.view_count < 0:
            raise ValueError("Counters cannot be negative")
        if self.budget_amount is not None and self.budget_amount < 0:
            raise ValueError("Budget cannot be negative")

        if self.status in HIRED_STATUSES and not self.hired_pro_id:
            raise ValueError(f"A {self.status} job must have a hired professional")
        if self.hired_pro_id and self.status not in HIRED_STATUSES:
            raise ValueError(f"A {self.status} job cannot have a hired professional")

    @property
    def is_open(self) -> bool:
        return self.status == JobStatus.OPEN.value

    @property
    def is_direct_request(self) -> bool:
        return self.job_type == JobType.DIRECT_REQUEST.value

    @property
    def is_terminal(self) -> bool:
        """Check if job is in a terminal state."""
        return self.status in (JobStatus.COMPLETED.value, JobStatus.CANCELLED.value)

    def can_transition_to(self, new_status: JobStatus) -> bool:
        """Check if transition to new status is valid."""
        current = JobStatus(self.status)
        return JobStatus(new_status) in VALID_JOB_TRANSITIONS.get(current, [])

    def pending_invitees(self, exclude: Optional[str] = None) -> List[str]:
        """Invited professionals who have not declined, optionally minus one."""
        declined = set(self.declined_pros)
        return [p for p in self.invited_pros if p not in declined and p != exclude]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "job_number": self.job_number,
            "client_id": self.client_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "job_type": self.job_type,
            "status": self.status,
            "hired_pro_id": self.hired_pro_id,
            "invited_pros": list(self.invited_pros),
            "declined_pros": list(self.declined_pros),
            "proposal_count": self.proposal_count,
            "view_count": self.view_count,
            "budget_amount": self.budget_amount,
            "location": self.location,
            "images": list(self.images),
            "expires_at": format_datetime(self.expires_at),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "cancelled_at": format_datetime(self.cancelled_at),
            "completed_at": format_datetime(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            client_id=data["client_id"],
            title=data["title"],
            description=data.get("description") or "",
            category=data.get("category"),
            job_number=data.get("job_number") or 0,
            job_type=data.get("job_type", JobType.MARKETPLACE.value),
            status=data.get("status", JobStatus.OPEN.value),
            hired_pro_id=data.get("hired_pro_id"),
            invited_pros=list(data.get("invited_pros") or []),
            declined_pros=list(data.get("declined_pros") or []),
            proposal_count=data.get("proposal_count") or 0,
            view_count=data.get("view_count") or 0,
            budget_amount=data.get("budget_amount"),
            location=data.get("location"),
            images=list(data.get("images") or []),
            expires_at=parse_datetime(data.get("expires_at")),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            cancelled_at=parse_datetime(data.get("cancelled_at")),
            completed_at=parse_datetime(data.get("completed_at")),
        )


@dataclass
class Proposal:
    """A professional's bid on a marketplace job.

    Attributes:
        id: Unique identifier (UUID)
        job_id: Job being bid on
        pro_id: Professional submitting the bid
        cover_letter: Pitch text
        proposed_price: Quoted price
        estimated_duration: Quoted duration, in estimated_duration_unit
        status: Current lifecycle status
        hiring_choice: Contact mode picked at shortlist time
        contact_revealed: Whether private contact details were shared
        viewed_by_client: Read flag for the client's badge counter
        viewed_by_pro: Read flag for the professional's badge counter
    """

    id: str
    job_id: str
    pro_id: str
    cover_letter: str
    proposed_price: Optional[float] = None
    estimated_duration: Optional[int] = None
    estimated_duration_unit: Optional[str] = None
    status: str = ProposalStatus.PENDING.value
    hiring_choice: Optional[str] = None
    contact_revealed: bool = False
    revealed_at: Optional[datetime] = None
    viewed_by_client: bool = False
    viewed_by_pro: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate proposal data."""
        self.status = enum_value(self.status)
        self.hiring_choice = enum_value(self.hiring_choice)

        valid_statuses = [s.value for s in ProposalStatus]
        if self.status not in valid_statuses:
            raise ValueError(f"Invalid status: {self.status}. Must be one of {valid_statuses}")
        if self.hiring_choice is not None and self.hiring_choice not in [c.value for c in HiringChoice]:
            raise ValueError(f"Invalid hiring choice: {self.hiring_choice}")

        if not self.cover_letter or not self.cover_letter.strip():
            raise ValueError("Cover letter cannot be empty")
        if self.proposed_price is not None and self.proposed_price < 0:
            raise ValueError("Proposed price cannot be negative")
        if self.estimated_duration is not None and self.estimated_duration < 0:
            raise ValueError("Estimated duration cannot be negative")

    @property
    def is_terminal(self) -> bool:
        return self.status in (ProposalStatus.ACCEPTED.value, ProposalStatus.WITHDRAWN.value)

    def can_transition_to(self, new_status: ProposalStatus) -> bool:
        """Check if transition to new status is valid."""
        current = ProposalStatus(self.status)
        return ProposalStatus(new_status) in VALID_PROPOSAL_TRANSITIONS.get(current, [])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "job_id": self.job_id,
            "pro_id": self.pro_id,
            "cover_letter": self.cover_letter,
            "proposed_price": self.proposed_price,
            "estimated_duration": self.estimated_duration,
            "estimated_duration_unit": self.estimated_duration_unit,
            "status": self.status,
            "hiring_choice": self.hiring_choice,
            "contact_revealed": self.contact_revealed,
            "revealed_at": format_datetime(self.revealed_at),
            "viewed_by_client": self.viewed_by_client,
            "viewed_by_pro": self.viewed_by_pro,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proposal":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            pro_id=data["pro_id"],
            cover_letter=data["cover_letter"],
            proposed_price=data.get("proposed_price"),
            estimated_duration=data.get("estimated_duration"),
            estimated_duration_unit=data.get("estimated_duration_unit"),
            status=data.get("status", ProposalStatus.PENDING.value),
            hiring_choice=data.get("hiring_choice"),
            contact_revealed=bool(data.get("contact_revealed", False)),
            revealed_at=parse_datetime(data.get("revealed_at")),
            viewed_by_client=bool(data.get("viewed_by_client", False)),
            viewed_by_pro=bool(data.get("viewed_by_pro", True)),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )
