"""Homico marketplace: jobs, proposals, direct requests and project tracking.

Services:
- JobService: Posting, invitations, cancellation, expiry and renewal
- HiringService: Proposals from submission to hire
- DirectRequestService: First-accept-wins direct requests
- ProjectTrackingService: Stages, history, chat and completion
- MaintenanceService: Expiration sweep and orphaned-hire repair

Use ``build_services`` to wire them over a storage backend.
"""

from homico.marketplace.collaborators import Collaborators, NotificationType
from homico.marketplace.config import MarketplaceConfig
from homico.marketplace.errors import (
    CancellationBlockedError,
    CategoryNotEligibleError,
    ConflictError,
    DuplicateProposalError,
    InvalidTransitionError,
    JobNotFoundError,
    MarketplaceError,
    NotFoundError,
    ProjectNotFoundError,
    ProposalNotFoundError,
    RequestUnavailableError,
    TrackingExistsError,
    UnauthorizedError,
    VerificationRequiredError,
)
from homico.marketplace.jobs.direct_requests import DeclineResult, DirectRequestService
from homico.marketplace.jobs.hiring import HiringService
from homico.marketplace.jobs.service import JobService
from homico.marketplace.maintenance import MaintenanceService
from homico.marketplace.services import (
    MarketplaceServices,
    build_in_memory_services,
    build_services,
    build_supabase_services,
)
from homico.marketplace.tracking.service import ProjectTrackingService

__all__ = [
    # Services
    "JobService",
    "HiringService",
    "DirectRequestService",
    "DeclineResult",
    "ProjectTrackingService",
    "MaintenanceService",
    "MarketplaceServices",
    "build_services",
    "build_in_memory_services",
    "build_supabase_services",
    # Configuration
    "Collaborators",
    "NotificationType",
    "MarketplaceConfig",
    # Errors
    "MarketplaceError",
    "NotFoundError",
    "JobNotFoundError",
    "ProposalNotFoundError",
    "ProjectNotFoundError",
    "UnauthorizedError",
    "VerificationRequiredError",
    "CategoryNotEligibleError",
    "InvalidTransitionError",
    "CancellationBlockedError",
    "ConflictError",
    "DuplicateProposalError",
    "RequestUnavailableError",
    "TrackingExistsError",
]
