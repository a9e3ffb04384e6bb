"""Exceptions raised by the marketplace services.

Four kinds reach callers: not found, unauthorized (caller is not the party
allowed to act), invalid transition (action illegal from the current
status) and conflict (a concurrent request won, or a uniqueness rule hit).
"""


class MarketplaceError(Exception):
    """Base exception for marketplace operations."""

    pass


class NotFoundError(MarketplaceError):
    """Raised when an entity id does not resolve."""

    pass


class JobNotFoundError(NotFoundError):
    """Raised when a job is not found."""

    pass


class ProposalNotFoundError(NotFoundError):
    """Raised when a proposal is not found."""

    pass


class ProjectNotFoundError(NotFoundError):
    """Raised when no project tracking exists for a job."""

    pass


class UnauthorizedError(MarketplaceError):
    """Raised when the caller is not the party allowed to perform an action."""

    pass


class VerificationRequiredError(UnauthorizedError):
    """Raised when an unverified professional tries to submit a proposal."""

    pass


class CategoryNotEligibleError(UnauthorizedError):
    """Raised when a job category does not take proposals."""

    pass


class InvalidTransitionError(MarketplaceError):
    """Raised when an action is illegal from the entity's current status."""

    pass


class CancellationBlockedError(InvalidTransitionError):
    """Raised when a job cannot be cancelled because work is underway."""

    def __init__(self, job_id: str, stage: str):
        self.job_id = job_id
        self.stage = stage
        super().__init__(
            f"Cannot cancel job {job_id}: the project is already at stage '{stage}'"
        )


class ConflictError(MarketplaceError):
    """Raised when a concurrent request already changed the entity."""

    pass


class DuplicateProposalError(ConflictError):
    """Raised when a professional already submitted a proposal for a job."""

    pass


class RequestUnavailableError(ConflictError):
    """Raised when a direct request was taken, expired, or never offered."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("This job is no longer available")


class TrackingExistsError(ConflictError):
    """Raised when a job already has a project tracking record."""

    pass
