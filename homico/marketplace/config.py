"""Configuration for the Homico marketplace core."""

import os
from dataclasses import dataclass
from typing import Optional, Tuple


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class MarketplaceConfig:
    """Tunables shared by the job, hiring and tracking services.

    Defaults match production behaviour; tests override individual fields.
    """

    # Days an open job stays listed before the expiration sweep picks it up
    job_lifetime_days: int = 30

    # Marketplace categories that accept proposal-based bidding.
    # Every other category goes through comments instead.
    proposal_categories: Tuple[str, ...] = ("design", "architecture")

    # Same client + same title inside this window returns the existing job
    duplicate_window_seconds: int = 30

    # Job numbers start after this value (first job is 1001)
    first_job_number: int = 1000

    # Tracking stages from which an in-progress job may still be cancelled
    cancellable_stages: Tuple[str, ...] = ("hired",)

    # Public site used to build links in SMS messages
    site_url: str = "https://www.homico.ge"

    def __post_init__(self):
        if self.job_lifetime_days <= 0:
            raise ValueError("job_lifetime_days must be positive")
        if self.duplicate_window_seconds < 0:
            raise ValueError("duplicate_window_seconds cannot be negative")
        self.proposal_categories = tuple(c.lower().strip() for c in self.proposal_categories)

    def accepts_proposals(self, category: Optional[str]) -> bool:
        """Check whether a job category is open to proposal-based bidding."""
        if not category:
            return False
        return category.lower().strip() in self.proposal_categories

    @classmethod
    def from_env(cls) -> "MarketplaceConfig":
        """Build a config from HOMICO_* environment variables."""
        kwargs = {
            "job_lifetime_days": _env_int("HOMICO_JOB_LIFETIME_DAYS", 30),
            "duplicate_window_seconds": _env_int("HOMICO_DUPLICATE_WINDOW_SECONDS", 30),
        }
        categories = os.environ.get("HOMICO_PROPOSAL_CATEGORIES")
        if categories:
            kwargs["proposal_categories"] = tuple(
                c for c in (s.strip() for s in categories.split(",")) if c
            )
        site_url = os.environ.get("HOMICO_SITE_URL")
        if site_url:
            kwargs["site_url"] = site_url.rstrip("/")
        return cls(**kwargs)
