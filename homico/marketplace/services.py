"""
Service wiring.

Builds every marketplace service over one pair of storage backends so the
backend, the CLI and the tests share a single object graph.
"""

from dataclasses import dataclass
from typing import Optional

from homico.marketplace.collaborators import Collaborators
from homico.marketplace.config import MarketplaceConfig
from homico.marketplace.jobs.direct_requests import DirectRequestService
from homico.marketplace.jobs.hiring import HiringService
from homico.marketplace.jobs.service import JobService
from homico.marketplace.jobs.storage import InMemoryJobStorage, JobStorage
from homico.marketplace.maintenance import MaintenanceService
from homico.marketplace.tracking.service import ProjectTrackingService
from homico.marketplace.tracking.storage import InMemoryTrackingStorage, TrackingStorage


@dataclass
class MarketplaceServices:
    jobs: JobService
    hiring: HiringService
    direct_requests: DirectRequestService
    tracking: ProjectTrackingService
    maintenance: MaintenanceService
    collaborators: Collaborators
    config: MarketplaceConfig


def build_services(
    job_storage: JobStorage,
    tracking_storage: TrackingStorage,
    collaborators: Optional[Collaborators] = None,
    config: Optional[MarketplaceConfig] = None,
) -> MarketplaceServices:
    """Wire the marketplace services over the given storage backends."""
    collaborators = collaborators or Collaborators()
    config = config or MarketplaceConfig()

    tracking = ProjectTrackingService(tracking_storage, job_storage, collaborators)
    jobs = JobService(job_storage, tracking_storage, collaborators, config)
    return MarketplaceServices(
        jobs=jobs,
        hiring=HiringService(job_storage, tracking, collaborators, config),
        direct_requests=DirectRequestService(job_storage, tracking, collaborators),
        tracking=tracking,
        maintenance=MaintenanceService(jobs, tracking),
        collaborators=collaborators,
        config=config,
    )


def build_in_memory_services(
    collaborators: Optional[Collaborators] = None,
    config: Optional[MarketplaceConfig] = None,
) -> MarketplaceServices:
    """Services over fresh in-memory storage, for local runs and tests."""
    return build_services(InMemoryJobStorage(), InMemoryTrackingStorage(), collaborators, config)


def build_supabase_services(
    client,
    collaborators: Optional[Collaborators] = None,
    config: Optional[MarketplaceConfig] = None,
) -> MarketplaceServices:
    """Services over Supabase tables.

    Notifications, completed-job counters and the verification check for
    hires go through Supabase unless the caller supplies its own
    collaborators.
    """
    from homico.marketplace.supabase_storage import (
        SupabaseJobStorage,
        SupabaseNotificationSink,
        SupabaseProStats,
        SupabaseTrackingStorage,
        SupabaseTrustGate,
    )

    if collaborators is None:
        collaborators = Collaborators(
            notifications=SupabaseNotificationSink(client),
            pro_stats=SupabaseProStats(client),
            trust=SupabaseTrustGate(client),
        )
    return build_services(
        SupabaseJobStorage(client), SupabaseTrackingStorage(client), collaborators, config
    )
