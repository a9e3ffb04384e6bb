"""API routes."""

from .marketplace import (
    direct_requests_router,
    jobs_router,
    maintenance_router,
    projects_router,
    proposals_router,
)

__all__ = [
    "jobs_router",
    "proposals_router",
    "direct_requests_router",
    "projects_router",
    "maintenance_router",
]
