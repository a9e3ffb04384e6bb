"""Marketplace API routes for Homico."""

from .direct_requests import router as direct_requests_router
from .jobs import router as jobs_router
from .maintenance import router as maintenance_router
from .projects import router as projects_router
from .proposals import router as proposals_router

__all__ = [
    "jobs_router",
    "proposals_router",
    "direct_requests_router",
    "projects_router",
    "maintenance_router",
]
