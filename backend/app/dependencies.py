"""Service wiring for request handlers."""

from typing import Annotated

from fastapi import Depends

from homico.marketplace import MarketplaceServices, build_supabase_services

from .config import Settings, get_settings
from .database import Database

_services: MarketplaceServices | None = None


def get_services(
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
) -> MarketplaceServices:
    """FastAPI dependency for the marketplace services, built once per process."""
    global _services
    if _services is None:
        _services = build_supabase_services(db, config=settings.marketplace_config())
    return _services


# Type alias for dependency injection
Services = Annotated[MarketplaceServices, Depends(get_services)]
