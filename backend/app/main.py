"""Homico Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from homico.marketplace.errors import MarketplaceError

from .config import get_settings
from .errors import marketplace_error_handler
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes.marketplace import (
    direct_requests_router,
    jobs_router,
    maintenance_router,
    projects_router,
    proposals_router,
)

API_PREFIX = "/api/v1"

logger = get_logger("app.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.debug)
    logger.info(f"Starting Homico Backend API (debug={settings.debug})")
    yield
    logger.info("Shutting down Homico Backend API")


app = FastAPI(
    title="Homico Backend API",
    description="Hiring and project tracking for the Homico marketplace",
    version="0.4.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Marketplace errors -> 4xx
app.add_exception_handler(MarketplaceError, marketplace_error_handler)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(proposals_router, prefix=API_PREFIX)
app.include_router(direct_requests_router, prefix=API_PREFIX)
app.include_router(projects_router, prefix=API_PREFIX)
app.include_router(maintenance_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "homico-backend",
        "version": "0.4.0",
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Health check that reads each marketplace table."""
    from .database import get_supabase_client, probe_tables

    try:
        tables = probe_tables(get_supabase_client())
    except ValueError as e:
        return {"status": "degraded", "database": f"error: {e}", "tables": {}}

    healthy = all(result == "ok" for result in tables.values())
    return {
        "status": "healthy" if healthy else "degraded",
        "database": "connected" if healthy else "degraded",
        "tables": tables,
    }
