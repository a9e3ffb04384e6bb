"""Supabase client for the marketplace stores."""

from typing import Annotated

from fastapi import Depends

from homico.marketplace.supabase_storage import (
    JOBS_TABLE,
    MESSAGES_TABLE,
    PROPOSALS_TABLE,
    TRACKING_TABLE,
)
from supabase import Client, create_client

from .config import Settings, get_settings

# Tables the hiring flow cannot run without
REQUIRED_TABLES = (JOBS_TABLE, PROPOSALS_TABLE, TRACKING_TABLE, MESSAGES_TABLE)

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get the process-wide Supabase client, creating it on first use."""
    global _supabase_client
    if _supabase_client is None:
        settings = settings or get_settings()
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not api_key:
            raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def probe_tables(client: Client) -> dict[str, str]:
    """Read one row from each required table. Maps table name to "ok" or the error."""
    results = {}
    for table in REQUIRED_TABLES:
        try:
            client.table(table).select("id").limit(1).execute()
            results[table] = "ok"
        except Exception as e:
            results[table] = f"error: {str(e)[:50]}"
    return results


def get_db(settings: Annotated[Settings, Depends(get_settings)]) -> Client:
    return get_supabase_client(settings)


Database = Annotated[Client, Depends(get_db)]
