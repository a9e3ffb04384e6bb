"""
Shared helpers for marketplace types.

Timestamps are timezone-aware UTC datetimes in memory and ISO strings on
the wire and in Supabase rows.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utc_now() -> datetime:
    """Get current timestamp in UTC."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO datetime string. Datetimes and None pass through."""
    if value is None or isinstance(value, datetime):
        return value
    if not value:
        return None
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def enum_value(value: Any) -> Any:
    """Unwrap an Enum member to its value; other values pass through."""
    return value.value if isinstance(value, Enum) else value
