"""
Project tracking storage layer.

One tracking record per job. ``update_tracking`` takes an optional
``expected`` mapping of field values that must still hold for the write to
go through, which is how stage changes and confirmation stay exactly-once
under concurrent requests.
"""

import copy
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from homico.marketplace.errors import TrackingExistsError
from homico.marketplace.tracking.models import HistoryEvent, ProjectMessage, ProjectTracking


class TrackingStorage(Protocol):
    """Protocol for project tracking persistence backends."""

    def save_tracking(self, tracking: ProjectTracking) -> str:
        """Save a new tracking record. Returns the tracking ID.

        Raises:
            TrackingExistsError: The job already has a tracking record
        """
        ...

    def get_tracking(self, job_id: str) -> Optional[ProjectTracking]:
        """Get the tracking record for a job, with history and messages."""
        ...

    def list_trackings(
        self,
        client_id: Optional[str] = None,
        pro_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[ProjectTracking]:
        """List tracking records, most recently hired first."""
        ...

    def update_tracking(
        self, job_id: str, expected: Optional[Dict[str, Any]] = None, **updates
    ) -> Optional[ProjectTracking]:
        """Apply updates if every ``expected`` field still matches.

        Returns the updated record, or None if the record is missing or a
        precondition failed.
        """
        ...

    def append_history_event(self, job_id: str, event: HistoryEvent) -> bool:
        """Append to the project timeline. Returns False if no record exists."""
        ...

    def append_message(self, job_id: str, message: ProjectMessage) -> bool:
        """Append a chat message. Returns False if no record exists."""
        ...


class InMemoryTrackingStorage:
    """In-memory tracking storage for testing and local development."""

    def __init__(self):
        """Initialize empty storage."""
        self._lock = threading.RLock()
        self._trackings: Dict[str, ProjectTracking] = {}  # job_id -> tracking

    def _utc_now(self) -> datetime:
        return datetime.now(timezone.utc)

    def save_tracking(self, tracking: ProjectTracking) -> str:
        with self._lock:
            if tracking.job_id in self._trackings:
                raise TrackingExistsError(f"Job {tracking.job_id} already has a project tracking record")
            self._trackings[tracking.job_id] = copy.deepcopy(tracking)
            return tracking.id

    def get_tracking(self, job_id: str) -> Optional[ProjectTracking]:
        with self._lock:
            tracking = self._trackings.get(job_id)
            return copy.deepcopy(tracking) if tracking else None

    def list_trackings(
        self,
        client_id: Optional[str] = None,
        pro_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[ProjectTracking]:
        with self._lock:
            trackings = list(self._trackings.values())
            if client_id is not None:
                trackings = [t for t in trackings if t.client_id == client_id]
            if pro_id is not None:
                trackings = [t for t in trackings if t.pro_id == pro_id]
            trackings.sort(key=lambda t: t.hired_at, reverse=True)
            return [copy.deepcopy(t) for t in trackings[:limit]]

    def update_tracking(
        self, job_id: str, expected: Optional[Dict[str, Any]] = None, **updates
    ) -> Optional[ProjectTracking]:
        with self._lock:
            tracking = self._trackings.get(job_id)
            if tracking is None:
                return None
            for name, value in (expected or {}).items():
                if getattr(tracking, name) != value:
                    return None
            updated = replace(tracking, updated_at=self._utc_now(), **updates)
            self._trackings[job_id] = updated
            return copy.deepcopy(updated)

    def append_history_event(self, job_id: str, event: HistoryEvent) -> bool:
        with self._lock:
            tracking = self._trackings.get(job_id)
            if tracking is None:
                return False
            tracking.history.append(copy.deepcopy(event))
            return True

    def append_message(self, job_id: str, message: ProjectMessage) -> bool:
        with self._lock:
            tracking = self._trackings.get(job_id)
            if tracking is None:
                return False
            tracking.messages.append(copy.deepcopy(message))
            return True
