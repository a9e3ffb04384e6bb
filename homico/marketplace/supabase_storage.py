"""
Supabase storage backends.

Implements ``JobStorage`` and ``TrackingStorage`` over supabase-py. Status
compare-and-swaps use the UPDATE ... WHERE status = expected pattern via
chained filters. Array set-adds, counters and the direct-request claim go
through the Postgres functions in ``backend/migrations/001_marketplace.sql``.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from postgrest.exceptions import APIError
from supabase import Client

from homico.marketplace.collaborators import NotificationType
from homico.marketplace.errors import DuplicateProposalError, TrackingExistsError
from homico.marketplace.jobs.models import Job, JobStatus, JobType, Proposal, ProposalStatus
from homico.marketplace.tracking.models import HistoryEvent, ProjectMessage, ProjectTracking
from homico.marketplace.types import enum_value, utc_now

logger = logging.getLogger(__name__)

JOBS_TABLE = "jobs"
PROPOSALS_TABLE = "proposals"
TRACKING_TABLE = "project_trackings"
HISTORY_TABLE = "project_history"
MESSAGES_TABLE = "project_messages"
NOTIFICATIONS_TABLE = "notifications"
PRO_PROFILES_TABLE = "pro_profiles"

VERIFIED = "verified"

# Postgres error codes
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


def _serialize(value: Any) -> Any:
    """Convert a model value into something PostgREST accepts as JSON."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


def _payload(updates: Dict[str, Any]) -> Dict[str, Any]:
    data = {k: _serialize(v) for k, v in updates.items()}
    data["updated_at"] = utc_now().isoformat()
    return data


def _first(result) -> Optional[Dict[str, Any]]:
    return result.data[0] if result.data else None


class SupabaseJobStorage:
    """Job and proposal storage backed by Supabase tables."""

    def __init__(self, client: Client):
        self.db = client

    # === Jobs ===

    def save_job(self, job: Job) -> str:
        self.db.table(JOBS_TABLE).insert(job.to_dict()).execute()
        return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        row = _first(self.db.table(JOBS_TABLE).select("*").eq("id", job_id).execute())
        return Job.from_dict(row) if row else None

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        client_id: Optional[str] = None,
        job_type: Optional[JobType] = None,
        invited_pro_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Job]:
        query = self.db.table(JOBS_TABLE).select("*")
        if status is not None:
            query = query.eq("status", enum_value(status))
        if client_id is not None:
            query = query.eq("client_id", client_id)
        if job_type is not None:
            query = query.eq("job_type", enum_value(job_type))
        if invited_pro_id is not None:
            query = query.contains("invited_pros", [invited_pro_id])
        result = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        return [Job.from_dict(row) for row in result.data or []]

    def find_recent_job(self, client_id: str, title: str, since: datetime) -> Optional[Job]:
        result = (
            self.db.table(JOBS_TABLE)
            .select("*")
            .eq("client_id", client_id)
            .eq("title", title)
            .gte("created_at", since.isoformat())
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        row = _first(result)
        return Job.from_dict(row) if row else None

    def next_job_number(self, floor: int) -> int:
        result = self.db.rpc("next_job_number", {"p_floor": floor}).execute()
        return int(result.data)

    def update_job(self, job_id: str, **updates) -> Optional[Job]:
        row = _first(self.db.table(JOBS_TABLE).update(_payload(updates)).eq("id", job_id).execute())
        return Job.from_dict(row) if row else None

    def transition_job(
        self, job_id: str, expected_status: JobStatus, new_status: JobStatus, **updates
    ) -> Optional[Job]:
        data = _payload(dict(updates, status=new_status))
        result = (
            self.db.table(JOBS_TABLE)
            .update(data)
            .eq("id", job_id)
            .eq("status", enum_value(expected_status))  # Optimistic lock
            .execute()
        )
        row = _first(result)
        if row is None:
            logger.debug(f"Job CAS missed | job={job_id} | expected={enum_value(expected_status)}")
            return None
        return Job.from_dict(row)

    def claim_direct_request(self, job_id: str, pro_id: str) -> Optional[Job]:
        result = self.db.rpc("claim_direct_request", {"p_job_id": job_id, "p_pro_id": pro_id}).execute()
        row = _first(result)
        return Job.from_dict(row) if row else None

    def add_invited_pros(self, job_id: str, pro_ids: Iterable[str]) -> Tuple[Optional[Job], List[str]]:
        before = self.get_job(job_id)
        if before is None:
            return None, []
        added = []
        for pro_id in pro_ids:
            if pro_id not in before.invited_pros and pro_id not in added:
                added.append(pro_id)
        if not added:
            return before, []
        result = self.db.rpc("add_invited_pros", {"p_job_id": job_id, "p_pro_ids": added}).execute()
        row = _first(result)
        return (Job.from_dict(row) if row else None), added

    def add_declined_pro(self, job_id: str, pro_id: str) -> Tuple[Optional[Job], bool]:
        # The function only returns a row when it appended the professional
        result = self.db.rpc("add_declined_pro", {"p_job_id": job_id, "p_pro_id": pro_id}).execute()
        row = _first(result)
        if row:
            return Job.from_dict(row), True
        return self.get_job(job_id), False

    def increment_proposal_count(self, job_id: str, by: int = 1) -> None:
        self.db.rpc(
            "increment_job_counter", {"p_job_id": job_id, "p_column": "proposal_count", "p_by": by}
        ).execute()

    def increment_view_count(self, job_id: str) -> None:
        self.db.rpc(
            "increment_job_counter", {"p_job_id": job_id, "p_column": "view_count", "p_by": 1}
        ).execute()

    def list_expirable_jobs(self, now: datetime) -> List[Job]:
        result = (
            self.db.table(JOBS_TABLE)
            .select("*")
            .eq("status", JobStatus.OPEN.value)
            .lte("expires_at", now.isoformat())
            .execute()
        )
        return [Job.from_dict(row) for row in result.data or []]

    def expire_open_jobs(self, now: datetime) -> List[str]:
        result = (
            self.db.table(JOBS_TABLE)
            .update(_payload({"status": JobStatus.EXPIRED.value}))
            .eq("status", JobStatus.OPEN.value)
            .lte("expires_at", now.isoformat())
            .execute()
        )
        return [row["id"] for row in result.data or []]

    # === Proposals ===

    def save_proposal(self, proposal: Proposal) -> str:
        try:
            self.db.table(PROPOSALS_TABLE).insert(proposal.to_dict()).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateProposalError(
                    f"Professional {proposal.pro_id} already submitted a proposal for job {proposal.job_id}"
                ) from e
            raise
        return proposal.id

    def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        row = _first(self.db.table(PROPOSALS_TABLE).select("*").eq("id", proposal_id).execute())
        return Proposal.from_dict(row) if row else None

    def find_proposal(self, job_id: str, pro_id: str) -> Optional[Proposal]:
        result = (
            self.db.table(PROPOSALS_TABLE).select("*").eq("job_id", job_id).eq("pro_id", pro_id).execute()
        )
        row = _first(result)
        return Proposal.from_dict(row) if row else None

    def list_proposals(
        self,
        job_id: Optional[str] = None,
        pro_id: Optional[str] = None,
        status: Optional[ProposalStatus] = None,
        limit: int = 100,
    ) -> List[Proposal]:
        query = self.db.table(PROPOSALS_TABLE).select("*")
        if job_id is not None:
            query = query.eq("job_id", job_id)
        if pro_id is not None:
            query = query.eq("pro_id", pro_id)
        if status is not None:
            query = query.eq("status", enum_value(status))
        result = query.order("created_at", desc=True).limit(limit).execute()
        return [Proposal.from_dict(row) for row in result.data or []]

    def update_proposal(self, proposal_id: str, **updates) -> Optional[Proposal]:
        row = _first(
            self.db.table(PROPOSALS_TABLE).update(_payload(updates)).eq("id", proposal_id).execute()
        )
        return Proposal.from_dict(row) if row else None

    def transition_proposal(
        self,
        proposal_id: str,
        expected_statuses: Iterable[ProposalStatus],
        new_status: ProposalStatus,
        **updates,
    ) -> Optional[Proposal]:
        result = (
            self.db.table(PROPOSALS_TABLE)
            .update(_payload(dict(updates, status=new_status)))
            .eq("id", proposal_id)
            .in_("status", [enum_value(s) for s in expected_statuses])
            .execute()
        )
        row = _first(result)
        return Proposal.from_dict(row) if row else None

    def mark_proposals_viewed_by_client(self, job_ids: Iterable[str]) -> int:
        job_ids = list(job_ids)
        if not job_ids:
            return 0
        result = (
            self.db.table(PROPOSALS_TABLE)
            .update({"viewed_by_client": True})
            .in_("job_id", job_ids)
            .eq("status", ProposalStatus.PENDING.value)
            .eq("viewed_by_client", False)
            .execute()
        )
        return len(result.data or [])

    def mark_proposal_updates_viewed_by_pro(self, pro_id: str) -> int:
        result = (
            self.db.table(PROPOSALS_TABLE)
            .update({"viewed_by_pro": True})
            .eq("pro_id", pro_id)
            .in_("status", [ProposalStatus.ACCEPTED.value, ProposalStatus.REJECTED.value])
            .eq("viewed_by_pro", False)
            .execute()
        )
        return len(result.data or [])


class SupabaseTrackingStorage:
    """Project tracking storage backed by Supabase tables.

    History events and messages live in their own tables keyed by job_id
    so that appends never rewrite the tracking row.
    """

    def __init__(self, client: Client):
        self.db = client

    def save_tracking(self, tracking: ProjectTracking) -> str:
        try:
            self.db.table(TRACKING_TABLE).insert(tracking.to_dict(include_children=False)).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise TrackingExistsError(
                    f"Job {tracking.job_id} already has a project tracking record"
                ) from e
            raise
        return tracking.id

    def _load(self, row: Dict[str, Any]) -> ProjectTracking:
        job_id = row["job_id"]
        history = (
            self.db.table(HISTORY_TABLE).select("*").eq("job_id", job_id).order("created_at").execute()
        )
        messages = (
            self.db.table(MESSAGES_TABLE).select("*").eq("job_id", job_id).order("created_at").execute()
        )
        return ProjectTracking.from_dict(
            dict(row, history=history.data or [], messages=messages.data or [])
        )

    def get_tracking(self, job_id: str) -> Optional[ProjectTracking]:
        row = _first(self.db.table(TRACKING_TABLE).select("*").eq("job_id", job_id).execute())
        return self._load(row) if row else None

    def list_trackings(
        self,
        client_id: Optional[str] = None,
        pro_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[ProjectTracking]:
        """List tracking records without their history and messages."""
        query = self.db.table(TRACKING_TABLE).select("*")
        if client_id is not None:
            query = query.eq("client_id", client_id)
        if pro_id is not None:
            query = query.eq("pro_id", pro_id)
        result = query.order("hired_at", desc=True).limit(limit).execute()
        return [ProjectTracking.from_dict(row) for row in result.data or []]

    def update_tracking(
        self, job_id: str, expected: Optional[Dict[str, Any]] = None, **updates
    ) -> Optional[ProjectTracking]:
        query = self.db.table(TRACKING_TABLE).update(_payload(updates)).eq("job_id", job_id)
        for name, value in (expected or {}).items():
            if value is None:
                query = query.is_(name, "null")
            else:
                query = query.eq(name, _serialize(value))
        row = _first(query.execute())
        return self._load(row) if row else None

    def _append(self, table: str, job_id: str, record: Dict[str, Any]) -> bool:
        try:
            self.db.table(table).insert(dict(record, job_id=job_id)).execute()
        except APIError as e:
            if e.code == FOREIGN_KEY_VIOLATION:
                return False
            raise
        return True

    def append_history_event(self, job_id: str, event: HistoryEvent) -> bool:
        return self._append(HISTORY_TABLE, job_id, event.to_dict())

    def append_message(self, job_id: str, message: ProjectMessage) -> bool:
        return self._append(MESSAGES_TABLE, job_id, message.to_dict())


class SupabaseProStats:
    """Completed-job counter on the professional's profile row."""

    def __init__(self, client: Client):
        self.db = client

    def increment_completed_jobs(self, pro_id: str) -> None:
        self.db.rpc("increment_completed_jobs", {"p_pro_id": pro_id}).execute()


class SupabaseTrustGate:
    """Trust gate reading verification status from the professional's profile row.

    A professional with no profile row is unverified.
    """

    def __init__(self, client: Client):
        self.db = client

    def is_verified(self, pro_id: str) -> bool:
        row = _first(
            self.db.table(PRO_PROFILES_TABLE).select("verification_status").eq("pro_id", pro_id).execute()
        )
        verified = row is not None and row.get("verification_status") == VERIFIED
        if not verified:
            logger.info(f"Professional not verified | pro={pro_id}")
        return verified


class SupabaseNotificationSink:
    """Writes in-app notifications to the notifications table."""

    def __init__(self, client: Client):
        self.db = client

    def _row(self, user_id, type, title, message, link, reference_id, metadata) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "type": NotificationType(type).value,
            "title": title,
            "message": message,
            "link": link,
            "reference_id": reference_id,
            "metadata": metadata or {},
            "is_read": False,
        }

    def notify(self, user_id, type, title, message, link=None, reference_id=None, metadata=None):
        self.db.table(NOTIFICATIONS_TABLE).insert(
            self._row(user_id, type, title, message, link, reference_id, metadata)
        ).execute()

    def notify_many(self, user_ids, type, title, message, link=None, reference_id=None, metadata=None):
        rows = [self._row(u, type, title, message, link, reference_id, metadata) for u in user_ids]
        if rows:
            self.db.table(NOTIFICATIONS_TABLE).insert(rows).execute()
