"""
External collaborators used by the marketplace services.

Notifications, real-time fan-out, SMS, the trust gate, portfolio capture,
professional stats and the payment hook are owned elsewhere. The services
only talk to them through the protocols below. Every side-effect call goes
through ``best_effort`` so a failing collaborator never fails or rolls back
the state transition that triggered it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Kinds of notifications emitted by the hiring and tracking flows."""

    NEW_PROPOSAL = "new_proposal"
    PROPOSAL_ACCEPTED = "proposal_accepted"
    PROPOSAL_REJECTED = "proposal_rejected"
    JOB_INVITATION = "job_invitation"
    DIRECT_REQUEST_ACCEPTED = "direct_request_accepted"
    DIRECT_REQUEST_TAKEN = "direct_request_taken"
    DIRECT_REQUEST_DECLINED = "direct_request_declined"
    JOB_CANCELLED = "job_cancelled"
    PROJECT_STAGE = "project_stage"
    PROJECT_MESSAGE = "project_message"
    JOB_COMPLETED = "job_completed"


class NotificationSink(Protocol):
    """Fire-and-forget user notifications."""

    def notify(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        link: Optional[str] = None,
        reference_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    def notify_many(
        self,
        user_ids: List[str],
        type: NotificationType,
        title: str,
        message: str,
        link: Optional[str] = None,
        reference_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...


class RealtimeFanout(Protocol):
    """Pushes state snapshots to connected parties."""

    def emit_project_stage_update(
        self, job_id: str, client_id: str, pro_id: str, payload: Dict[str, Any]
    ) -> None:
        ...

    def emit_project_message(self, job_id: str, payload: Dict[str, Any]) -> None:
        ...


class TrustGate(Protocol):
    """Identity verification check for professionals."""

    def is_verified(self, pro_id: str) -> bool:
        ...


class PortfolioSink(Protocol):
    """Creates portfolio entries from confirmed jobs."""

    def create_from_job(self, **fields: Any) -> str:
        """Create a portfolio item. Returns the portfolio item ID."""
        ...


class SmsChannel(Protocol):
    """High-salience text messages (hired, invited)."""

    def send(self, user_id: str, message: str) -> None:
        ...


class ProStats(Protocol):
    """Professional profile counters."""

    def increment_completed_jobs(self, pro_id: str) -> None:
        ...


class PaymentTrigger(Protocol):
    """Downstream payment pipeline entry point."""

    def completion_confirmed(self, job_id: str, pro_id: str, client_id: str) -> None:
        ...


# =============================================================================
# Default implementations
# =============================================================================


class LoggingNotificationSink:
    """Notification sink that only logs. Used when nothing is wired in."""

    def notify(self, user_id, type, title, message, link=None, reference_id=None, metadata=None):
        logger.info(f"notify | user={user_id} | type={NotificationType(type).value} | ref={reference_id}")

    def notify_many(self, user_ids, type, title, message, link=None, reference_id=None, metadata=None):
        for user_id in user_ids:
            self.notify(user_id, type, title, message, link, reference_id, metadata)


@dataclass
class SentNotification:
    """A notification captured by RecordingNotificationSink."""

    user_id: str
    type: NotificationType
    title: str
    message: str
    link: Optional[str] = None
    reference_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RecordingNotificationSink:
    """In-memory notification sink for tests and local development."""

    def __init__(self):
        self.sent: List[SentNotification] = []

    def notify(self, user_id, type, title, message, link=None, reference_id=None, metadata=None):
        self.sent.append(
            SentNotification(
                user_id=user_id,
                type=NotificationType(type),
                title=title,
                message=message,
                link=link,
                reference_id=reference_id,
                metadata=dict(metadata or {}),
            )
        )

    def notify_many(self, user_ids, type, title, message, link=None, reference_id=None, metadata=None):
        for user_id in user_ids:
            self.notify(user_id, type, title, message, link, reference_id, metadata)

    def for_user(self, user_id: str) -> List[SentNotification]:
        """Notifications delivered to one user, oldest first."""
        return [n for n in self.sent if n.user_id == user_id]

    def of_type(self, type: NotificationType) -> List[SentNotification]:
        return [n for n in self.sent if n.type == type]


class NullRealtimeFanout:
    def emit_project_stage_update(self, job_id, client_id, pro_id, payload):
        pass

    def emit_project_message(self, job_id, payload):
        pass


class AllowAllTrustGate:
    """Trust gate that treats every professional as verified."""

    def is_verified(self, pro_id: str) -> bool:
        return True


class StaticTrustGate:
    """Trust gate backed by a fixed set of verified professional IDs."""

    def __init__(self, verified: Optional[set] = None):
        self.verified = set(verified or ())

    def is_verified(self, pro_id: str) -> bool:
        return pro_id in self.verified


class NullPortfolioSink:
    def create_from_job(self, **fields: Any) -> str:
        return f"homico-{fields.get('job_id', 'unknown')}"


class NullSmsChannel:
    def send(self, user_id: str, message: str) -> None:
        logger.debug(f"sms skipped | user={user_id}")


class InMemoryProStats:
    """Completed-job counters kept in process."""

    def __init__(self):
        self.completed_jobs: Dict[str, int] = {}

    def increment_completed_jobs(self, pro_id: str) -> None:
        self.completed_jobs[pro_id] = self.completed_jobs.get(pro_id, 0) + 1


class NullPaymentTrigger:
    def completion_confirmed(self, job_id: str, pro_id: str, client_id: str) -> None:
        logger.info(f"payment trigger | job={job_id} | pro={pro_id}")


@dataclass
class Collaborators:
    """Bundle of external collaborators injected into the services."""

    notifications: NotificationSink = field(default_factory=LoggingNotificationSink)
    realtime: RealtimeFanout = field(default_factory=NullRealtimeFanout)
    trust: TrustGate = field(default_factory=AllowAllTrustGate)
    portfolio: PortfolioSink = field(default_factory=NullPortfolioSink)
    sms: SmsChannel = field(default_factory=NullSmsChannel)
    pro_stats: ProStats = field(default_factory=InMemoryProStats)
    payments: PaymentTrigger = field(default_factory=NullPaymentTrigger)


def best_effort(description: str, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
    """Run a side-effect call, logging and swallowing any failure.

    Returns the call's result, or None if it raised.
    """
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        logger.warning(f"{description} failed: {e}")
        return None
