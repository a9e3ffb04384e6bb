"""
Pytest fixtures and test configuration for Homico tests.
"""

from datetime import timedelta

import pytest

from homico.marketplace import Collaborators, MarketplaceConfig, build_in_memory_services
from homico.marketplace.collaborators import (
    InMemoryProStats,
    RecordingNotificationSink,
    StaticTrustGate,
)
from homico.marketplace.jobs.models import JobType
from homico.marketplace.types import utc_now

CLIENT_ID = "client-1"
PRO_ID = "pro-1"
OTHER_PRO_ID = "pro-2"
OUTSIDER_ID = "outsider"


class RecordingRealtime:
    """Realtime fan-out that keeps what it was asked to push."""

    def __init__(self):
        self.stage_updates = []
        self.messages = []

    def emit_project_stage_update(self, job_id, client_id, pro_id, payload):
        self.stage_updates.append((job_id, client_id, pro_id, payload))

    def emit_project_message(self, job_id, payload):
        self.messages.append((job_id, payload))


class RecordingSms:
    def __init__(self):
        self.sent = []

    def send(self, user_id, message):
        self.sent.append((user_id, message))


class RecordingPortfolio:
    def __init__(self):
        self.created = []

    def create_from_job(self, **fields):
        self.created.append(fields)
        return f"portfolio-{len(self.created)}"


class RecordingPayments:
    def __init__(self):
        self.confirmed = []

    def completion_confirmed(self, job_id, pro_id, client_id):
        self.confirmed.append((job_id, pro_id, client_id))


class ExplodingSink:
    """Collaborator whose every call fails."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise RuntimeError(f"{name} is down")

        return fail


@pytest.fixture
def config():
    """Marketplace config with the duplicate-post window disabled."""
    return MarketplaceConfig(duplicate_window_seconds=0)


@pytest.fixture
def notifications():
    return RecordingNotificationSink()


@pytest.fixture
def collaborators(notifications):
    return Collaborators(
        notifications=notifications,
        realtime=RecordingRealtime(),
        trust=StaticTrustGate({PRO_ID, OTHER_PRO_ID, "pro-3", CLIENT_ID}),
        portfolio=RecordingPortfolio(),
        sms=RecordingSms(),
        pro_stats=InMemoryProStats(),
        payments=RecordingPayments(),
    )


@pytest.fixture
def services(collaborators, config):
    """All marketplace services over fresh in-memory storage."""
    return build_in_memory_services(collaborators, config)


@pytest.fixture
def open_job(services):
    """An open design job that accepts proposals."""
    return services.jobs.create_job(
        client_id=CLIENT_ID,
        title="Kitchen redesign",
        description="Full redesign of a 12m2 kitchen",
        category="design",
        budget_amount=2500,
        location="Tbilisi",
    )


@pytest.fixture
def proposal(services, open_job):
    """A pending proposal from PRO_ID on the open job."""
    return services.hiring.submit_proposal(
        open_job.id,
        PRO_ID,
        "Ten years of kitchen work, portfolio attached",
        proposed_price=2200,
        estimated_duration=3,
        estimated_duration_unit="weeks",
    )


@pytest.fixture
def hired_job(services, open_job, proposal):
    """The open job after PRO_ID's proposal was accepted."""
    services.hiring.accept(proposal.id, CLIENT_ID)
    return services.jobs.get_job(open_job.id)


@pytest.fixture
def direct_request(services):
    """An open direct request inviting PRO_ID, OTHER_PRO_ID and pro-3."""
    return services.jobs.create_job(
        client_id=CLIENT_ID,
        title="Fix a leaking tap",
        category="plumbing",
        job_type=JobType.DIRECT_REQUEST,
        invited_pros=[PRO_ID, OTHER_PRO_ID, "pro-3"],
        budget_amount=80,
    )


@pytest.fixture
def far_future():
    """A moment after every freshly posted job has lapsed."""
    return utc_now() + timedelta(days=31)
