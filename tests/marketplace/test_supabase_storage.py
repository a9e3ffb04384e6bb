"""Tests for the Supabase storage backends against a mocked client."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from homico.marketplace.collaborators import NotificationType
from homico.marketplace.errors import DuplicateProposalError, TrackingExistsError, VerificationRequiredError
from homico.marketplace.jobs.models import JobStatus, Proposal, ProposalStatus
from homico.marketplace.supabase_storage import (
    HISTORY_TABLE,
    JOBS_TABLE,
    MESSAGES_TABLE,
    NOTIFICATIONS_TABLE,
    PRO_PROFILES_TABLE,
    TRACKING_TABLE,
    SupabaseJobStorage,
    SupabaseNotificationSink,
    SupabaseProStats,
    SupabaseTrackingStorage,
    SupabaseTrustGate,
)
from homico.marketplace.services import build_supabase_services
from homico.marketplace.tracking.models import HistoryEvent, NoteMeta, ProjectMessage, ProjectTracking

NOW = datetime(2026, 5, 4, 9, 30, tzinfo=timezone.utc)

CHAIN_METHODS = (
    "select",
    "insert",
    "update",
    "eq",
    "in_",
    "is_",
    "gte",
    "lte",
    "contains",
    "order",
    "range",
    "limit",
)


def make_query(data=None):
    """A PostgREST query builder mock whose filters all chain back to itself."""
    query = MagicMock()
    for name in CHAIN_METHODS:
        getattr(query, name).return_value = query
    query.execute.return_value = MagicMock(data=data if data is not None else [])
    return query


def make_client(tables=None, rpc_data=None):
    client = MagicMock()
    tables = tables or {}
    default = make_query()
    client.table.side_effect = lambda name: tables.get(name, default)
    client.rpc.return_value.execute.return_value = MagicMock(data=rpc_data)
    return client


def job_row(**overrides):
    row = {
        "id": "job-1",
        "client_id": "client-1",
        "title": "Kitchen redesign",
        "category": "design",
        "job_number": 1001,
        "job_type": "marketplace",
        "status": "open",
        "invited_pros": [],
        "declined_pros": [],
        "created_at": NOW.isoformat(),
    }
    row.update(overrides)
    return row


def tracking_row(**overrides):
    row = {
        "id": "tracking-1",
        "job_id": "job-1",
        "client_id": "client-1",
        "pro_id": "pro-1",
        "current_stage": "hired",
        "progress": 0,
        "hired_at": NOW.isoformat(),
        "stage_history": [{"stage": "hired", "entered_at": NOW.isoformat()}],
        "client_confirmed_at": None,
    }
    row.update(overrides)
    return row


def unique_violation():
    return APIError({"code": "23505", "message": "duplicate key value violates unique constraint"})


class TestSupabaseJobStorage:
    """Tests for job and proposal persistence."""

    def test_get_job(self):
        jobs = make_query([job_row()])
        storage = SupabaseJobStorage(make_client({JOBS_TABLE: jobs}))

        job = storage.get_job("job-1")

        assert job.title == "Kitchen redesign"
        assert job.created_at == NOW
        jobs.eq.assert_called_with("id", "job-1")

    def test_get_missing_job(self):
        storage = SupabaseJobStorage(make_client({JOBS_TABLE: make_query([])}))
        assert storage.get_job("nope") is None

    def test_transition_job_filters_on_expected_status(self):
        jobs = make_query([job_row(status="in_progress", hired_pro_id="pro-1")])
        storage = SupabaseJobStorage(make_client({JOBS_TABLE: jobs}))

        job = storage.transition_job("job-1", JobStatus.OPEN, JobStatus.IN_PROGRESS, hired_pro_id="pro-1")

        assert job.hired_pro_id == "pro-1"
        payload = jobs.update.call_args[0][0]
        assert payload["status"] == "in_progress"
        assert payload["hired_pro_id"] == "pro-1"
        assert "updated_at" in payload
        jobs.eq.assert_any_call("status", "open")

    def test_transition_job_miss_returns_none(self):
        storage = SupabaseJobStorage(make_client({JOBS_TABLE: make_query([])}))
        assert storage.transition_job("job-1", JobStatus.OPEN, JobStatus.CANCELLED) is None

    def test_list_jobs_for_invitee(self):
        jobs = make_query([job_row(job_type="direct_request", invited_pros=["pro-1"])])
        storage = SupabaseJobStorage(make_client({JOBS_TABLE: jobs}))

        result = storage.list_jobs(status=JobStatus.OPEN, invited_pro_id="pro-1", limit=20, offset=40)

        assert [j.id for j in result] == ["job-1"]
        jobs.contains.assert_called_once_with("invited_pros", ["pro-1"])
        jobs.order.assert_called_once_with("created_at", desc=True)
        jobs.range.assert_called_once_with(40, 59)

    def test_next_job_number_uses_rpc(self):
        client = make_client(rpc_data=1042)

        assert SupabaseJobStorage(client).next_job_number(1000) == 1042
        client.rpc.assert_called_once_with("next_job_number", {"p_floor": 1000})

    def test_claim_direct_request(self):
        client = make_client(rpc_data=[job_row(status="in_progress", hired_pro_id="pro-2")])

        job = SupabaseJobStorage(client).claim_direct_request("job-1", "pro-2")

        assert job.hired_pro_id == "pro-2"
        client.rpc.assert_called_once_with("claim_direct_request", {"p_job_id": "job-1", "p_pro_id": "pro-2"})

    def test_claim_lost(self):
        client = make_client(rpc_data=[])
        assert SupabaseJobStorage(client).claim_direct_request("job-1", "pro-2") is None

    def test_add_invited_pros_sends_only_new_ids(self):
        jobs = make_query([job_row(invited_pros=["pro-1"])])
        client = make_client({JOBS_TABLE: jobs}, rpc_data=[job_row(invited_pros=["pro-1", "pro-2"])])

        job, added = SupabaseJobStorage(client).add_invited_pros("job-1", ["pro-1", "pro-2", "pro-2"])

        assert added == ["pro-2"]
        assert job.invited_pros == ["pro-1", "pro-2"]
        client.rpc.assert_called_once_with("add_invited_pros", {"p_job_id": "job-1", "p_pro_ids": ["pro-2"]})

    def test_add_declined_pro_reports_new_decliner(self):
        client = make_client(rpc_data=[job_row(declined_pros=["pro-2"])])

        job, added = SupabaseJobStorage(client).add_declined_pro("job-1", "pro-2")

        assert added is True
        assert job.declined_pros == ["pro-2"]
        client.rpc.assert_called_once_with("add_declined_pro", {"p_job_id": "job-1", "p_pro_id": "pro-2"})

    def test_add_declined_pro_repeat_is_not_added(self):
        jobs = make_query([job_row(declined_pros=["pro-2"])])
        client = make_client({JOBS_TABLE: jobs}, rpc_data=[])

        job, added = SupabaseJobStorage(client).add_declined_pro("job-1", "pro-2")

        assert added is False
        assert job.declined_pros == ["pro-2"]

    def test_add_declined_pro_missing_job(self):
        client = make_client(rpc_data=[])
        assert SupabaseJobStorage(client).add_declined_pro("nope", "pro-2") == (None, False)

    def test_increment_proposal_count(self):
        client = make_client()
        SupabaseJobStorage(client).increment_proposal_count("job-1")
        client.rpc.assert_called_once_with(
            "increment_job_counter", {"p_job_id": "job-1", "p_column": "proposal_count", "p_by": 1}
        )

    def test_expire_open_jobs(self):
        jobs = make_query([{"id": "job-1"}, {"id": "job-2"}])
        storage = SupabaseJobStorage(make_client({JOBS_TABLE: jobs}))

        assert storage.expire_open_jobs(NOW) == ["job-1", "job-2"]
        jobs.lte.assert_called_once_with("expires_at", NOW.isoformat())

    def test_duplicate_proposal_maps_unique_violation(self):
        proposals = make_query()
        proposals.execute.side_effect = unique_violation()
        storage = SupabaseJobStorage(make_client({"proposals": proposals}))

        with pytest.raises(DuplicateProposalError):
            storage.save_proposal(Proposal(id="p-1", job_id="job-1", pro_id="pro-1", cover_letter="Hi"))

    def test_other_api_errors_propagate(self):
        proposals = make_query()
        proposals.execute.side_effect = APIError({"code": "42501", "message": "permission denied"})
        storage = SupabaseJobStorage(make_client({"proposals": proposals}))

        with pytest.raises(APIError):
            storage.save_proposal(Proposal(id="p-1", job_id="job-1", pro_id="pro-1", cover_letter="Hi"))

    def test_transition_proposal_matches_any_expected_status(self):
        proposals = make_query([])
        storage = SupabaseJobStorage(make_client({"proposals": proposals}))

        result = storage.transition_proposal(
            "p-1", (ProposalStatus.PENDING, ProposalStatus.SHORTLISTED), ProposalStatus.WITHDRAWN
        )

        assert result is None
        proposals.in_.assert_called_once_with("status", ["pending", "shortlisted"])

    def test_mark_viewed_with_no_jobs_skips_query(self):
        client = make_client()
        assert SupabaseJobStorage(client).mark_proposals_viewed_by_client([]) == 0
        client.table.assert_not_called()


class TestSupabaseTrackingStorage:
    """Tests for tracking persistence."""

    def test_get_tracking_loads_children(self):
        history = make_query(
            [
                {
                    "id": "e-1",
                    "event_type": "project_created",
                    "user_id": "client-1",
                    "user_role": "client",
                    "metadata": {"text": "Project created"},
                    "created_at": NOW.isoformat(),
                }
            ]
        )
        messages = make_query(
            [
                {
                    "id": "m-1",
                    "sender_id": "pro-1",
                    "sender_role": "pro",
                    "content": "Hello",
                    "created_at": NOW.isoformat(),
                }
            ]
        )
        client = make_client(
            {TRACKING_TABLE: make_query([tracking_row()]), HISTORY_TABLE: history, MESSAGES_TABLE: messages}
        )

        tracking = SupabaseTrackingStorage(client).get_tracking("job-1")

        assert tracking.history[0].metadata == NoteMeta("Project created")
        assert tracking.messages[0].content == "Hello"
        assert tracking.stage_history[0].entered_at == NOW
        history.order.assert_called_once_with("created_at")

    def test_save_existing_tracking(self):
        trackings = make_query()
        trackings.execute.side_effect = unique_violation()
        storage = SupabaseTrackingStorage(make_client({TRACKING_TABLE: trackings}))

        with pytest.raises(TrackingExistsError):
            storage.save_tracking(ProjectTracking.from_dict(tracking_row()))

    def test_save_tracking_omits_children(self):
        trackings = make_query()
        storage = SupabaseTrackingStorage(make_client({TRACKING_TABLE: trackings}))

        storage.save_tracking(ProjectTracking.from_dict(tracking_row()))

        row = trackings.insert.call_args[0][0]
        assert "history" not in row
        assert "messages" not in row

    def test_update_tracking_expects_null_with_is(self):
        trackings = make_query([])
        storage = SupabaseTrackingStorage(make_client({TRACKING_TABLE: trackings}))

        result = storage.update_tracking(
            "job-1",
            expected={"current_stage": "completed", "client_confirmed_at": None},
            client_confirmed_at=NOW,
        )

        assert result is None
        trackings.is_.assert_called_once_with("client_confirmed_at", "null")
        trackings.eq.assert_any_call("current_stage", "completed")
        assert trackings.update.call_args[0][0]["client_confirmed_at"] == NOW.isoformat()

    def test_append_to_missing_tracking(self):
        history = make_query()
        history.execute.side_effect = APIError({"code": "23503", "message": "foreign key violation"})
        storage = SupabaseTrackingStorage(make_client({HISTORY_TABLE: history}))

        event = HistoryEvent(
            id="e-1", event_type="message_sent", user_id="pro-1", user_role="pro", created_at=NOW
        )
        assert storage.append_history_event("job-1", event) is False

    def test_append_message_sets_job_id(self):
        messages = make_query()
        storage = SupabaseTrackingStorage(make_client({MESSAGES_TABLE: messages}))
        message = ProjectMessage(id="m-1", sender_id="pro-1", sender_role="pro", content="Hi", created_at=NOW)

        assert storage.append_message("job-1", message) is True
        row = messages.insert.call_args[0][0]
        assert row["job_id"] == "job-1"
        assert row["content"] == "Hi"


class TestSupabaseCollaborators:
    def test_notification_row(self):
        notifications = make_query()
        sink = SupabaseNotificationSink(make_client({NOTIFICATIONS_TABLE: notifications}))

        sink.notify("pro-1", NotificationType.PROPOSAL_ACCEPTED, "Hired", "You got it", link="/my-work")

        row = notifications.insert.call_args[0][0]
        assert row["type"] == "proposal_accepted"
        assert row["is_read"] is False
        assert row["metadata"] == {}

    def test_notify_many_batches(self):
        notifications = make_query()
        sink = SupabaseNotificationSink(make_client({NOTIFICATIONS_TABLE: notifications}))

        sink.notify_many(["pro-1", "pro-2"], "direct_request_taken", "Taken", "Someone else got it")

        rows = notifications.insert.call_args[0][0]
        assert [r["user_id"] for r in rows] == ["pro-1", "pro-2"]

    def test_notify_many_empty(self):
        client = make_client()
        SupabaseNotificationSink(client).notify_many([], "job_cancelled", "t", "m")
        client.table.assert_not_called()

    def test_pro_stats_rpc(self):
        client = make_client()
        SupabaseProStats(client).increment_completed_jobs("pro-1")
        client.rpc.assert_called_once_with("increment_completed_jobs", {"p_pro_id": "pro-1"})

    @pytest.mark.parametrize(
        "rows,expected",
        [
            ([{"verification_status": "verified"}], True),
            ([{"verification_status": "pending"}], False),
            ([{"verification_status": "unverified"}], False),
            ([], False),
        ],
    )
    def test_trust_gate_reads_profile(self, rows, expected):
        profiles = make_query(rows)
        gate = SupabaseTrustGate(make_client({PRO_PROFILES_TABLE: profiles}))

        assert gate.is_verified("pro-1") is expected
        profiles.select.assert_called_once_with("verification_status")
        profiles.eq.assert_called_once_with("pro_id", "pro-1")

    def test_trust_gate_query_errors_propagate(self):
        profiles = make_query()
        profiles.execute.side_effect = APIError({"code": "57014", "message": "statement timeout"})
        gate = SupabaseTrustGate(make_client({PRO_PROFILES_TABLE: profiles}))

        with pytest.raises(APIError):
            gate.is_verified("pro-1")

    def test_supabase_services_check_verification(self):
        services = build_supabase_services(make_client())

        assert isinstance(services.collaborators.trust, SupabaseTrustGate)
        # No profile row: the proposal is refused before the job is read
        with pytest.raises(VerificationRequiredError):
            services.hiring.submit_proposal("job-1", "pro-1", "I can do this")
