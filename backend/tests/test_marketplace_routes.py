"""Tests for the marketplace API routes.

The services dependency is replaced by in-memory storage, so these tests
exercise routing, auth, request validation and error mapping.
"""

from unittest.mock import MagicMock, patch

import pytest

API = "/api/v1"

# Mirrors the IDs baked into the conftest headers
CLIENT_ID = "usr_TEST_CLIENT_000000"
PRO_ID = "usr_TEST_PRO_000000"
OTHER_PRO_ID = "usr_TEST_PRO_000001"


@pytest.fixture
def job(client, client_headers):
    """An open design job posted through the API."""
    response = client.post(
        f"{API}/jobs",
        json={"title": "Kitchen redesign", "category": "design", "budget_amount": 2500},
        headers=client_headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def proposal(client, job, pro_headers):
    response = client.post(
        f"{API}/jobs/{job['id']}/proposals",
        json={
            "cover_letter": "Ten years of kitchen work",
            "proposed_price": 2200,
            "estimated_duration": 3,
            "estimated_duration_unit": "weeks",
        },
        headers=pro_headers,
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def hired(client, job, proposal, client_headers):
    """The job after the client accepted PRO_ID's proposal."""
    response = client.post(f"{API}/proposals/{proposal['id']}/accept", headers=client_headers)
    assert response.status_code == 200
    return job


@pytest.fixture
def direct_request(client, client_headers):
    response = client.post(
        f"{API}/jobs",
        json={
            "title": "Fix a leaking tap",
            "category": "plumbing",
            "job_type": "direct_request",
            "invited_pros": [PRO_ID, OTHER_PRO_ID, PRO_ID],
        },
        headers=client_headers,
    )
    assert response.status_code == 201
    return response.json()


class TestAuth:
    def test_missing_token(self, client):
        response = client.get(f"{API}/jobs/mine")
        assert response.status_code == 401
        assert "Not authenticated" in response.json()["detail"]

    def test_invalid_token(self, client):
        response = client.get(f"{API}/jobs/mine", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"

    def test_cookie_auth(self, client, client_headers, job):
        token = client_headers["Authorization"].removeprefix("Bearer ")
        client.cookies.set("homico_auth", token)

        response = client.get(f"{API}/jobs/mine")

        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_root(self, client):
        assert client.get("/").json()["service"] == "homico-backend"


class TestJobRoutes:
    def test_create_job(self, job):
        assert job["client_id"] == CLIENT_ID
        assert job["status"] == "open"
        assert job["job_type"] == "marketplace"
        assert isinstance(job["job_number"], int)
        assert job["expires_at"] is not None

    def test_create_job_validation(self, client, client_headers):
        response = client.post(f"{API}/jobs", json={"title": ""}, headers=client_headers)
        assert response.status_code == 422

    def test_list_my_jobs_with_status(self, client, job, client_headers):
        open_jobs = client.get(f"{API}/jobs/mine", params={"status": "open"}, headers=client_headers).json()
        cancelled = client.get(f"{API}/jobs/mine", params={"status": "cancelled"}, headers=client_headers).json()

        assert [j["id"] for j in open_jobs["jobs"]] == [job["id"]]
        assert cancelled["total"] == 0

    def test_get_missing_job(self, client, client_headers):
        response = client.get(f"{API}/jobs/nope", headers=client_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Job nope not found"

    def test_record_view(self, client, job, pro_headers):
        response = client.post(f"{API}/jobs/{job['id']}/view", headers=pro_headers)
        assert response.status_code == 204
        assert client.get(f"{API}/jobs/{job['id']}", headers=pro_headers).json()["view_count"] == 1

    def test_cancel_open_job(self, client, job, client_headers):
        response = client.post(f"{API}/jobs/{job['id']}/cancel", headers=client_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancelled_at"] is not None

    def test_cancel_by_stranger_is_forbidden(self, client, job, pro_headers):
        response = client.post(f"{API}/jobs/{job['id']}/cancel", headers=pro_headers)
        assert response.status_code == 403

    def test_cancel_after_work_started(self, client, hired, client_headers, pro_headers):
        client.post(f"{API}/projects/{hired['id']}/stage", json={"stage": "started"}, headers=pro_headers)

        response = client.post(f"{API}/jobs/{hired['id']}/cancel", headers=client_headers)

        assert response.status_code == 400
        assert "already at stage 'started'" in response.json()["detail"]

    def test_renew_requires_expired(self, client, job, client_headers):
        response = client.post(f"{API}/jobs/{job['id']}/renew", headers=client_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Only expired jobs can be renewed"

    def test_invite_and_list_invited(self, client, job, client_headers):
        response = client.post(
            f"{API}/jobs/{job['id']}/invite", json={"pro_ids": [PRO_ID, OTHER_PRO_ID]}, headers=client_headers
        )
        assert response.json() == {"job_id": job["id"], "invited": 2}

        again = client.post(f"{API}/jobs/{job['id']}/invite", json={"pro_ids": [PRO_ID]}, headers=client_headers)
        assert again.json()["invited"] == 0

        invited = client.get(f"{API}/jobs/{job['id']}/invited-pros", headers=client_headers).json()
        assert sorted(invited["pro_ids"]) == sorted([PRO_ID, OTHER_PRO_ID])

    def test_invite_requires_ids(self, client, job, client_headers):
        response = client.post(f"{API}/jobs/{job['id']}/invite", json={"pro_ids": []}, headers=client_headers)
        assert response.status_code == 422


class TestProposalRoutes:
    def test_submit(self, proposal):
        assert proposal["pro_id"] == PRO_ID
        assert proposal["status"] == "pending"
        assert proposal["viewed_by_client"] is False

    def test_duplicate_is_conflict(self, client, job, proposal, pro_headers):
        response = client.post(
            f"{API}/jobs/{job['id']}/proposals", json={"cover_letter": "Again"}, headers=pro_headers
        )
        assert response.status_code == 409

    def test_unverified_professional(self, client, job, make_headers):
        response = client.post(
            f"{API}/jobs/{job['id']}/proposals", json={"cover_letter": "Hi"}, headers=make_headers("usr_unverified")
        )
        assert response.status_code == 403
        assert "verification" in response.json()["detail"]

    def test_wrong_category(self, client, direct_request, pro_headers):
        response = client.post(
            f"{API}/jobs/{direct_request['id']}/proposals", json={"cover_letter": "Hi"}, headers=pro_headers
        )
        assert response.status_code == 403

    def test_bad_duration_unit(self, client, job, pro_headers):
        response = client.post(
            f"{API}/jobs/{job['id']}/proposals",
            json={"cover_letter": "Hi", "estimated_duration_unit": "years"},
            headers=pro_headers,
        )
        assert response.status_code == 422

    def test_owner_lists_and_marks_viewed(self, client, job, proposal, client_headers):
        assert client.get(f"{API}/proposals/unviewed-count", headers=client_headers).json() == {"count": 1}

        listed = client.get(f"{API}/jobs/{job['id']}/proposals", headers=client_headers).json()
        assert listed["total"] == 1

        marked = client.post(f"{API}/jobs/{job['id']}/proposals/mark-viewed", headers=client_headers)
        assert marked.json() == {"count": 1}
        assert client.get(f"{API}/proposals/unviewed-count", headers=client_headers).json() == {"count": 0}

    def test_only_owner_lists(self, client, job, proposal, other_pro_headers):
        response = client.get(f"{API}/jobs/{job['id']}/proposals", headers=other_pro_headers)
        assert response.status_code == 403

    def test_my_proposals(self, client, job, proposal, pro_headers, other_pro_headers):
        mine = client.get(f"{API}/jobs/{job['id']}/proposals/mine", headers=pro_headers).json()
        assert mine["id"] == proposal["id"]
        assert client.get(f"{API}/jobs/{job['id']}/proposals/mine", headers=other_pro_headers).json() is None
        assert client.get(f"{API}/proposals/mine", headers=pro_headers).json()["total"] == 1

    def test_shortlist_then_revert(self, client, proposal, client_headers):
        shortlisted = client.post(
            f"{API}/proposals/{proposal['id']}/shortlist", json={"hiring_choice": "homico"}, headers=client_headers
        ).json()
        assert shortlisted["status"] == "shortlisted"
        assert shortlisted["hiring_choice"] == "homico"

        reverted = client.post(f"{API}/proposals/{proposal['id']}/revert", headers=client_headers).json()
        assert reverted["status"] == "pending"

    def test_shortlist_rejects_unknown_choice(self, client, proposal, client_headers):
        response = client.post(
            f"{API}/proposals/{proposal['id']}/shortlist", json={"hiring_choice": "cash"}, headers=client_headers
        )
        assert response.status_code == 422

    def test_reject_twice(self, client, proposal, client_headers, pro_headers):
        first = client.post(f"{API}/proposals/{proposal['id']}/reject", headers=client_headers)
        second = client.post(f"{API}/proposals/{proposal['id']}/reject", headers=client_headers)

        assert first.json()["status"] == "rejected"
        assert second.status_code == 400
        assert second.json()["detail"] == "Proposal has already been rejected"
        assert client.get(f"{API}/proposals/updates-count", headers=pro_headers).json() == {"count": 1}

    def test_withdraw(self, client, job, proposal, pro_headers):
        response = client.post(f"{API}/proposals/{proposal['id']}/withdraw", headers=pro_headers)

        assert response.json()["status"] == "withdrawn"
        assert client.get(f"{API}/jobs/{job['id']}/proposals/mine", headers=pro_headers).json()["status"] == "withdrawn"

    def test_withdraw_someone_elses(self, client, proposal, other_pro_headers):
        response = client.post(f"{API}/proposals/{proposal['id']}/withdraw", headers=other_pro_headers)
        assert response.status_code == 403

    def test_accept_hires(self, client, hired, proposal, client_headers, pro_headers, notifications):
        job = client.get(f"{API}/jobs/{hired['id']}", headers=client_headers).json()

        assert job["status"] == "in_progress"
        assert job["hired_pro_id"] == PRO_ID
        assert notifications.for_user(PRO_ID)

        updates = client.get(f"{API}/proposals/updates-count", headers=pro_headers).json()
        assert updates == {"count": 1}
        cleared = client.post(f"{API}/proposals/mark-updates-viewed", headers=pro_headers).json()
        assert cleared == {"count": 1}

    def test_hired_job_refuses_proposals(self, client, job, hired, other_pro_headers):
        response = client.post(
            f"{API}/jobs/{job['id']}/proposals", json={"cover_letter": "Late bid"}, headers=other_pro_headers
        )
        assert response.status_code == 400

    def test_reveal_contact(self, client, proposal, client_headers):
        response = client.post(f"{API}/proposals/{proposal['id']}/reveal-contact", headers=client_headers)

        assert response.status_code == 200
        assert response.json()["contact_revealed"] is True

    def test_missing_proposal(self, client, client_headers):
        response = client.post(f"{API}/proposals/nope/accept", headers=client_headers)
        assert response.status_code == 404


class TestDirectRequestRoutes:
    def test_invitees_deduplicated(self, direct_request):
        assert direct_request["invited_pros"] == [PRO_ID, OTHER_PRO_ID]

    def test_inbox(self, client, direct_request, pro_headers):
        inbox = client.get(f"{API}/direct-requests", headers=pro_headers).json()

        assert [j["id"] for j in inbox["jobs"]] == [direct_request["id"]]
        assert client.get(f"{API}/direct-requests/count", headers=pro_headers).json() == {"count": 1}

    def test_first_accept_wins(self, client, direct_request, pro_headers, other_pro_headers):
        accepted = client.post(f"{API}/direct-requests/{direct_request['id']}/accept", headers=pro_headers)
        late = client.post(f"{API}/direct-requests/{direct_request['id']}/accept", headers=other_pro_headers)

        assert accepted.status_code == 200
        assert accepted.json()["hired_pro_id"] == PRO_ID
        assert late.status_code == 409
        assert late.json()["detail"] == "This job is no longer available"

    def test_decline(self, client, direct_request, pro_headers, other_pro_headers):
        first = client.post(f"{API}/direct-requests/{direct_request['id']}/decline", headers=pro_headers).json()
        assert first == {"job_id": direct_request["id"], "declined": True, "all_declined": False}

        last = client.post(f"{API}/direct-requests/{direct_request['id']}/decline", headers=other_pro_headers).json()
        assert last["all_declined"] is True
        assert client.get(f"{API}/direct-requests/count", headers=pro_headers).json() == {"count": 0}

    def test_decline_when_not_invited(self, client, job, pro_headers):
        response = client.post(f"{API}/direct-requests/{job['id']}/decline", headers=pro_headers)
        assert response.status_code == 404


class TestProjectRoutes:
    def test_project_created_on_hire(self, client, hired, client_headers):
        project = client.get(f"{API}/projects/{hired['id']}", headers=client_headers).json()

        assert project["current_stage"] == "hired"
        assert project["pro_id"] == PRO_ID
        assert project["agreed_price"] == 2200

    def test_list_projects_by_role(self, client, hired, client_headers, pro_headers):
        as_client = client.get(f"{API}/projects", headers=client_headers).json()
        as_pro = client.get(f"{API}/projects", params={"role": "pro"}, headers=pro_headers).json()

        assert as_client["total"] == 1
        assert as_pro["projects"][0]["job_id"] == hired["id"]

    def test_outsider_forbidden(self, client, hired, other_pro_headers):
        response = client.get(f"{API}/projects/{hired['id']}", headers=other_pro_headers)
        assert response.status_code == 403

    def test_missing_project(self, client, job, client_headers):
        response = client.get(f"{API}/projects/{job['id']}", headers=client_headers)
        assert response.status_code == 404

    def test_stage_moves(self, client, hired, pro_headers):
        response = client.post(
            f"{API}/projects/{hired['id']}/stage", json={"stage": "in_progress", "note": "Demolition"}, headers=pro_headers
        )

        project = response.json()
        assert project["current_stage"] == "in_progress"
        assert project["progress"] >= 50
        assert [e["stage"] for e in project["stage_history"]] == ["hired", "in_progress"]

    def test_backwards_stage_move(self, client, hired, pro_headers):
        client.post(f"{API}/projects/{hired['id']}/stage", json={"stage": "in_progress"}, headers=pro_headers)

        response = client.post(f"{API}/projects/{hired['id']}/stage", json={"stage": "started"}, headers=pro_headers)

        assert response.status_code == 400

    def test_unknown_stage(self, client, hired, pro_headers):
        response = client.post(f"{API}/projects/{hired['id']}/stage", json={"stage": "paused"}, headers=pro_headers)
        assert response.status_code == 422

    def test_progress_is_pro_only(self, client, hired, client_headers, pro_headers):
        forbidden = client.post(f"{API}/projects/{hired['id']}/progress", json={"progress": 40}, headers=client_headers)
        clamped = client.post(f"{API}/projects/{hired['id']}/progress", json={"progress": 140}, headers=pro_headers)

        assert forbidden.status_code == 403
        assert clamped.json()["progress"] == 100

    def test_expected_end_date(self, client, hired, pro_headers):
        response = client.post(
            f"{API}/projects/{hired['id']}/expected-end-date",
            json={"expected_end_date": "2030-05-01T00:00:00Z"},
            headers=pro_headers,
        )

        assert response.json()["expected_end_date"].startswith("2030-05-01")
        history = client.get(
            f"{API}/projects/{hired['id']}/history", params={"event_type": "deadline_updated"}, headers=pro_headers
        ).json()
        assert history["total"] == 1

    def test_confirm_completion(self, client, hired, client_headers, pro_headers):
        early = client.post(f"{API}/projects/{hired['id']}/confirm", headers=client_headers)
        assert early.status_code == 400

        client.post(f"{API}/projects/{hired['id']}/stage", json={"stage": "completed"}, headers=pro_headers)
        confirmed = client.post(f"{API}/projects/{hired['id']}/confirm", headers=client_headers).json()
        again = client.post(f"{API}/projects/{hired['id']}/confirm", headers=client_headers)

        assert confirmed["job_completed"] is True
        assert confirmed["project"]["client_confirmed_at"] is not None
        assert again.status_code == 400
        assert client.get(f"{API}/jobs/{hired['id']}", headers=client_headers).json()["status"] == "completed"

    def test_pro_cannot_confirm(self, client, hired, pro_headers):
        client.post(f"{API}/projects/{hired['id']}/stage", json={"stage": "completed"}, headers=pro_headers)

        response = client.post(f"{API}/projects/{hired['id']}/confirm", headers=pro_headers)

        assert response.status_code == 403

    def test_history_event_and_poll_badge(self, client, hired, client_headers, pro_headers):
        created = client.post(
            f"{API}/projects/{hired['id']}/history",
            json={"event_type": "poll_created", "metadata": {"poll_id": "poll-1", "poll_title": "Tiles"}},
            headers=pro_headers,
        )

        assert created.status_code == 201
        assert created.json()["user_role"] == "pro"
        assert client.get(f"{API}/projects/{hired['id']}/unread", headers=client_headers).json()["polls"] == 1

        client.post(f"{API}/projects/{hired['id']}/polls/viewed", headers=client_headers)
        assert client.get(f"{API}/projects/{hired['id']}/unread", headers=client_headers).json()["polls"] == 0

    def test_history_event_bad_metadata(self, client, hired, pro_headers):
        response = client.post(
            f"{API}/projects/{hired['id']}/history",
            json={"event_type": "poll_created", "metadata": {"title": "no poll id"}},
            headers=pro_headers,
        )
        assert response.status_code == 400
        assert "Invalid metadata for poll_created" in response.json()["detail"]

    def test_history_paging(self, client, hired, pro_headers):
        for stage in ("started", "in_progress"):
            client.post(f"{API}/projects/{hired['id']}/stage", json={"stage": stage}, headers=pro_headers)

        page = client.get(f"{API}/projects/{hired['id']}/history", params={"limit": 1}, headers=pro_headers).json()

        assert len(page["events"]) == 1
        assert page["total"] >= 2

    def test_messages(self, client, hired, client_headers, pro_headers):
        sent = client.post(
            f"{API}/projects/{hired['id']}/messages", json={"content": "When can you start?"}, headers=client_headers
        )
        assert sent.status_code == 201
        assert sent.json()["sender_role"] == "client"

        thread = client.get(f"{API}/projects/{hired['id']}/messages", headers=pro_headers).json()
        assert thread["unread"] == 1
        assert thread["messages"][0]["is_read"] is False

        client.post(f"{API}/projects/{hired['id']}/messages/read", headers=pro_headers)
        assert client.get(f"{API}/projects/{hired['id']}/unread", headers=pro_headers).json()["chat"] == 0

    def test_empty_message(self, client, hired, client_headers):
        response = client.post(f"{API}/projects/{hired['id']}/messages", json={"content": "  "}, headers=client_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Message must have content or attachments"

    def test_materials_viewed(self, client, hired, client_headers):
        response = client.post(f"{API}/projects/{hired['id']}/materials/viewed", headers=client_headers)
        assert "viewed_at" in response.json()


class TestMaintenanceRoutes:
    def test_requires_admin(self, client, client_headers):
        response = client.get(f"{API}/maintenance/health", headers=client_headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    def test_health(self, client, hired, admin_headers):
        health = client.get(f"{API}/maintenance/health", headers=admin_headers).json()

        assert health["status"] == "healthy"
        assert health["jobs_past_expiry"] == 0
        assert health["orphaned_hires"] == 0

    def test_expire_jobs_dry_run(self, client, job, admin_headers, services):
        services.jobs.storage.update_job(job["id"], expires_at=services.jobs.get_job(job["id"]).created_at)

        report = client.post(f"{API}/maintenance/expire-jobs", json={"dry_run": True}, headers=admin_headers).json()

        assert report["dry_run"] is True
        assert report["job_ids"] == [job["id"]]
        assert services.jobs.get_job(job["id"]).status == "open"

    def test_orphans_and_repair(self, client, direct_request, admin_headers, services):
        services.jobs.storage.claim_direct_request(direct_request["id"], PRO_ID)

        orphans = client.get(f"{API}/maintenance/orphaned-hires", headers=admin_headers).json()
        assert orphans["total"] == 1
        assert orphans["orphans"][0]["repairable"] is True

        repaired = client.post(f"{API}/maintenance/repair-hires", json={}, headers=admin_headers).json()
        assert repaired["repaired"] == [direct_request["id"]]
        assert repaired["skipped"] == []


class TestHealth:
    def test_all_tables_readable(self, client):
        with patch("app.database.get_supabase_client", return_value=MagicMock()):
            body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert set(body["tables"].values()) == {"ok"}

    def test_missing_table_degrades(self, client):
        db = MagicMock()

        def table(name):
            if name == "project_messages":
                raise RuntimeError('relation "project_messages" does not exist')
            return MagicMock()

        db.table.side_effect = table
        with patch("app.database.get_supabase_client", return_value=db):
            body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["tables"]["jobs"] == "ok"
        assert body["tables"]["project_messages"].startswith("error:")
