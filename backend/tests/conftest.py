"""Pytest configuration and fixtures."""

import os
import secrets
import sys

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

# For unit tests, set mock values ONLY if not running integration tests
if not os.environ.get("RUN_INTEGRATION"):
    os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
    os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
    # Legacy key for backwards compatibility
    os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-key")
    os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
elif not os.environ.get("CONFIRM_INTEGRATION_CREDENTIALS"):
    # Integration runs read the real .env through Settings
    print("\n" + "=" * 70, file=sys.stderr)
    print("WARNING: Integration tests will use REAL credentials from .env", file=sys.stderr)
    print("   Set CONFIRM_INTEGRATION_CREDENTIALS=yes to proceed.", file=sys.stderr)
    print("=" * 70 + "\n", file=sys.stderr)
    pytest.exit("Integration tests require CONFIRM_INTEGRATION_CREDENTIALS=yes", returncode=1)

from app.auth import create_access_token  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.dependencies import get_services  # noqa: E402
from app.main import app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from homico.marketplace import Collaborators, MarketplaceConfig, build_in_memory_services  # noqa: E402
from homico.marketplace.collaborators import RecordingNotificationSink, StaticTrustGate  # noqa: E402

# Clearly fake IDs that cannot collide with production users
CLIENT_ID = "usr_TEST_CLIENT_000000"
PRO_ID = "usr_TEST_PRO_000000"
OTHER_PRO_ID = "usr_TEST_PRO_000001"
ADMIN_ID = "usr_TEST_ADMIN_000000"


def _headers(user_id: str, role: str | None = None) -> dict:
    token = create_access_token(user_id=user_id, settings=get_settings(), role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def notifications():
    return RecordingNotificationSink()


@pytest.fixture
def services(notifications):
    """In-memory marketplace services standing in for Supabase."""
    collaborators = Collaborators(
        notifications=notifications,
        trust=StaticTrustGate({PRO_ID, OTHER_PRO_ID}),
    )
    return build_in_memory_services(collaborators, MarketplaceConfig(duplicate_window_seconds=0))


@pytest.fixture
def client(services):
    """Create a test client wired to the in-memory services."""
    app.dependency_overrides[get_services] = lambda: services
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        limiter.enabled = True
        app.dependency_overrides.clear()


@pytest.fixture
def client_headers():
    return _headers(CLIENT_ID)


@pytest.fixture
def pro_headers():
    return _headers(PRO_ID)


@pytest.fixture
def other_pro_headers():
    return _headers(OTHER_PRO_ID)


@pytest.fixture
def admin_headers():
    return _headers(ADMIN_ID, role="admin")


@pytest.fixture
def make_headers():
    """Build auth headers for an arbitrary user."""
    return _headers
