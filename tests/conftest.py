"""Pytest configuration and fixtures."""

import os

import pytest

# Settings are read when app.main is imported, so set them before any test module loads
os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
os.environ["DOCWISE_ENV"] = "test"
os.environ["GEMINI_API_KEY"] = "test-gemini-key"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["GOOGLE_REDIRECT_URI"] = "http://localhost:8000/v1/google/callback"
os.environ["TOKEN_ENCRYPTION_KEY"] = "test-token-encryption-key"
os.environ["APP_BASE_URL"] = "http://localhost:5173"

from fastapi.testclient import TestClient  # noqa: E402

from app.api.ai import get_completion  # noqa: E402
from app.core.config import Settings  # noqa: E402
from app.db.supabase_client import get_supabase  # noqa: E402
from app.main import app  # noqa: E402
from tests.fakes.fake_completion import FakeCompletion  # noqa: E402
from tests.fakes.fake_supabase import (  # noqa: E402
    OTHER_USER_ID,
    OTHER_USER_TOKEN,
    USER_ID,
    USER_TOKEN,
    FakeSupabase,
)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def fake_db():
    db = FakeSupabase()
    db.auth.add_user(USER_TOKEN, USER_ID, "alice@example.com")
    db.auth.add_user(OTHER_USER_TOKEN, OTHER_USER_ID, "bob@example.com")
    return db


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def client(fake_db, completion):
    """TestClient wired to the in-memory Supabase and the scripted completion service."""
    app.dependency_overrides[get_supabase] = lambda: fake_db
    app.dependency_overrides[get_completion] = lambda: completion
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {USER_TOKEN}"}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": f"Bearer {OTHER_USER_TOKEN}"}
