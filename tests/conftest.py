"""Shared test fixtures for the task board test suite."""

from unittest.mock import Mock

import pytest

from auth.config import AuthConfig
from clients.passkey_client import (
    CeremonyOptions,
    LoginFinalizeResponse,
    PasskeyProviderClient,
    PublicKeyOptions,
)
from fakes import (
    FakeValkey,
    InMemoryRecordStore,
    LOGIN_CHALLENGE,
    REGISTRATION_CHALLENGE,
    SESSION_SECRET,
    TEST_USER_B_ID,
    TEST_USER_EMAIL,
    TEST_USER_ID,
)
from utils.user_context import user_context, clear_current_user_id


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user_id()
    yield
    clear_current_user_id()


@pytest.fixture
def test_user_id() -> str:
    """The primary test user's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_user_b_id() -> str:
    """The secondary test user's ID (for isolation tests)."""
    return TEST_USER_B_ID


@pytest.fixture
def as_test_user(test_user_id):
    """Sets primary test user context."""
    with user_context(test_user_id):
        yield test_user_id


@pytest.fixture
def as_test_user_b(test_user_b_id):
    """Sets secondary test user context."""
    with user_context(test_user_b_id):
        yield test_user_b_id


# =============================================================================
# INFRASTRUCTURE FIXTURES
# =============================================================================


@pytest.fixture
def record_store():
    """Fresh in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def valkey():
    """Fresh in-memory Valkey."""
    return FakeValkey()


@pytest.fixture
def auth_config():
    """Default auth config with non-Secure cookies so TestClient keeps them over http."""
    return AuthConfig(session_cookie_secure=False)


@pytest.fixture
def mock_provider():
    """Passkey provider that accepts every ceremony."""
    provider = Mock(spec=PasskeyProviderClient)
    provider.initialize_registration.return_value = CeremonyOptions(
        publicKey=PublicKeyOptions(
            challenge=REGISTRATION_CHALLENGE,
            rp={"id": "tasks.test", "name": "Task Board"},
            user={"id": "dXNlcg", "name": TEST_USER_EMAIL},
        )
    )
    provider.finalize_registration.return_value = None
    provider.initialize_login.return_value = CeremonyOptions(
        publicKey=PublicKeyOptions(challenge=LOGIN_CHALLENGE, rpId="tasks.test")
    )
    provider.finalize_login.return_value = LoginFinalizeResponse(token="signed.assertion.token")
    return provider


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(record_store, valkey, mock_provider, auth_config):
    """Fully wired application over in-memory stores and a mocked provider."""
    from main import build_app

    return build_app(
        store=record_store,
        valkey=valkey,
        provider=mock_provider,
        session_secret=SESSION_SECRET,
        config=auth_config,
    )


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    from fastapi.testclient import TestClient

    return TestClient(app, raise_server_exceptions=False)
