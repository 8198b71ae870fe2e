"""Tests for auth/session.py - encrypted cookie sessions."""

import logging
from unittest.mock import patch

import pytest
from starlette.responses import Response

from auth.config import AuthConfig
from auth.session import SessionManager
from auth.types import SessionData
from fakes import SESSION_SECRET


@pytest.fixture
def sessions(auth_config):
    return SessionManager(SESSION_SECRET, auth_config)


def _set_cookie_header(response: Response) -> str:
    return response.headers["set-cookie"]


class TestSessionManagerInit:

    def test_empty_secret_rejected(self, auth_config):
        with pytest.raises(ValueError, match="secret"):
            SessionManager("", auth_config)

    def test_short_secret_only_warns(self, auth_config, caplog):
        """Short secrets are accepted with a logged warning."""
        with caplog.at_level(logging.WARNING, logger="auth.session"):
            manager = SessionManager("too-short", auth_config)
        assert manager.cookie_name == "sid"
        assert "shorter than 32" in caplog.text


class TestRead:
    """read() never raises for a missing or bad cookie."""

    def test_missing_cookie_is_empty_session(self, sessions):
        assert sessions.read(None) == SessionData()
        assert sessions.read("") == SessionData()

    def test_round_trip(self, sessions):
        cookie = sessions.encode(SessionData(user_id="user:abc", issued_at=1))
        assert sessions.read(cookie).user_id == "user:abc"

    def test_tampered_cookie_is_empty_session(self, sessions):
        cookie = sessions.encode(SessionData(user_id="user:abc"))
        tampered = cookie[:-4] + ("AAAA" if not cookie.endswith("AAAA") else "BBBB")
        assert sessions.read(tampered).is_authenticated is False

    def test_garbage_cookie_is_empty_session(self, sessions):
        assert sessions.read("not-a-fernet-token").is_authenticated is False

    def test_cookie_from_other_secret_is_empty_session(self, sessions, auth_config):
        other = SessionManager("another-secret-0123456789abcdefghij", auth_config)
        cookie = other.encode(SessionData(user_id="user:abc"))
        assert sessions.read(cookie).is_authenticated is False

    def test_expired_cookie_is_empty_session(self, auth_config):
        manager = SessionManager(SESSION_SECRET, AuthConfig(session_max_age_hours=1))
        with patch("time.time", return_value=1_000_000):
            cookie = manager.encode(SessionData(user_id="user:abc"))
        with patch("time.time", return_value=1_000_000 + 3601 + 60):
            assert manager.read(cookie).is_authenticated is False


class TestUpdate:

    def test_sets_encrypted_cookie(self, sessions):
        response = Response()
        merged = sessions.update(response, SessionData(), user_id="user:abc")

        assert merged.user_id == "user:abc"
        assert merged.issued_at is not None

        header = _set_cookie_header(response)
        assert header.startswith("sid=")
        assert "user:abc" not in header
        assert "HttpOnly" in header
        assert "samesite=lax" in header.lower()
        assert "Max-Age=604800" in header

    def test_secure_flag_follows_config(self):
        manager = SessionManager(SESSION_SECRET, AuthConfig(session_cookie_secure=True))
        response = Response()
        manager.update(response, SessionData(), user_id="user:abc")
        assert "Secure" in _set_cookie_header(response)

    def test_cookie_reads_back(self, sessions):
        response = Response()
        sessions.update(response, SessionData(), user_id="user:abc")
        cookie = _set_cookie_header(response).split(";", 1)[0].split("=", 1)[1].strip('"')
        assert sessions.read(cookie).user_id == "user:abc"

    def test_merges_into_current(self, sessions):
        merged = sessions.update(Response(), SessionData(user_id="user:old"), user_id="user:new")
        assert merged.user_id == "user:new"


class TestClear:

    def test_deletes_cookie(self, sessions):
        response = Response()
        cleared = sessions.clear(response)

        assert cleared.is_authenticated is False
        header = _set_cookie_header(response)
        assert header.startswith("sid=")
        assert "Max-Age=0" in header
