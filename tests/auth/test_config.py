"""Tests for auth/config.py - Auth configuration with validation."""

import pytest
from pydantic import ValidationError

from auth.config import AuthConfig


class TestAuthConfigDefaults:
    """Tests that AuthConfig has sensible defaults."""

    def test_session_cookie_defaults(self):
        config = AuthConfig()
        assert config.session_cookie_name == "sid"
        assert config.session_cookie_secure is True
        assert config.session_max_age_hours == 168

    def test_min_secret_length_default(self):
        assert AuthConfig().min_secret_length == 32

    def test_ceremony_timeout_default(self):
        assert AuthConfig().ceremony_timeout_minutes == 5

    def test_rate_limit_defaults(self):
        config = AuthConfig()
        assert config.rate_limit_attempts == 10
        assert config.rate_limit_window_minutes == 15


class TestAuthConfigValidation:
    """Tests that AuthConfig enforces validation bounds."""

    def test_session_max_age_min_bound(self):
        with pytest.raises(ValidationError):
            AuthConfig(session_max_age_hours=0)  # < 1

    def test_session_max_age_max_bound(self):
        with pytest.raises(ValidationError):
            AuthConfig(session_max_age_hours=2161)  # > 2160 (90 days)

    def test_ceremony_timeout_bounds(self):
        with pytest.raises(ValidationError):
            AuthConfig(ceremony_timeout_minutes=0)
        with pytest.raises(ValidationError):
            AuthConfig(ceremony_timeout_minutes=31)

    def test_rate_limit_attempts_bounds(self):
        with pytest.raises(ValidationError):
            AuthConfig(rate_limit_attempts=0)
        with pytest.raises(ValidationError):
            AuthConfig(rate_limit_attempts=51)

    def test_min_secret_length_floor(self):
        with pytest.raises(ValidationError):
            AuthConfig(min_secret_length=8)

    def test_empty_cookie_name_rejected(self):
        with pytest.raises(ValidationError):
            AuthConfig(session_cookie_name="")

    def test_valid_custom_values(self):
        config = AuthConfig(session_cookie_name="tb_session", ceremony_timeout_minutes=10)
        assert config.session_cookie_name == "tb_session"
        assert config.ceremony_timeout_minutes == 10
