"""Tests for auth/ceremony.py - pending ceremony tracking."""

import pytest

from auth.ceremony import CeremonyTracker, extract_client_challenge
from auth.types import PasskeyCredential
from fakes import client_data_json


@pytest.fixture
def tracker(valkey, auth_config):
    return CeremonyTracker(valkey, auth_config)


class TestExtractClientChallenge:
    """Reading the challenge the browser signed."""

    def test_reads_challenge(self):
        credential = PasskeyCredential(id="c", response={"clientDataJSON": client_data_json("abc_-1")})
        assert extract_client_challenge(credential) == "abc_-1"

    def test_normalizes_standard_base64(self):
        credential = PasskeyCredential(id="c", response={"clientDataJSON": client_data_json("ab+/cd==")})
        assert extract_client_challenge(credential) == "ab-_cd"

    def test_missing_client_data_is_none(self):
        assert extract_client_challenge(PasskeyCredential(id="c")) is None

    def test_undecodable_client_data_is_none(self):
        credential = PasskeyCredential(id="c", response={"clientDataJSON": "!!!not-base64!!!"})
        assert extract_client_challenge(credential) is None

    def test_client_data_without_challenge_is_none(self):
        credential = PasskeyCredential(id="c", response={"clientDataJSON": "e30"})  # {}
        assert extract_client_challenge(credential) is None


class TestRegistrationCeremony:

    def test_begin_then_pending(self, tracker):
        tracker.begin_registration("user:abc", "a@x.com", "chal==")
        assert tracker.pending_registration("user:abc") == {"email": "a@x.com", "challenge": "chal"}

    def test_pending_survives_reads(self, tracker):
        """A failed finish can be retried, so reading does not consume."""
        tracker.begin_registration("user:abc", "a@x.com", "chal")
        tracker.pending_registration("user:abc")
        assert tracker.pending_registration("user:abc") is not None

    def test_complete_removes_pending(self, tracker):
        tracker.begin_registration("user:abc", "a@x.com", "chal")
        tracker.complete_registration("user:abc")
        assert tracker.pending_registration("user:abc") is None

    def test_unknown_user_has_nothing_pending(self, tracker):
        assert tracker.pending_registration("user:nobody") is None

    def test_pending_registration_has_ttl(self, tracker, valkey):
        tracker.begin_registration("user:abc", "a@x.com", "chal")
        assert 0 < valkey.ttl("ceremony:registration:user:abc") <= 300


class TestLoginCeremony:

    def test_consume_returns_pending_once(self, tracker):
        tracker.begin_login("chal", "user:abc")
        assert tracker.consume_login("chal") == {"userId": "user:abc"}
        assert tracker.consume_login("chal") is None

    def test_consume_matches_normalized_challenge(self, tracker):
        tracker.begin_login("ab+/cd==", "user:abc")
        assert tracker.consume_login("ab-_cd") == {"userId": "user:abc"}

    def test_unknown_challenge_is_none(self, tracker):
        assert tracker.consume_login("never-issued") is None
