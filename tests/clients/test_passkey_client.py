"""Tests for PasskeyProviderClient - hosted passkey verification API."""

import json
from unittest.mock import Mock, patch

import jwt
import pytest
import requests
import responses
from cryptography.hazmat.primitives.asymmetric import rsa

from clients.passkey_client import CeremonyOptions, PasskeyProviderClient, PasskeyProviderError

BASE_URL = "https://passkeys.example.com"
TENANT_URL = f"{BASE_URL}/tenant-1"


@pytest.fixture
def client():
    """Client with test tenant credentials."""
    return PasskeyProviderClient(base_url=BASE_URL, tenant_id="tenant-1", api_key="test-api-key")


@pytest.fixture(scope="module")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


class TestPasskeyProviderClientInit:
    """Fail-fast on invalid config."""

    def test_builds_tenant_url(self):
        client = PasskeyProviderClient(base_url=BASE_URL + "/", tenant_id="tenant-1", api_key="k")
        assert client.tenant_url == TENANT_URL

    @pytest.mark.parametrize("field", ["base_url", "tenant_id", "api_key"])
    def test_rejects_empty_field(self, field):
        kwargs = {"base_url": BASE_URL, "tenant_id": "tenant-1", "api_key": "k", field: ""}
        with pytest.raises(ValueError, match=field):
            PasskeyProviderClient(**kwargs)


class TestRegistration:

    @responses.activate
    def test_initialize_sends_user_and_api_key(self, client):
        responses.add(
            responses.POST,
            f"{TENANT_URL}/registration/initialize",
            json={"publicKey": {"challenge": "abc", "rp": {"id": "tasks.test"}}},
            status=200,
        )

        options = client.initialize_registration(user_id="key123", username="a@x.com")

        assert isinstance(options, CeremonyOptions)
        assert options.publicKey.challenge == "abc"
        assert options.model_dump(mode="json")["publicKey"]["rp"] == {"id": "tasks.test"}

        sent = responses.calls[0].request
        assert sent.headers["apikey"] == "test-api-key"
        assert json.loads(sent.body) == {"user_id": "key123", "username": "a@x.com"}

    @responses.activate
    def test_initialize_without_challenge_is_error(self, client):
        responses.add(responses.POST, f"{TENANT_URL}/registration/initialize", json={"publicKey": {}}, status=200)

        with pytest.raises(PasskeyProviderError, match="Malformed"):
            client.initialize_registration(user_id="key123", username="a@x.com")

    @responses.activate
    def test_finalize_forwards_credential(self, client):
        responses.add(responses.POST, f"{TENANT_URL}/registration/finalize", json={"credential_id": "c"}, status=200)

        assert client.finalize_registration({"id": "cred-1", "response": {}}) is None
        assert json.loads(responses.calls[0].request.body)["id"] == "cred-1"

    @responses.activate
    def test_finalize_rejection_raises_with_status(self, client):
        responses.add(
            responses.POST,
            f"{TENANT_URL}/registration/finalize",
            json={"title": "Bad Request", "details": "attestation invalid"},
            status=400,
        )

        with pytest.raises(PasskeyProviderError, match="attestation invalid") as exc_info:
            client.finalize_registration({"id": "cred-1"})
        assert exc_info.value.status_code == 400


class TestLogin:

    @responses.activate
    def test_initialize_returns_options(self, client):
        responses.add(responses.POST, f"{TENANT_URL}/login/initialize", json={"publicKey": {"challenge": "xyz"}})

        assert client.initialize_login().publicKey.challenge == "xyz"

    @responses.activate
    def test_finalize_returns_token(self, client):
        responses.add(responses.POST, f"{TENANT_URL}/login/finalize", json={"token": "a.b.c"})

        assert client.finalize_login({"id": "cred-1"}).token == "a.b.c"

    @responses.activate
    def test_finalize_without_token_is_error(self, client):
        responses.add(responses.POST, f"{TENANT_URL}/login/finalize", json={})

        with pytest.raises(PasskeyProviderError):
            client.finalize_login({"id": "cred-1"})


class TestTransportFailures:

    @responses.activate
    def test_connection_failure_raises_error(self, client):
        responses.add(
            responses.POST,
            f"{TENANT_URL}/login/initialize",
            body=requests.exceptions.ConnectionError("Network unreachable"),
        )

        with pytest.raises(PasskeyProviderError, match="Connection failed"):
            client.initialize_login()

    @responses.activate
    def test_invalid_json_response_raises_error(self, client):
        responses.add(responses.POST, f"{TENANT_URL}/login/initialize", body="not json", status=200)

        with pytest.raises(PasskeyProviderError, match="Invalid response"):
            client.initialize_login()

    @responses.activate
    def test_server_error_without_body_raises_error(self, client):
        responses.add(responses.POST, f"{TENANT_URL}/login/initialize", status=503)

        with pytest.raises(PasskeyProviderError) as exc_info:
            client.initialize_login()
        assert exc_info.value.status_code == 503


class TestReadAssertion:
    """Signed login tokens."""

    def _token(self, key, **claims) -> str:
        return jwt.encode({"sub": "key123", "email": "a@x.com", **claims}, key, algorithm="RS256")

    def test_verified_token_returns_claims(self, client, signing_key):
        token = self._token(signing_key)

        with patch.object(
            jwt.PyJWKClient,
            "get_signing_key_from_jwt",
            return_value=Mock(key=signing_key.public_key()),
        ):
            claims = client.read_assertion(token)

        assert claims.sub == "key123"
        assert claims.email == "a@x.com"

    def test_wrong_signing_key_is_rejected(self, client, signing_key):
        other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        token = self._token(other)

        with patch.object(
            jwt.PyJWKClient,
            "get_signing_key_from_jwt",
            return_value=Mock(key=signing_key.public_key()),
        ):
            with pytest.raises(PasskeyProviderError, match="Invalid assertion"):
                client.read_assertion(token)

    def test_jwks_fetched_from_tenant(self, client, signing_key):
        with patch.object(
            jwt.PyJWKClient,
            "get_signing_key_from_jwt",
            return_value=Mock(key=signing_key.public_key()),
        ):
            client.read_assertion(self._token(signing_key))

        assert client._jwks_client.uri == f"{TENANT_URL}/.well-known/jwks.json"

    def test_unverified_mode_skips_signature(self, signing_key):
        client = PasskeyProviderClient(
            base_url=BASE_URL, tenant_id="tenant-1", api_key="k", verify_assertions=False
        )
        assert client.read_assertion(self._token(signing_key)).sub == "key123"

    def test_token_without_subject_is_rejected(self, signing_key):
        client = PasskeyProviderClient(
            base_url=BASE_URL, tenant_id="tenant-1", api_key="k", verify_assertions=False
        )
        token = jwt.encode({"email": "a@x.com"}, signing_key, algorithm="RS256")

        with pytest.raises(PasskeyProviderError, match="subject"):
            client.read_assertion(token)

    def test_garbage_token_is_rejected(self, client):
        with pytest.raises(PasskeyProviderError):
            client.read_assertion("not-a-jwt")
