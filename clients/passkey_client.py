"""
Passkey provider client.

Talks to a hosted passkey verification API (Hanko-compatible tenant API):
the provider issues WebAuthn challenges and verifies the browser's
responses. No WebAuthn cryptography happens in this process.

Every call has an explicit request/response schema validated on receipt.
"""

import json
import logging
from typing import Any

import jwt
import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

ASSERTION_ALGORITHMS = ["RS256", "ES256"]


class PasskeyProviderError(Exception):
    """Provider call failed: transport error, rejection, or malformed response."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# =============================================================================
# PROVIDER SCHEMAS
# =============================================================================


class RegistrationInitializeRequest(BaseModel):
    """Body of registration/initialize."""

    user_id: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)


class PublicKeyOptions(BaseModel):
    """
    The `publicKey` member of WebAuthn creation/request options.

    Only `challenge` is required here; everything else is forwarded to the
    browser untouched.
    """

    model_config = ConfigDict(extra="allow")

    challenge: str = Field(..., min_length=1)


class CeremonyOptions(BaseModel):
    """Options returned by registration/initialize and login/initialize."""

    model_config = ConfigDict(extra="allow")

    publicKey: PublicKeyOptions


class LoginFinalizeResponse(BaseModel):
    """Body returned by login/finalize."""

    model_config = ConfigDict(extra="allow")

    token: str = Field(..., min_length=1)


class AssertionClaims(BaseModel):
    """Claims read from the provider's signed login assertion."""

    model_config = ConfigDict(extra="allow")

    sub: str = Field(..., min_length=1)
    email: str | None = None


# =============================================================================
# CLIENT
# =============================================================================


class PasskeyProviderClient:
    """HTTP client for the passkey provider's tenant API."""

    TIMEOUT_SECONDS = 10

    def __init__(
        self,
        base_url: str,
        tenant_id: str,
        api_key: str,
        verify_assertions: bool = True,
    ):
        """
        Initialize with tenant credentials.

        Args:
            base_url: Provider API root (e.g., https://passkeys.hanko.io)
            tenant_id: Tenant identifier
            api_key: Secret API key sent in the `apikey` header
            verify_assertions: Verify login tokens against the tenant JWKS

        Raises:
            ValueError: If any credential is empty
        """
        if not base_url:
            raise ValueError("base_url is required")
        if not tenant_id:
            raise ValueError("tenant_id is required")
        if not api_key:
            raise ValueError("api_key is required")

        self.tenant_url = f"{base_url.rstrip('/')}/{tenant_id}"
        self.api_key = api_key
        self.verify_assertions = verify_assertions
        self._jwks_client: jwt.PyJWKClient | None = None

    def _post(self, path: str, payload: Any = None) -> dict:
        """
        POST JSON to the tenant API and return the decoded body.

        Raises:
            PasskeyProviderError: On any failure
        """
        url = f"{self.tenant_url}/{path}"
        headers = {
            "Content-Type": "application/json",
            "apikey": self.api_key,
        }

        try:
            response = requests.post(
                url,
                data=json.dumps(payload if payload is not None else {}),
                headers=headers,
                timeout=self.TIMEOUT_SECONDS,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Passkey provider connection failed ({path}): {e}")
            raise PasskeyProviderError(f"Connection failed: {e}")

        if not response.content:
            body: dict = {}
        else:
            try:
                body = response.json()
            except ValueError:
                logger.error(f"Passkey provider returned invalid JSON ({path}): {response.text[:200]}")
                raise PasskeyProviderError("Invalid response from provider", response.status_code)

        if response.status_code >= 400:
            error_msg = body.get("details") or body.get("title") or "Unknown error"
            logger.warning(f"Passkey provider rejected {path} ({response.status_code}): {error_msg}")
            raise PasskeyProviderError(f"Provider error: {error_msg}", response.status_code)

        return body

    def _parse(self, model: type[BaseModel], body: dict, path: str):
        try:
            return model.model_validate(body)
        except ValidationError as e:
            logger.error(f"Passkey provider response for {path} failed validation: {e}")
            raise PasskeyProviderError(f"Malformed provider response for {path}")

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def initialize_registration(self, user_id: str, username: str) -> CeremonyOptions:
        """Request creation options for a new credential owned by `user_id`."""
        request = RegistrationInitializeRequest(user_id=user_id, username=username)
        body = self._post("registration/initialize", request.model_dump())
        return self._parse(CeremonyOptions, body, "registration/initialize")

    def finalize_registration(self, credential: dict) -> None:
        """Submit the browser's attestation. Returns only if the provider accepted it."""
        self._post("registration/finalize", credential)

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    def initialize_login(self) -> CeremonyOptions:
        """Request assertion options (discoverable credentials, no user hint)."""
        body = self._post("login/initialize")
        return self._parse(CeremonyOptions, body, "login/initialize")

    def finalize_login(self, credential: dict) -> LoginFinalizeResponse:
        """Submit the browser's assertion; the provider answers with a signed token."""
        body = self._post("login/finalize", credential)
        return self._parse(LoginFinalizeResponse, body, "login/finalize")

    def read_assertion(self, token: str) -> AssertionClaims:
        """
        Decode the login token and return its claims.

        The signature is checked against the tenant's JWKS unless
        verify_assertions is off.

        Raises:
            PasskeyProviderError: Token invalid, unverifiable or missing `sub`.
        """
        try:
            if self.verify_assertions:
                if self._jwks_client is None:
                    self._jwks_client = jwt.PyJWKClient(f"{self.tenant_url}/.well-known/jwks.json")
                signing_key = self._jwks_client.get_signing_key_from_jwt(token)
                payload = jwt.decode(
                    token,
                    signing_key.key,
                    algorithms=ASSERTION_ALGORITHMS,
                    options={"verify_aud": False},
                )
            else:
                payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            logger.warning(f"Passkey assertion rejected: {e}")
            raise PasskeyProviderError(f"Invalid assertion token: {e}")

        try:
            return AssertionClaims.model_validate(payload)
        except ValidationError:
            raise PasskeyProviderError("Assertion token does not contain a subject")
