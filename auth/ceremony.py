"""Pending passkey ceremonies.

A start phase leaves a marker in Valkey with a TTL; the finish phase must
find it. Registrations are keyed by the new user's id, logins by the
challenge the provider issued (read back from the browser's clientDataJSON).
"""

import base64
import json
import logging

from auth.config import AuthConfig
from auth.types import PasskeyCredential
from clients.valkey_client import ValkeyClient

logger = logging.getLogger(__name__)


def _normalize_challenge(challenge: str) -> str:
    """base64url without padding, the form clientDataJSON uses."""
    return challenge.replace("+", "-").replace("/", "_").rstrip("=")


def extract_client_challenge(credential: PasskeyCredential) -> str | None:
    """Challenge echoed by the authenticator in response.clientDataJSON, or None."""
    encoded = credential.response.get("clientDataJSON")
    if not isinstance(encoded, str) or not encoded:
        return None

    try:
        raw = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
        client_data = json.loads(raw)
    except (ValueError, TypeError):
        logger.warning("clientDataJSON is not valid base64url JSON")
        return None

    challenge = client_data.get("challenge") if isinstance(client_data, dict) else None
    return _normalize_challenge(challenge) if isinstance(challenge, str) else None


class CeremonyTracker:
    """Valkey-backed record of ceremonies waiting for their finish phase."""

    REGISTRATION_PREFIX = "ceremony:registration:"
    LOGIN_PREFIX = "ceremony:login:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._ttl_seconds = config.ceremony_timeout_minutes * 60

    def begin_registration(self, user_id: str, email: str, challenge: str) -> None:
        self._valkey.set_json(
            f"{self.REGISTRATION_PREFIX}{user_id}",
            {"email": email, "challenge": _normalize_challenge(challenge)},
            expire_seconds=self._ttl_seconds,
        )

    def pending_registration(self, user_id: str) -> dict | None:
        """The pending registration for a user, left in place until completed."""
        pending = self._valkey.get_json(f"{self.REGISTRATION_PREFIX}{user_id}")
        return pending if isinstance(pending, dict) else None

    def complete_registration(self, user_id: str) -> None:
        self._valkey.delete(f"{self.REGISTRATION_PREFIX}{user_id}")

    def begin_login(self, challenge: str, user_id: str) -> None:
        self._valkey.set_json(
            f"{self.LOGIN_PREFIX}{_normalize_challenge(challenge)}",
            {"userId": user_id},
            expire_seconds=self._ttl_seconds,
        )

    def consume_login(self, challenge: str) -> dict | None:
        """
        Take the pending login for a challenge. Single use: a second call
        for the same challenge returns None.
        """
        key = f"{self.LOGIN_PREFIX}{_normalize_challenge(challenge)}"
        pending = self._valkey.get_json(key)
        if pending is None:
            return None
        if not self._valkey.delete(key):
            # Another request consumed it between the read and the delete
            return None
        return pending if isinstance(pending, dict) else None
