"""Encrypted cookie sessions.

The whole session lives in one Fernet-encrypted cookie; nothing is stored
server-side. The encryption key is derived from the configured secret, and
the Fernet timestamp enforces the session lifetime on read.
"""

import base64
import hashlib
import json
import logging
import time

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import Response

from auth.config import AuthConfig
from auth.types import SessionData

logger = logging.getLogger(__name__)


def _derive_key(secret: str) -> bytes:
    """Fernet key (32 url-safe base64 bytes) from an arbitrary-length secret."""
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


class SessionManager:
    """Reads, updates and clears the session cookie.

    Usage:
        session = sessions.read(request.cookies.get(sessions.cookie_name))
        sessions.update(response, session, user_id=user.id)
        sessions.clear(response)
    """

    def __init__(self, secret: str, config: AuthConfig):
        if not secret:
            raise ValueError("session secret is required")
        if len(secret) < config.min_secret_length:
            logger.warning(
                f"Session secret is shorter than {config.min_secret_length} characters. "
                "Session cookies are insecure!"
            )

        self._fernet = Fernet(_derive_key(secret))
        self._config = config
        self._max_age_seconds = config.session_max_age_hours * 3600

    @property
    def cookie_name(self) -> str:
        return self._config.session_cookie_name

    def read(self, cookie_value: str | None) -> SessionData:
        """Decrypt a cookie value.

        Missing, expired, tampered or malformed cookies read as an empty
        session; this never raises for "no session".
        """
        if not cookie_value:
            return SessionData()

        try:
            raw = self._fernet.decrypt(cookie_value.encode("ascii"), ttl=self._max_age_seconds)
            return SessionData.model_validate(json.loads(raw))
        except InvalidToken:
            logger.debug("Session cookie invalid or expired")
        except (UnicodeEncodeError, ValueError, ValidationError) as e:
            logger.warning(f"Session cookie payload unreadable: {e}")
        return SessionData()

    def read_request(self, request: Request) -> SessionData:
        return self.read(request.cookies.get(self.cookie_name))

    def encode(self, session: SessionData) -> str:
        """Encrypt a session payload into a cookie value."""
        payload = session.model_dump(by_alias=True, exclude_none=True)
        return self._fernet.encrypt(json.dumps(payload).encode("utf-8")).decode("ascii")

    def update(self, response: Response, current: SessionData, **fields) -> SessionData:
        """Merge fields into the session and set the re-encrypted cookie."""
        merged = SessionData.model_validate(
            {**current.model_dump(), **fields, "issued_at": int(time.time())}
        )

        response.set_cookie(
            key=self.cookie_name,
            value=self.encode(merged),
            max_age=self._max_age_seconds,
            httponly=True,
            secure=self._config.session_cookie_secure,
            samesite="lax",
        )
        return merged

    def clear(self, response: Response) -> SessionData:
        """Remove the session cookie."""
        response.delete_cookie(
            key=self.cookie_name,
            httponly=True,
            secure=self._config.session_cookie_secure,
            samesite="lax",
        )
        return SessionData()
