"""Security event logging for the auth audit trail.

Append-only: events are written to the `security_event` collection and
never updated. Every event is mirrored to the application log.
"""

import logging
from enum import Enum
from typing import Any

from clients.record_store import RecordStore, RecordStoreError
from utils.timezone import to_iso, now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Auth security event types."""

    USER_CREATED = "user_created"
    REGISTRATION_STARTED = "registration_started"
    REGISTRATION_COMPLETED = "registration_completed"
    REGISTRATION_FAILED = "registration_failed"
    CREDENTIAL_RECONCILIATION_REQUIRED = "credential_reconciliation_required"
    LOGIN_STARTED = "login_started"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    CREDENTIAL_COUNTER_REGRESSED = "credential_counter_regressed"
    SESSION_CREATED = "session_created"
    SESSION_CLEARED = "session_cleared"
    SESSION_ORPHANED = "session_orphaned"
    RATE_LIMITED = "rate_limited"


# Events an operator must look at
_ALERT_EVENTS = {
    SecurityEvent.CREDENTIAL_RECONCILIATION_REQUIRED,
    SecurityEvent.CREDENTIAL_COUNTER_REGRESSED,
}


class SecurityLogger:
    """Append-only security event logger."""

    COLLECTION = "security_event"

    def __init__(self, store: RecordStore):
        self._store = store

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record a security event.

        A failed write is logged and does not fail the request that
        triggered the event.
        """
        level = logging.ERROR if event in _ALERT_EVENTS else logging.INFO
        logger.log(
            level,
            f"security event {event.value}: user={user_id} email={email} ip={ip_address} details={details}",
        )

        try:
            self._store.create(
                self.COLLECTION,
                {
                    "eventType": event.value,
                    "email": email,
                    "userId": user_id,
                    "ipAddress": ip_address,
                    "userAgent": user_agent,
                    "details": details,
                    "createdAt": to_iso(now_utc()),
                },
            )
        except RecordStoreError as e:
            logger.error(f"Failed to persist security event {event.value}: {e}")

    def get_recent_events(
        self,
        email: str | None = None,
        user_id: str | None = None,
        event_type: SecurityEvent | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Recent events, newest first, with optional filters."""
        filters: dict[str, Any] = {}
        if email:
            filters["email"] = email
        if user_id:
            filters["userId"] = user_id
        if event_type:
            filters["eventType"] = event_type.value

        return self._store.find(
            self.COLLECTION,
            filters,
            order_by="createdAt",
            descending=True,
            limit=limit,
        )
