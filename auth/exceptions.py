"""Typed exceptions for passkey ceremonies and user records."""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class ConflictError(AuthError):
    """Email already belongs to a user. Reported to clients as 409."""


class VerificationError(AuthError):
    """
    Provider rejected a registration ceremony, or no registration is pending.

    Ceremonies are never retried automatically; the client re-submits or
    starts over.
    """


class AuthenticationError(AuthError):
    """
    Login ceremony failed: provider rejected the assertion, or the asserted
    subject does not resolve to a known user.
    """


class PersistenceError(AuthError):
    """
    Record store write failed, or a stored record does not match its model.
    """


class CredentialReconciliationError(PersistenceError):
    """
    Provider accepted a registration but the credential could not be stored.

    The provider now knows a credential that the local store does not.
    Operators must reconcile; always logged at ERROR with a security event.
    """

    def __init__(self, user_id: str, credential_id: str | None):
        self.user_id = user_id
        self.credential_id = credential_id
        super().__init__(
            f"Credential {credential_id} for {user_id} verified by provider but not stored"
        )


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")
