"""Passkey ceremony service - orchestrates registration and login.

Flow for the single unauthenticated entry point:

    begin(email)
      ├─ NotFound → create user → provider registration challenge → RegistrationStart
      └─ Found    → provider login challenge                      → LoginStart

    finish_registration(user_id, credential) → provider verifies → store credential
    finish_login(credential) → provider verifies → signed token → resolve user

Each start leaves a pending ceremony in Valkey that the finish must find.
"""

import logging
from typing import NoReturn

from auth.ceremony import CeremonyTracker, extract_client_challenge
from auth.database import CredentialStore, UserDirectory
from auth.exceptions import (
    AuthenticationError,
    CredentialReconciliationError,
    PersistenceError,
    RateLimitedError,
    VerificationError,
)
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.types import (
    CeremonyStart,
    Found,
    LoginStart,
    Passkey,
    PasskeyCredential,
    RegistrationStart,
    User,
)
from clients.passkey_client import PasskeyProviderClient, PasskeyProviderError
from clients.record_store import StoreConnectionError

logger = logging.getLogger(__name__)


class PasskeyCeremonyService:
    """Two-phase passkey ceremonies against the external provider.

    Handles:
    - Registration vs. login branching on email lookup
    - Registration start/finish (new users and additional passkeys)
    - Login start/finish
    """

    def __init__(
        self,
        users: UserDirectory,
        credentials: CredentialStore,
        provider: PasskeyProviderClient,
        ceremonies: CeremonyTracker,
        rate_limiter: RateLimiter,
        security_logger: SecurityLogger,
    ):
        self._users = users
        self._credentials = credentials
        self._provider = provider
        self._ceremonies = ceremonies
        self._rate_limiter = rate_limiter
        self._security_logger = security_logger

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def begin(
        self,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> CeremonyStart:
        """Start login for a known email, registration for an unknown one.

        Raises:
            RateLimitedError: Too many starts for this email.
            ConflictError: A concurrent registration created the user first.
            VerificationError: Provider refused to issue registration options.
            AuthenticationError: Provider refused to issue login options.
        """
        email = email.strip().lower()

        try:
            self._rate_limiter.check_rate_limit(email)
        except RateLimitedError as e:
            self._security_logger.log(
                SecurityEvent.RATE_LIMITED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"retry_after_seconds": e.retry_after_seconds},
            )
            raise

        outcome = self._users.find_by_email(email)

        if isinstance(outcome, Found):
            return self.start_login(outcome.user, ip_address, user_agent)
        return self.start_registration(email, ip_address, user_agent)

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def start_registration(
        self,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RegistrationStart:
        """Create the user and request a registration challenge scoped to them."""
        user = self._users.create(email)

        self._security_logger.log(
            SecurityEvent.USER_CREATED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        options = self._initialize_registration(user, ip_address, user_agent)
        return RegistrationStart(options=options, user_id=user.id)

    def start_enrollment(
        self,
        user: User,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict:
        """Request a registration challenge for an additional passkey."""
        return self._initialize_registration(user, ip_address, user_agent)

    def _initialize_registration(
        self,
        user: User,
        ip_address: str | None,
        user_agent: str | None,
    ) -> dict:
        try:
            options = self._provider.initialize_registration(user_id=user.key, username=user.email)
        except PasskeyProviderError as e:
            self._security_logger.log(
                SecurityEvent.REGISTRATION_FAILED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "initialize_rejected", "error": str(e)},
            )
            raise VerificationError("Could not start passkey registration.") from e

        self._ceremonies.begin_registration(user.id, user.email, options.publicKey.challenge)

        self._security_logger.log(
            SecurityEvent.REGISTRATION_STARTED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return options.model_dump(mode="json")

    def finish_registration(
        self,
        user_id: str,
        credential: PasskeyCredential,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Passkey:
        """Verify the attestation with the provider, then store the credential.

        A rejected ceremony leaves the user and the pending ceremony intact,
        so the finish can be retried until the ceremony expires.

        Raises:
            VerificationError: No pending registration, challenge mismatch,
                or the provider rejected the credential.
            CredentialReconciliationError: Provider accepted but storing failed.
        """
        pending = self._ceremonies.pending_registration(user_id)
        if pending is None:
            self._registration_failed(user_id, "no_pending_registration", ip_address, user_agent)

        challenge = extract_client_challenge(credential)
        if challenge is not None and challenge != pending.get("challenge"):
            self._registration_failed(user_id, "challenge_mismatch", ip_address, user_agent)

        try:
            self._provider.finalize_registration(credential.model_dump(mode="json"))
        except PasskeyProviderError as e:
            self._registration_failed(
                user_id, "provider_rejected", ip_address, user_agent, error=e
            )

        try:
            passkey = self._credentials.store(user_id, credential)
        except (PersistenceError, StoreConnectionError) as e:
            logger.error(
                f"RECONCILIATION REQUIRED: provider verified credential {credential.id} "
                f"for {user_id} but it was not stored: {e}"
            )
            self._security_logger.log(
                SecurityEvent.CREDENTIAL_RECONCILIATION_REQUIRED,
                email=pending.get("email"),
                user_id=user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"credential_id": credential.id, "error": str(e)},
            )
            raise CredentialReconciliationError(user_id, credential.id) from e

        self._ceremonies.complete_registration(user_id)
        if pending.get("email"):
            self._rate_limiter.reset_rate_limit(pending["email"])

        self._security_logger.log(
            SecurityEvent.REGISTRATION_COMPLETED,
            email=pending.get("email"),
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"passkey_id": passkey.id},
        )
        return passkey

    def _registration_failed(
        self,
        user_id: str,
        reason: str,
        ip_address: str | None,
        user_agent: str | None,
        error: Exception | None = None,
    ) -> NoReturn:
        details = {"reason": reason}
        if error is not None:
            details["error"] = str(error)

        self._security_logger.log(
            SecurityEvent.REGISTRATION_FAILED,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details,
        )
        raise VerificationError("Passkey registration failed.") from error

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    def start_login(
        self,
        user: User,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginStart:
        """Request a login challenge. Not scoped to a specific credential."""
        try:
            options = self._provider.initialize_login()
        except PasskeyProviderError as e:
            self._login_failed("initialize_rejected", ip_address, user_agent, email=user.email, error=e)

        self._ceremonies.begin_login(options.publicKey.challenge, user.id)

        self._security_logger.log(
            SecurityEvent.LOGIN_STARTED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return LoginStart(options=options.model_dump(mode="json"))

    def finish_login(
        self,
        credential: PasskeyCredential,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> User:
        """Verify the assertion with the provider and resolve the user it names.

        Raises:
            AuthenticationError: No pending login for the challenge, provider
                rejection, unknown subject, or a credential that does not
                belong to the subject.
        """
        challenge = extract_client_challenge(credential)
        pending = self._ceremonies.consume_login(challenge) if challenge else None
        if pending is None:
            self._login_failed("no_pending_login", ip_address, user_agent)

        try:
            result = self._provider.finalize_login(credential.model_dump(mode="json"))
            claims = self._provider.read_assertion(result.token)
        except PasskeyProviderError as e:
            self._login_failed("provider_rejected", ip_address, user_agent, error=e)

        user = self._users.find_by_id(f"user:{claims.sub}")
        if user is None and claims.email:
            outcome = self._users.find_by_email(claims.email)
            if isinstance(outcome, Found):
                logger.warning(f"Assertion subject {claims.sub} unknown; resolved by email claim")
                user = outcome.user
        if user is None:
            self._login_failed(
                "unknown_subject", ip_address, user_agent, details={"subject": claims.sub}
            )

        if pending.get("userId") != user.id:
            logger.warning(
                f"Login started for {pending.get('userId')} completed as {user.id}"
            )

        self._check_credential(user, credential, ip_address, user_agent)
        self._rate_limiter.reset_rate_limit(user.email)

        self._security_logger.log(
            SecurityEvent.LOGIN_SUCCEEDED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return user

    def _check_credential(
        self,
        user: User,
        credential: PasskeyCredential,
        ip_address: str | None,
        user_agent: str | None,
    ) -> None:
        """Cross-check the asserted credential against the local store."""
        passkey = self._credentials.find_by_credential_id(credential.id)
        if passkey is None:
            logger.warning(f"Credential {credential.id} for {user.id} is not in the local store")
            return

        if passkey.user_id != user.id:
            self._login_failed(
                "credential_owner_mismatch",
                ip_address,
                user_agent,
                email=user.email,
                details={"credential_id": credential.id, "owner": passkey.user_id},
            )

        counter = CredentialStore.counter_from_assertion(credential)
        if counter and passkey.counter and counter <= passkey.counter:
            self._security_logger.log(
                SecurityEvent.CREDENTIAL_COUNTER_REGRESSED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"passkey_id": passkey.id, "stored": passkey.counter, "received": counter},
            )
            self._login_failed("counter_regressed", ip_address, user_agent, email=user.email)

        self._credentials.record_use(passkey, counter)

    def _login_failed(
        self,
        reason: str,
        ip_address: str | None,
        user_agent: str | None,
        email: str | None = None,
        error: Exception | None = None,
        details: dict | None = None,
    ) -> NoReturn:
        details = {"reason": reason, **(details or {})}
        if error is not None:
            details["error"] = str(error)

        self._security_logger.log(
            SecurityEvent.LOGIN_FAILED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details,
        )
        raise AuthenticationError("Passkey login failed.") from error
