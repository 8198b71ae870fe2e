"""Record store access for users and their passkey credentials.

Every record handed out is validated against its model first; a record
that does not match is a PersistenceError, never passed through.
"""

import base64
import logging

from pydantic import ValidationError

from auth.exceptions import ConflictError, PersistenceError
from auth.types import (
    Found,
    LookupResult,
    NotFound,
    Passkey,
    PasskeyCredential,
    PasskeyDocument,
    User,
)
from clients.record_store import (
    DuplicateRecordError,
    RecordStore,
    RecordStoreError,
    StoreConnectionError,
)
from utils.record_id import RecordId
from utils.timezone import now_utc, to_iso

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class UserDirectory:
    """Looks up and creates user records."""

    COLLECTION = "user"

    def __init__(self, store: RecordStore):
        self._store = store

    def _to_user(self, record: dict) -> User:
        try:
            return User.model_validate(record)
        except ValidationError as e:
            logger.error(f"User record {record.get('id')} failed validation: {e}")
            raise PersistenceError("Stored user record is malformed") from e

    def find_by_email(self, email: str) -> LookupResult:
        """Exact (case-insensitive) email lookup."""
        try:
            records = self._store.find(self.COLLECTION, {"email": _normalize_email(email)}, limit=1)
        except StoreConnectionError:
            raise
        except RecordStoreError as e:
            raise PersistenceError("User lookup failed") from e

        if not records:
            logger.debug(f"No user found for email: {email}")
            return NotFound()
        return Found(self._to_user(records[0]))

    def find_by_id(self, user_id: str) -> User | None:
        """Resolve "user:<key>" or a bare key. Malformed ids resolve to None."""
        try:
            record_id = RecordId.parse(user_id, self.COLLECTION)
        except ValueError:
            logger.warning(f"Invalid user id format: {user_id!r}")
            return None

        try:
            record = self._store.select(record_id)
        except StoreConnectionError:
            raise
        except RecordStoreError as e:
            raise PersistenceError("User lookup failed") from e

        if record is None:
            return None
        return self._to_user(record)

    def create(self, email: str, name: str | None = None) -> User:
        """
        Create a user for an unseen email.

        Raises:
            ConflictError: The email is already registered. The store's
                unique index decides, so concurrent creates cannot both win.
            PersistenceError: Write failed or the stored record is malformed.
        """
        email = _normalize_email(email)
        data = {"email": email, "createdAt": to_iso(now_utc())}
        if name:
            data["name"] = name

        try:
            record = self._store.create(self.COLLECTION, data)
        except DuplicateRecordError as e:
            raise ConflictError(f"Email {email} is already registered.") from e
        except StoreConnectionError:
            raise
        except RecordStoreError as e:
            logger.error(f"Failed to create user for {email}: {e}")
            raise PersistenceError("Failed to create user") from e

        user = self._to_user(record)
        logger.info(f"User created: {user.id}")
        return user

    def update_name(self, user_id: str, name: str | None) -> User:
        """Set or clear the display name.

        Raises:
            PersistenceError: User missing or write failed.
        """
        try:
            record = self._store.merge(RecordId.parse(user_id, self.COLLECTION), {"name": name})
        except StoreConnectionError:
            raise
        except (RecordStoreError, ValueError) as e:
            raise PersistenceError("Failed to update user") from e

        if record is None:
            raise PersistenceError(f"User {user_id} not found")
        return self._to_user(record)


def _counter_from_authenticator_data(encoded: str | None) -> int | None:
    """
    Signature counter from base64url authenticatorData.

    Layout: rpIdHash (32 bytes), flags (1 byte), signCount (4 bytes, big-endian).
    """
    if not encoded:
        return None
    try:
        raw = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
    except (ValueError, TypeError):
        return None
    if len(raw) < 37:
        return None
    return int.from_bytes(raw[33:37], "big")


class CredentialStore:
    """Persists metadata of passkeys the provider has verified."""

    COLLECTION = "passkey"

    def __init__(self, store: RecordStore):
        self._store = store

    def _to_passkey(self, record: dict) -> Passkey:
        try:
            return Passkey.model_validate(record)
        except ValidationError as e:
            logger.error(f"Passkey record {record.get('id')} failed validation: {e}")
            raise PersistenceError("Stored passkey record is malformed") from e

    def store(self, user_id: str, credential: PasskeyCredential) -> Passkey:
        """
        Persist a verified credential linked to `user_id`.

        Raises:
            PersistenceError: Credential fields are malformed, the write
                failed, or the stored record is malformed.
        """
        response = credential.response
        extra = credential.model_extra or {}

        try:
            document = PasskeyDocument(
                user_id=user_id,
                credential_id=credential.id,
                public_key=extra.get("publicKey") or response.get("publicKey"),
                transports=response.get("transports") or [],
                counter=response.get("counter") or 0,
            )
        except ValidationError as e:
            logger.error(f"Credential {credential.id} for {user_id} has malformed fields: {e}")
            raise PersistenceError("Passkey credential fields are malformed") from e

        data = {**document.model_dump(by_alias=True), "createdAt": to_iso(now_utc())}

        try:
            record = self._store.create(self.COLLECTION, data)
        except StoreConnectionError:
            raise
        except RecordStoreError as e:
            logger.error(f"Failed to store passkey for {user_id}: {e}")
            raise PersistenceError("Failed to store passkey credential") from e

        passkey = self._to_passkey(record)
        logger.info(f"Passkey stored for {user_id}: {passkey.id}")
        return passkey

    def find_by_credential_id(self, credential_id: str) -> Passkey | None:
        try:
            records = self._store.find(self.COLLECTION, {"credentialId": credential_id}, limit=1)
        except StoreConnectionError:
            raise
        except RecordStoreError as e:
            raise PersistenceError("Passkey lookup failed") from e
        return self._to_passkey(records[0]) if records else None

    def list_for_user(self, user_id: str) -> list[Passkey]:
        """Passkeys owned by a user, oldest first."""
        try:
            records = self._store.find(self.COLLECTION, {"userId": user_id}, order_by="createdAt")
        except StoreConnectionError:
            raise
        except RecordStoreError as e:
            raise PersistenceError("Passkey lookup failed") from e
        return [self._to_passkey(r) for r in records]

    def record_use(self, passkey: Passkey, counter: int | None) -> Passkey:
        """Stamp lastUsedAt and raise the stored counter to `counter` if higher."""
        patch = {"lastUsedAt": to_iso(now_utc())}
        if counter is not None and counter > passkey.counter:
            patch["counter"] = counter

        try:
            record = self._store.merge(RecordId.parse(passkey.id, self.COLLECTION), patch)
        except StoreConnectionError:
            raise
        except RecordStoreError as e:
            raise PersistenceError("Failed to update passkey") from e

        if record is None:
            raise PersistenceError(f"Passkey {passkey.id} not found")
        return self._to_passkey(record)

    @staticmethod
    def counter_from_assertion(credential: PasskeyCredential) -> int | None:
        """Signature counter reported by the authenticator in a login assertion."""
        return _counter_from_authenticator_data(credential.response.get("authenticatorData"))
