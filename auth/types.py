"""Pydantic models for the auth domain.

Stored documents and JSON bodies use camelCase; Python code uses
snake_case through aliases.
"""

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for models exchanged with the store and clients in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _require_prefix(value: str, collection: str) -> str:
    prefix, _, key = value.partition(":")
    if prefix != collection or not key:
        raise ValueError(f"must be a '{collection}:' record id")
    return value


class User(CamelModel):
    """A registered user."""

    id: str
    email: EmailStr
    name: str | None = None

    @field_validator("id")
    @classmethod
    def check_id(cls, value: str) -> str:
        return _require_prefix(value, "user")

    @property
    def key(self) -> str:
        """Record key without the collection prefix (the provider's user id)."""
        return self.id.split(":", 1)[1]


class Passkey(CamelModel):
    """Metadata of an enrolled passkey credential."""

    id: str
    user_id: str
    credential_id: str = Field(..., min_length=1)
    public_key: str | None = None
    transports: list[str] = Field(default_factory=list)
    counter: int = Field(default=0, ge=0)
    created_at: datetime
    last_used_at: datetime | None = None

    @field_validator("id")
    @classmethod
    def check_id(cls, value: str) -> str:
        return _require_prefix(value, "passkey")

    @field_validator("user_id")
    @classmethod
    def check_user_id(cls, value: str) -> str:
        return _require_prefix(value, "user")


class PasskeyDocument(CamelModel):
    """A verified credential as written to the store, before it has an id."""

    user_id: str
    credential_id: str = Field(..., min_length=1)
    public_key: str | None = None
    transports: list[str] = Field(default_factory=list)
    counter: int = Field(default=0, ge=0)

    @field_validator("user_id")
    @classmethod
    def check_user_id(cls, value: str) -> str:
        return _require_prefix(value, "user")


class SessionData(CamelModel):
    """Decrypted session cookie payload. Empty when unauthenticated."""

    user_id: str | None = None
    issued_at: int | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


# =============================================================================
# LOOKUP OUTCOMES AND CEREMONY STARTS
# =============================================================================


@dataclass(frozen=True)
class Found:
    """Email lookup hit."""

    user: User


@dataclass(frozen=True)
class NotFound:
    """Email lookup miss."""


LookupResult = Found | NotFound


@dataclass(frozen=True)
class RegistrationStart:
    """First phase of registering a new user's passkey."""

    options: dict
    user_id: str


@dataclass(frozen=True)
class LoginStart:
    """First phase of logging in with an enrolled passkey."""

    options: dict


CeremonyStart = RegistrationStart | LoginStart


# =============================================================================
# REQUEST BODIES
# =============================================================================


class PasskeyCredential(BaseModel):
    """
    PublicKeyCredential JSON produced by the browser.

    Unknown members are kept and forwarded to the provider verbatim.
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    type: str = "public-key"
    response: dict = Field(default_factory=dict)


class PasskeyLoginRequest(CamelModel):
    """Body of POST /passkeys/login (both phases)."""

    start: bool = False
    finish: bool = False
    email: EmailStr | None = None
    credential: PasskeyCredential | None = None
    user_id: str | None = None


class PasskeyRegisterRequest(CamelModel):
    """Body of POST /passkeys/register (authenticated)."""

    start: bool = False
    finish: bool = False
    credential: PasskeyCredential | None = None
