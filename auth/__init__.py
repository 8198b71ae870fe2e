"""Authentication and authorization modules."""

from auth.exceptions import (
    AuthError,
    ConflictError,
    VerificationError,
    AuthenticationError,
    PersistenceError,
    CredentialReconciliationError,
    RateLimitedError,
)
from auth.types import (
    User,
    Passkey,
    SessionData,
    Found,
    NotFound,
    LookupResult,
    RegistrationStart,
    LoginStart,
    PasskeyCredential,
    PasskeyLoginRequest,
    PasskeyRegisterRequest,
)
from auth.config import AuthConfig
from auth.database import UserDirectory, CredentialStore
from auth.ceremony import CeremonyTracker
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionManager
from auth.service import PasskeyCeremonyService
from auth.security_middleware import AuthMiddleware
from auth.api import create_passkey_router, create_auth_router
