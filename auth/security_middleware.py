"""Security middleware for FastAPI - session validation and user context."""

import logging

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from api.base import error_json, ErrorCodes
from auth.database import UserDirectory
from auth.exceptions import PersistenceError
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session import SessionManager
from clients.record_store import StoreConnectionError
from utils.user_context import set_current_user_id, clear_current_user_id

logger = logging.getLogger(__name__)


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that validates the session cookie and sets user context.

    For protected routes:
    1. Decrypts the session cookie via SessionManager
    2. Resolves the session's userId through the user directory
    3. Clears the cookie when the user no longer resolves
    4. Sets request.state.user and the user context
    5. Clears context after request completes

    Public paths bypass authentication entirely.
    """

    PUBLIC_PATHS = [
        "/passkeys/login",
        "/auth/logout",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(
        self,
        app,
        session_manager: SessionManager,
        users: UserDirectory,
        security_logger: SecurityLogger | None = None,
    ):
        super().__init__(app)
        self._session_manager = session_manager
        self._users = users
        self._security_logger = security_logger

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path + "/"):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if self._is_public_path(request.url.path):
            return await call_next(request)

        session = self._session_manager.read_request(request)
        if not session.is_authenticated:
            return error_json(401, ErrorCodes.NOT_AUTHENTICATED, "Authentication required")

        try:
            user = await run_in_threadpool(self._users.find_by_id, session.user_id)
        except (StoreConnectionError, PersistenceError) as e:
            logger.error(f"Session user lookup failed for {session.user_id}: {e}")
            return error_json(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")

        if user is None:
            # A session must not outlive its user record
            logger.warning(f"Session references unknown user {session.user_id}; clearing cookie")
            if self._security_logger:
                await run_in_threadpool(
                    self._security_logger.log,
                    SecurityEvent.SESSION_ORPHANED,
                    user_id=session.user_id,
                    ip_address=request.client.host if request.client else None,
                    user_agent=request.headers.get("User-Agent"),
                )
            response = error_json(401, ErrorCodes.NOT_AUTHENTICATED, "Authentication required")
            self._session_manager.clear(response)
            return response

        set_current_user_id(user.id)
        request.state.user = user
        request.state.user_id = user.id
        request.state.session = session

        try:
            return await call_next(request)
        finally:
            clear_current_user_id()
