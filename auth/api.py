"""HTTP routes for passkey ceremonies and the session."""

import ipaddress
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.base import success_response, error_json, ErrorCodes
from auth.exceptions import (
    AuthenticationError,
    ConflictError,
    CredentialReconciliationError,
    PersistenceError,
    RateLimitedError,
    VerificationError,
)
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.service import PasskeyCeremonyService
from auth.session import SessionManager
from auth.types import PasskeyLoginRequest, PasskeyRegisterRequest, RegistrationStart
from clients.record_store import StoreConnectionError
from utils.record_id import RecordId

logger = logging.getLogger(__name__)


def _get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def _ceremony_error(e: Exception) -> JSONResponse:
    """Map a ceremony failure to a categorized `{message}` response."""
    if isinstance(e, RateLimitedError):
        return error_json(
            429,
            ErrorCodes.RATE_LIMITED,
            f"Too many requests. Please wait {e.retry_after_seconds} seconds.",
            headers={"Retry-After": str(e.retry_after_seconds)},
        )
    if isinstance(e, ConflictError):
        return error_json(409, ErrorCodes.ALREADY_EXISTS, "An account with this email already exists.")
    if isinstance(e, VerificationError):
        return error_json(409, ErrorCodes.VERIFICATION_FAILED, "Passkey registration could not be verified.")
    if isinstance(e, AuthenticationError):
        return error_json(401, ErrorCodes.AUTHENTICATION_FAILED, "Passkey login failed.")
    if isinstance(e, CredentialReconciliationError):
        return error_json(
            500,
            ErrorCodes.INTERNAL_ERROR,
            "Your passkey was verified but could not be saved. Please contact support.",
        )

    logger.error(f"Passkey ceremony failed on the server side: {e}")
    return error_json(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")


_CEREMONY_ERRORS = (
    RateLimitedError,
    ConflictError,
    VerificationError,
    AuthenticationError,
    PersistenceError,
    StoreConnectionError,
)


def create_passkey_router(
    ceremony_service: PasskeyCeremonyService,
    session_manager: SessionManager,
    security_logger: SecurityLogger,
) -> APIRouter:
    """Create passkey router with injected services."""
    router = APIRouter(prefix="/passkeys", tags=["passkeys"])

    def _start_session(request: Request, user_id: str, message: str) -> JSONResponse:
        response = JSONResponse({"message": message})
        session_manager.update(response, session_manager.read_request(request), user_id=user_id)
        security_logger.log(
            SecurityEvent.SESSION_CREATED,
            user_id=user_id,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        return response

    @router.post("/login")
    def passkey_login(request: Request, body: PasskeyLoginRequest):
        """Single entry point for both ceremonies.

        start: unknown email -> registrationOptions, isRegistering=true, userId
               known email   -> loginOptions, isRegistering=false
        finish: with userId -> registration finish, otherwise login finish.
                Sets the session cookie on success.
        """
        ip_address = _get_client_ip(request)
        user_agent = request.headers.get("User-Agent")

        if body.start:
            if not body.email:
                return error_json(400, ErrorCodes.INVALID_REQUEST, "Email is required.")
            try:
                outcome = ceremony_service.begin(body.email, ip_address, user_agent)
            except _CEREMONY_ERRORS as e:
                return _ceremony_error(e)

            if isinstance(outcome, RegistrationStart):
                return {
                    "registrationOptions": outcome.options.get("publicKey"),
                    "isRegistering": True,
                    "userId": outcome.user_id,
                }
            return {
                "loginOptions": outcome.options.get("publicKey"),
                "isRegistering": False,
            }

        if body.finish:
            if body.credential is None:
                return error_json(400, ErrorCodes.INVALID_REQUEST, "Credential is required.")

            if body.user_id:
                try:
                    user_id = str(RecordId.parse(body.user_id, "user"))
                except ValueError:
                    return error_json(400, ErrorCodes.INVALID_REQUEST, "Invalid userId.")
                try:
                    ceremony_service.finish_registration(user_id, body.credential, ip_address, user_agent)
                except _CEREMONY_ERRORS as e:
                    return _ceremony_error(e)
                return _start_session(request, user_id, "Registration successful.")

            try:
                user = ceremony_service.finish_login(body.credential, ip_address, user_agent)
            except _CEREMONY_ERRORS as e:
                return _ceremony_error(e)
            return _start_session(request, user.id, "Login successful.")

        return error_json(400, ErrorCodes.INVALID_REQUEST, "Invalid request parameters.")

    @router.post("/register")
    def passkey_register(request: Request, body: PasskeyRegisterRequest):
        """Add a passkey to the signed-in account.

        Requires authentication (middleware sets request.state.user).
        """
        user = request.state.user
        ip_address = _get_client_ip(request)
        user_agent = request.headers.get("User-Agent")

        if body.start:
            try:
                options = ceremony_service.start_enrollment(user, ip_address, user_agent)
            except _CEREMONY_ERRORS as e:
                return _ceremony_error(e)
            return {"createOptions": options}

        if body.finish and body.credential is not None:
            try:
                ceremony_service.finish_registration(user.id, body.credential, ip_address, user_agent)
            except _CEREMONY_ERRORS as e:
                return _ceremony_error(e)
            return {"message": "Passkey registration successful."}

        return error_json(400, ErrorCodes.INVALID_REQUEST, "Invalid request parameters.")

    return router


def create_auth_router(session_manager: SessionManager, security_logger: SecurityLogger) -> APIRouter:
    """Create session router with injected services."""
    router = APIRouter(prefix="/auth", tags=["auth"])

    @router.get("/me")
    def get_current_user(request: Request):
        """Get current authenticated user.

        Requires authentication (middleware sets request.state.user).
        """
        user = request.state.user
        return success_response(
            user.model_dump(mode="json", by_alias=True)
        ).model_dump(mode="json", exclude_none=True)

    @router.post("/logout")
    def logout(request: Request):
        """Clear the session cookie. Succeeds with or without a session."""
        session = session_manager.read_request(request)

        response = JSONResponse({"message": "Logged out successfully."})
        session_manager.clear(response)

        if session.is_authenticated:
            security_logger.log(
                SecurityEvent.SESSION_CLEARED,
                user_id=session.user_id,
                ip_address=_get_client_ip(request),
                user_agent=request.headers.get("User-Agent"),
            )
        return response

    return router
