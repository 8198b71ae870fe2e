"""Unified API response bodies and error codes."""

from typing import Any

from pydantic import BaseModel, Field
from starlette.responses import JSONResponse


class APIResponse(BaseModel):
    """
    Response envelope for task and session endpoints.

    Errors always carry `message`, so every failure body satisfies the
    `{message}` contract the passkey endpoints promise as well.
    """

    success: bool
    data: Any | None = None
    code: str | None = Field(None, description="Machine-readable error code")
    message: str | None = Field(None, description="Human-readable message")
    errors: dict[str, list[str]] | None = Field(None, description="Field-level validation errors")


def success_response(data: Any) -> APIResponse:
    """Create a success response."""
    return APIResponse(success=True, data=data)


def error_response(code: str, message: str, errors: dict[str, list[str]] | None = None) -> APIResponse:
    """Create an error response."""
    return APIResponse(success=False, code=code, message=message, errors=errors)


def error_json(
    status_code: int,
    code: str,
    message: str,
    errors: dict[str, list[str]] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Error response rendered as a JSONResponse."""
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=error_response(code, message, errors).model_dump(mode="json", exclude_none=True),
    )


class ErrorCodes:
    """Standard error codes for consistent error handling."""

    # Authentication & Authorization
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
