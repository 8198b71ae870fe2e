"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from api.base import error_json, ErrorCodes
from auth.exceptions import PersistenceError
from clients.record_store import RecordStoreError, StoreConnectionError
from core.exceptions import (
    EmptyTaskUpdateError,
    TaskAccessDeniedError,
    TaskNotFoundError,
    TaskRecordError,
)

logger = logging.getLogger(__name__)


def _field_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    """Group validation messages by dotted field path, without the body/query prefix."""
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        errors.setdefault(".".join(loc) or "body", []).append(error.get("msg", "Invalid value"))
    return errors


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_json(400, ErrorCodes.VALIDATION_ERROR, "Validation failed", _field_errors(exc))

    @app.exception_handler(EmptyTaskUpdateError)
    async def empty_update_handler(request: Request, exc: EmptyTaskUpdateError):
        return error_json(400, ErrorCodes.INVALID_REQUEST, "No fields to update")

    @app.exception_handler(TaskNotFoundError)
    async def task_not_found_handler(request: Request, exc: TaskNotFoundError):
        return error_json(404, ErrorCodes.NOT_FOUND, "Task not found")

    @app.exception_handler(TaskAccessDeniedError)
    async def task_forbidden_handler(request: Request, exc: TaskAccessDeniedError):
        return error_json(403, ErrorCodes.FORBIDDEN, "You do not have access to this task")

    @app.exception_handler(StoreConnectionError)
    async def store_connection_handler(request: Request, exc: StoreConnectionError):
        logger.exception("Record store unavailable")
        return error_json(500, ErrorCodes.SERVICE_UNAVAILABLE, "Storage is unavailable")

    @app.exception_handler(RecordStoreError)
    @app.exception_handler(PersistenceError)
    @app.exception_handler(TaskRecordError)
    async def persistence_error_handler(request: Request, exc: Exception):
        logger.exception("Record store operation failed")
        return error_json(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return error_json(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
