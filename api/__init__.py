"""API modules for HTTP interface."""

from api.base import (
    APIResponse,
    success_response,
    error_response,
    error_json,
    ErrorCodes,
)
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from api.tasks import create_tasks_router
