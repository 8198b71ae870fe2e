"""Propagate the authenticated user's record id through the call stack."""

from contextvars import ContextVar
from contextlib import contextmanager

_current_user_id: ContextVar[str | None] = ContextVar("current_user_id", default=None)


def get_current_user_id() -> str:
    """
    Get current user record id ("user:<key>") from context.

    Raises RuntimeError if no user context is set. Task operations are only
    reachable behind the auth middleware, so a missing context is a bug.
    """
    user_id = _current_user_id.get()
    if user_id is None:
        raise RuntimeError(
            "No user context set. This usually means you're calling "
            "user-scoped code outside of an authenticated request."
        )
    return user_id


def set_current_user_id(user_id: str) -> None:
    """Set current user id. Called by auth middleware after resolving the session."""
    _current_user_id.set(user_id)


def clear_current_user_id() -> None:
    """
    Clear user context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_user_id.set(None)


@contextmanager
def user_context(user_id: str):
    """
    Temporarily act as a user.

    Example:
        with user_context("user:abc"):
            tasks = task_service.list_for_author()
    """
    previous = _current_user_id.get()
    set_current_user_id(user_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_user_id()
        else:
            set_current_user_id(previous)
