"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_iso, parse_iso
from utils.user_context import (
    get_current_user_id,
    set_current_user_id,
    clear_current_user_id,
    user_context,
)
from utils.record_id import RecordId, generate_key
