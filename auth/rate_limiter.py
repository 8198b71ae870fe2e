"""Rate limiting for passkey ceremony starts.

Uses Valkey with sliding window TTL - each attempt resets the expiry.
Clients hammering the start endpoint hit an ever-extending lockout.
"""

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.exceptions import RateLimitedError


class RateLimiter:
    """Per-email limit on ceremony starts."""

    KEY_PREFIX = "ratelimit:ceremony:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._limit = config.rate_limit_attempts
        self._window_seconds = config.rate_limit_window_minutes * 60

    def _key(self, email: str) -> str:
        return f"{self.KEY_PREFIX}{email.strip().lower()}"

    def check_rate_limit(self, email: str) -> None:
        """Count an attempt and reject it when over the limit.

        Raises:
            RateLimitedError: If rate limit exceeded.
        """
        key = self._key(email)

        count = self._valkey.incr(key)
        self._valkey.expire(key, self._window_seconds)

        if count > self._limit:
            retry_after = max(self._valkey.ttl(key), 1)
            raise RateLimitedError(retry_after_seconds=retry_after)

    def reset_rate_limit(self, email: str) -> None:
        """Reset after a completed ceremony."""
        self._valkey.delete(self._key(email))

    def get_remaining_attempts(self, email: str) -> int:
        current = self._valkey.get(self._key(email))
        if current is None:
            return self._limit
        return max(self._limit - int(current), 0)
