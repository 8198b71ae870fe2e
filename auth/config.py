"""Authentication configuration."""

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    Durations use their natural units (minutes for ceremonies, hours for
    sessions).
    """

    # Session cookie
    session_cookie_name: str = Field(
        default="sid",
        description="Name of the encrypted session cookie",
        min_length=1,
    )
    session_max_age_hours: int = Field(
        default=168,  # 7 days
        description="Session lifetime in hours",
        ge=1,
        le=2160,
    )
    session_cookie_secure: bool = Field(
        default=True,
        description="Send the session cookie over HTTPS only",
    )
    min_secret_length: int = Field(
        default=32,
        description="Shorter session secrets are accepted with a warning",
        ge=16,
    )

    # Ceremonies
    ceremony_timeout_minutes: int = Field(
        default=5,
        description="How long a started ceremony can be finished",
        ge=1,
        le=30,
    )

    # Rate limiting
    rate_limit_attempts: int = Field(
        default=10,
        description="Max ceremony starts per email per window",
        ge=1,
        le=50,
    )
    rate_limit_window_minutes: int = Field(
        default=15,
        description="Rate limit window duration",
        ge=1,
        le=60,
    )
