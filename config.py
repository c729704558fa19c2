"""
Centralized configuration for the CloudGreet backend.

All settings come from environment variables (optionally loaded from a .env
file). Services read them through get_settings() so tests can patch a single
place.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read once per process."""

    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    port: int = field(default_factory=lambda: _env_int("PORT", 8000))
    base_url: str = field(
        default_factory=lambda: os.getenv("BASE_URL", f"http://localhost:{_env_int('PORT', 8000)}")
    )
    default_timezone: str = field(default_factory=lambda: os.getenv("DEFAULT_TIMEZONE", "America/New_York"))

    # Supabase
    supabase_url: str = field(default_factory=lambda: os.getenv("SUPABASE_URL", ""))
    supabase_service_key: str = field(default_factory=lambda: os.getenv("SUPABASE_SERVICE_KEY", ""))

    # Auth
    jwt_secret: str = field(default_factory=lambda: os.getenv("JWT_SECRET", ""))
    jwt_algorithm: str = field(default_factory=lambda: os.getenv("JWT_ALGORITHM", "HS256"))
    jwt_expire_minutes: int = field(default_factory=lambda: _env_int("JWT_EXPIRE_MINUTES", 60 * 24 * 7))

    # Telnyx
    telnyx_api_key: str = field(default_factory=lambda: os.getenv("TELNYX_API_KEY", ""))
    telnyx_public_key: str = field(default_factory=lambda: os.getenv("TELNYX_PUBLIC_KEY", ""))
    telnyx_connection_id: str = field(default_factory=lambda: os.getenv("TELNYX_CONNECTION_ID", ""))
    telnyx_base_url: str = field(default_factory=lambda: os.getenv("TELNYX_BASE_URL", "https://api.telnyx.com"))

    # OpenAI
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    openai_model: str = field(default_factory=lambda: os.getenv("OPENAI_MODEL", "gpt-4o-mini"))

    # Stripe
    stripe_secret_key: str = field(default_factory=lambda: os.getenv("STRIPE_SECRET_KEY", ""))
    stripe_webhook_secret: str = field(default_factory=lambda: os.getenv("STRIPE_WEBHOOK_SECRET", ""))
    stripe_price_id: str = field(default_factory=lambda: os.getenv("STRIPE_PRICE_ID", ""))
    per_booking_fee_cents: int = field(default_factory=lambda: _env_int("PER_BOOKING_FEE_CENTS", 5000))

    # Resend
    resend_api_key: str = field(default_factory=lambda: os.getenv("RESEND_API_KEY", ""))
    email_from: str = field(default_factory=lambda: os.getenv("EMAIL_FROM", "CloudGreet <noreply@cloudgreet.com>"))

    # Background jobs
    reminder_interval_minutes: int = field(default_factory=lambda: _env_int("REMINDER_INTERVAL_MINUTES", 15))
    missed_call_interval_minutes: int = field(default_factory=lambda: _env_int("MISSED_CALL_INTERVAL_MINUTES", 10))

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache()
def get_settings() -> Settings:
    """Get the cached settings instance."""
    return Settings()
