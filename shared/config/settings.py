"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings for a POS terminal session with defaults for development."""

    # Environment
    environment: str = "development"
    debug: bool = True

    # Backend API (discount authority, volume pricing, trade-in, settlement)
    api_base_url: str = "http://localhost:3001"
    api_token: str = ""
    http_timeout_seconds: float = 10.0
    # Only idempotent reads are retried
    http_max_retries: int = 3
    http_retry_max_delay: float = 5.0

    # Local store (cart snapshot, held carts, favorites)
    local_store_url: str = "sqlite:///./data/pos_local.db"

    # Tax
    default_jurisdiction: str = "ON"

    # Held transactions
    max_held_carts: int = 10

    # Escalations
    escalation_poll_interval_seconds: float = 15.0
    # Denials/expiries older than this are not surfaced on first observation
    escalation_recency_window_seconds: float = 300.0

    # Discount authority
    default_commission_rate: Decimal = Decimal("0.05")
    unrestricted_discount_ceiling_pct: Decimal = Decimal("50")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "POS_"
        case_sensitive = False

    def validate_production_settings(self) -> list[str]:
        """
        Validate that the terminal is configured for production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if not self.api_token:
                errors.append("POS_API_TOKEN must be set in production")

            if self.debug:
                errors.append("POS_DEBUG must be False in production")

            if not self.api_base_url.startswith("https://"):
                errors.append("POS_API_BASE_URL must use https in production")

            if self.local_store_url.endswith(":memory:"):
                errors.append("POS_LOCAL_STORE_URL must be a file-backed store in production")

        if self.max_held_carts < 1:
            errors.append("POS_MAX_HELD_CARTS must be at least 1")

        if self.escalation_poll_interval_seconds <= 0:
            errors.append("POS_ESCALATION_POLL_INTERVAL_SECONDS must be positive")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()

# Direct access to commonly used settings
API_BASE_URL = settings.api_base_url
LOCAL_STORE_URL = settings.local_store_url
DEFAULT_JURISDICTION = settings.default_jurisdiction
