"""
Client settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Point-of-sale client settings.

    All values loaded from .env file or environment variables
    (prefixed with POS_). Validation happens on first access.
    """

    model_config = SettingsConfigDict(
        env_prefix="POS_",
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # BACKEND API
    # ===================
    api_base_url: str = Field(
        default="http://localhost:8080/api/v1",
        description="Base URL of the REST backend"
    )
    api_token: Optional[str] = Field(
        None,
        description="Bearer token of the authenticated user"
    )
    shop_id: Optional[str] = Field(
        None,
        description="Active shop, sent as X-Shop-Id"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for a single HTTP round trip"
    )

    # ===================
    # CART
    # ===================
    business_type: str = Field(
        default="pharmacy",
        min_length=1,
        description="Business type sent with every cart upsert"
    )
    load_dedupe_window_ms: int = Field(
        default=200,
        ge=0,
        le=5000,
        description="Window in which an identical cart load is suppressed"
    )

    # ===================
    # UPLOAD PAIRING
    # ===================
    upload_poll_interval_seconds: float = Field(
        default=2.5,
        gt=0,
        le=60,
        description="Seconds between upload status polls"
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="Largest image accepted from the mobile device"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def load_dedupe_window_seconds(self) -> float:
        return self.load_dedupe_window_ms / 1000


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Client settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()
