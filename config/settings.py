"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # API SECURITY
    # ===================
    api_key: Optional[str] = Field(
        None,
        description="Admin API key expected in the X-API-Key header"
    )

    # ===================
    # EMAIL (SMTP)
    # ===================
    smtp_host: Optional[str] = Field(
        None,
        description="SMTP server host"
    )
    smtp_port: int = Field(
        default=587,
        ge=1,
        le=65535,
        description="SMTP server port"
    )
    smtp_user: Optional[str] = Field(
        None,
        description="SMTP username"
    )
    smtp_password: Optional[str] = Field(
        None,
        description="SMTP password"
    )
    smtp_from: str = Field(
        default="Guincoin <no-reply@guincoin.local>",
        description="From header for outgoing mail"
    )
    smtp_use_tls: bool = Field(
        default=True,
        description="Upgrade the SMTP connection with STARTTLS"
    )
    frontend_url: str = Field(
        default="http://localhost:5173",
        description="Base URL of the web app, used in email links"
    )

    # ===================
    # BULK IMPORT
    # ===================
    bulk_import_max_upload_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum size of an uploaded spreadsheet in MB"
    )
    bulk_import_large_amount: float = Field(
        default=10000,
        gt=0,
        description="Amounts above this produce a validation warning"
    )
    bulk_import_match_threshold: float = Field(
        default=0.5,
        ge=0,
        le=1,
        description="Minimum name similarity to accept an email match"
    )
    bulk_import_invitation_delay_ms: int = Field(
        default=100,
        ge=0,
        le=10000,
        description="Pause between invitation emails in a bulk send"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def smtp_configured(self) -> bool:
        """Check if outgoing email is configured."""
        return bool(self.smtp_host)

    @property
    def max_upload_bytes(self) -> int:
        return self.bulk_import_max_upload_mb * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
