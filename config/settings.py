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
    # TABLES & STORAGE
    # ===================
    equipment_table: str = Field(
        default="equipment",
        description="Table receiving imported catalog records"
    )
    categories_table: str = Field(
        default="categories",
        description="Reference table for equipment categories"
    )
    phases_table: str = Field(
        default="construction_phases",
        description="Reference table for construction (lifecycle) phases"
    )
    storage_bucket: str = Field(
        default="equipment-images",
        description="Storage bucket for resolved equipment images"
    )

    # ===================
    # IMPORT
    # ===================
    import_batch_size: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Records per bulk insert"
    )
    import_owner_id: Optional[str] = Field(
        None,
        description="User ID stamped on every imported record"
    )
    max_upload_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1024,
        description="Maximum accepted spreadsheet size in bytes"
    )
    session_ttl_minutes: int = Field(
        default=30,
        ge=1,
        le=24 * 60,
        description="Minutes an idle import session is kept in memory"
    )

    # ===================
    # MEDIA
    # ===================
    media_concurrency: int = Field(
        default=2,
        ge=1,
        le=3,
        description="Simultaneous image fetches"
    )
    media_fetch_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=120,
        description="Timeout for a single image fetch attempt"
    )
    media_use_relays: bool = Field(
        default=True,
        description="Retry failed fetches through pass-through relays"
    )
    media_relays: list[str] = Field(
        default=[
            "https://corsproxy.io/?",
            "https://api.allorigins.win/raw?url=",
            "https://thingproxy.freeboard.io/fetch/",
        ],
        description="Ordered relay prefixes; the encoded URL is appended"
    )
    media_placeholder_enabled: bool = Field(
        default=True,
        description="Fetch a placeholder image when every relay fails"
    )
    media_placeholder_template: str = Field(
        default="https://via.placeholder.com/300x300/e0e0e0/757575?text=Equipment+{record_id}",
        description="Placeholder URL, formatted with record_id"
    )

    # ===================
    # CONTENT API (WordPress)
    # ===================
    content_api_url: Optional[str] = Field(
        None,
        description="WordPress REST base, e.g. https://example.com/wp-json/wp/v2"
    )
    content_api_host: Optional[str] = Field(
        None,
        description="Host fragment identifying first-party media URLs"
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
    def content_api_configured(self) -> bool:
        """Check if the WordPress media API is usable."""
        return bool(self.content_api_url and self.content_api_host)


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
