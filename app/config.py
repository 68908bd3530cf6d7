"""
Application configuration using Pydantic Settings.
Manages all environment variables and settings.
"""
from enum import Enum
from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator


class Environment(str, Enum):
    """Application environment modes."""
    DEV = "DEV"
    PRODUCTION = "PRODUCTION"


class StorageBackend(str, Enum):
    """Where rendered export artifacts are kept."""
    LOCAL = "local"
    S3 = "s3"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: Environment = Field(
        default=Environment.DEV,
        description="Application environment: DEV or PRODUCTION"
    )

    # Application
    app_name: str = Field(default="Brand Share API")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    secret_key: str = Field(default="change-me-in-production")

    @model_validator(mode='after')
    def set_debug_from_environment(self):
        """Set debug mode based on environment if not explicitly set via environment variable."""
        import os
        if 'DEBUG' not in os.environ:
            self.debug = self.environment == Environment.DEV
        return self

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEV

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    # Database (empty value falls back to local SQLite)
    database_url: str = Field(default="sqlite+aiosqlite:///./brand_share.db")
    db_pool_size: int = Field(default=10)
    db_max_overflow: int = Field(default=20)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=1800)

    @field_validator("database_url", mode="before")
    @classmethod
    def coerce_empty_database_url(cls, v: str) -> str:
        if not v or not str(v).strip():
            return "sqlite+aiosqlite:///./brand_share.db"
        return v

    # JWT (owner bearer tokens and share session cookie)
    jwt_secret_key: str = Field(default="jwt-secret-change-in-production")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=30)

    # Public share session: cookie carrying the list of password-unlocked shares
    share_session_cookie_name: str = Field(default="share_session")
    share_session_ttl_minutes: int = Field(
        default=120,
        description="How long a password-unlocked share stays unlocked for the browser session",
    )

    # Shares
    share_max_expiry_days: int = Field(default=365, description="Upper bound for share expires_at")
    share_default_per_page: int = Field(default=15)

    # Rate limiting (slowapi for public routes, limits counter for share creation)
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_per_minute: int = Field(default=120, description="Default limit applied per client IP")
    rate_limit_share_per_minute: int = Field(default=60, description="Public share/download routes per client IP")
    rate_limit_storage_uri: str = Field(
        default="memory://",
        description="limits storage URI (memory:// or redis://host:6379). Shared across workers when not memory.",
    )
    share_creation_max_attempts: int = Field(default=10)
    share_creation_window_minutes: int = Field(default=60)

    # Exports
    export_default_expiry_days: int = Field(default=7, ge=1, le=30)
    export_render_timeout_seconds: float = Field(
        default=30.0,
        description="Renderer time budget; exceeding it fails the export",
    )
    export_storage_backend: StorageBackend = Field(default=StorageBackend.LOCAL)
    export_local_root: str = Field(default="./storage", description="Root directory for the local backend")
    export_orphan_min_age_hours: int = Field(default=24)

    # S3-compatible object storage (export_storage_backend=s3)
    s3_bucket: str = Field(default="brand-share-exports")
    s3_endpoint_url: str = Field(default="", description="Empty for AWS, set for S3-compatible providers")
    s3_region_name: str = Field(default="us-east-1")
    s3_access_key: str = Field(default="")
    s3_secret_key: str = Field(default="")

    # Background cleanup
    cleanup_interval_minutes: int = Field(
        default=60,
        description="Expired export/share sweep interval. 0 disables the loop.",
    )
    share_inactive_retention_days: int = Field(default=30)
    share_access_retention_days: int = Field(default=90)

    # Logging
    log_dir: str = Field(default="/var/log/brand-share-api")

    # Prometheus
    node_name: str = Field(default="", description="Node/Pod identifier for Prometheus labels")
    region: str = Field(default="", description="Deployment region label")
    prometheus_pushgateway_url: str = Field(
        default="",
        description="Prometheus Pushgateway URL (e.g. http://pushgateway:9091). Empty disables pushing.",
    )
    prometheus_push_interval_seconds: int = Field(default=30)

    @field_validator("prometheus_push_interval_seconds", "cleanup_interval_minutes", mode="before")
    @classmethod
    def coerce_interval(cls, v: object, info) -> int:
        if v is None or v == "":
            return 30 if info.field_name == "prometheus_push_interval_seconds" else 60
        return int(v)

    # Private IP used in log lines (auto-detected when empty)
    instance_ip: str = Field(default="", description="Server private IP (auto-detected when empty)")

    class Config:
        # Environment variables only; systemd EnvironmentFile provides them in production
        env_file = None
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Using lru_cache to avoid re-reading the environment on every request.
    """
    return Settings()
