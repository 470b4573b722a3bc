"""
Configuration settings for the application
"""
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOGS_DIR = Path("./logs")

# Storage backend identifiers
BACKEND_MEMORY = "memory"
BACKEND_SQL = "sql"
BACKEND_MONGO = "mongo"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Upstream Jellyfin server
    jellyfin_server_url: str = Field(default="http://localhost:8096", alias="JELLYFIN_SERVER_URL")
    jellyfin_api_key: Optional[str] = Field(default=None, alias="JELLYFIN_API_KEY")
    jellyfin_timeout_seconds: float = Field(default=10.0, alias="JELLYFIN_TIMEOUT_SECONDS")

    # Admin panel credentials and session cookie signing
    admin_username: Optional[str] = Field(default=None, alias="ADMIN_USERNAME")
    admin_password: Optional[str] = Field(default=None, alias="ADMIN_PASSWORD")
    session_secret: Optional[str] = Field(default=None, alias="SESSION_SECRET")
    session_max_age_seconds: int = Field(default=86400, alias="SESSION_MAX_AGE_SECONDS")

    # Storage configuration
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    storage_backend: Optional[str] = Field(default=None, alias="STORAGE_BACKEND")
    mongodb_database: str = Field(default="jellyfin_signup", alias="MONGODB_DATABASE")
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # Access and activity logs
    access_log_file: str = Field(default="jellyfin-access-logs.json", alias="ACCESS_LOG_FILE")
    activity_log_file: str = Field(default="jellyfin-user-activity.json", alias="ACTIVITY_LOG_FILE")
    access_tracking_enabled: bool = Field(default=True, alias="ACCESS_TRACKING_ENABLED")
    geo_lookup_timeout_seconds: float = Field(default=5.0, alias="GEO_LOOKUP_TIMEOUT_SECONDS")
    geo_cache_ttl_seconds: int = Field(default=3600, alias="GEO_CACHE_TTL_SECONDS")

    # Background jobs (0 disables the job)
    trial_sweep_interval_seconds: int = Field(default=3600, alias="TRIAL_SWEEP_INTERVAL_SECONDS")
    session_tracking_interval_seconds: int = Field(default=0, alias="SESSION_TRACKING_INTERVAL_SECONDS")

    # Rate limiting for signup and admin login (0 disables)
    rate_limit_per_minute: int = Field(default=20, alias="RATE_LIMIT_PER_MINUTE")

    # Trending movies for the signup page background
    tmdb_api_key: Optional[str] = Field(default=None, alias="TMDB_API_KEY")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.env and settings.env.lower() == "production")
