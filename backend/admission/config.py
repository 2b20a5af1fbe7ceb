"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Admission"
    app_env: str = "development"  # development, staging, production
    debug: bool = True

    # Database
    database_url: str = "postgresql://localhost:5432/admission"

    # JWT Authentication (tokens are issued by the staff identity service)
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 12

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None  # e.g. "logs/admission.log"
    log_rotation: str = "50 MB"
    log_retention: str = "14 days"

    # Public links handed to guests
    public_base_url: str = "https://haunt.app"

    # Entitlements
    # The virtual queue is an enterprise feature; list the orgs that have it.
    virtual_queue_enabled_for_all: bool = False
    virtual_queue_enabled_orgs: list[str] = []

    # Check-in
    ticket_grace_hours: int = 2  # entry allowed this long after a slot ends
    walk_up_customer_email: str = "walk-up@haunt.dev"
    walk_up_max_quantity: int = 50

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def async_database_url(self) -> str:
        """Database URL rewritten for the asyncpg driver."""
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.database_url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
