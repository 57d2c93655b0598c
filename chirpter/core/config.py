"""
Application configuration using Pydantic Settings.

Supports hierarchical environment configuration:
- .env.base: Common non-secret defaults (committed to git)
- .env.{ENVIRONMENT}: Environment-specific overrides (gitignored)
- Environment variables: Highest priority
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Get environment from env var, default to development
ENV = os.getenv("ENVIRONMENT", "development")


class Settings(BaseSettings):
    """Application settings with hierarchical env file support."""

    model_config = SettingsConfigDict(
        # Load base first, then environment-specific override
        env_file=[
            ".env.base",  # Common defaults (committed)
            f".env.{ENV}",  # Environment overrides (gitignored)
        ],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "test", "production"] = "development"

    # Database connections (replica set required for multi-document transactions)
    mongodb_url: str = "mongodb://localhost:27017/chirpter?replicaSet=rs0"
    users_collection: str = "users"
    transactions_collection: str = "credit_transactions"

    # Security
    admin_secret: str = "dev-admin-secret-change-in-production"  # For CronJob auth
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Credit escrow
    reservation_ttl_minutes: int = 15  # Pending reservations older than this get swept
    cleanup_batch_size: int = 50  # Max stale reservations refunded per sweep run
    generation_timeout_seconds: float = 300.0  # Upper bound on one billed AI job

    @property
    def database_name(self) -> str:
        """Extract database name from MongoDB URL."""
        # Extract database name and strip query parameters
        db_with_params = self.mongodb_url.split("/")[-1]
        return db_with_params.split("?")[0] if "?" in db_with_params else db_with_params

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
