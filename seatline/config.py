"""Application configuration via pydantic-settings."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Seatline"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    site_url: str = "http://localhost:3000"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "seatline"
    postgres_password: str = Field(default="seatline_secret")
    postgres_db: str = "seatline"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    # Overrides the computed postgres URL (tests point this at sqlite+aiosqlite)
    database_url_override: Optional[str] = None

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # JWT Authentication (tokens are issued by the identity provider, verified here)
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_connect_webhook_secret: Optional[str] = None
    stripe_webhook_tolerance_seconds: int = 300
    currency: str = "usd"

    @computed_field
    @property
    def checkout_success_url(self) -> str:
        return f"{self.site_url}/bookings/success?session_id={{CHECKOUT_SESSION_ID}}"

    @computed_field
    @property
    def checkout_cancel_url(self) -> str:
        return f"{self.site_url}/classes"

    # Email (SendGrid)
    sendgrid_api_key: Optional[str] = None
    email_from_address: str = "bookings@seatline.app"
    email_from_name: str = "Seatline"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    # Marketplace fee, charged on top of the host price
    platform_fee_rate: float = 0.15

    # Bookings
    max_seats_per_checkout: int = 10
    hold_ttl_minutes: int = 15
    payout_buffer_hours: int = 24
    # Guests must accept this version of the liability agreement to book
    liability_version: str = "2026-01-03"
    notification_batch_size: int = 50
    notification_max_attempts: int = 5

    # Runs the periodic jobs inside the API process when no Celery beat is deployed
    run_scheduler_in_app: bool = False
    scheduler_interval_seconds: int = 300


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache
def get_fee_rate() -> Decimal:
    """Platform fee rate, read once per process and passed to fee arithmetic."""
    return Decimal(str(get_settings().platform_fee_rate))
