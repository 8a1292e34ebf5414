"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
    
    # Application
    app_name: str = "payments"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    
    # Postgres
    database_url: str = ""
    
    # Redis (webhook locks + Celery broker)
    redis_url: str = "redis://localhost:6379/0"
    
    # Auth service (token verification)
    auth_service_url: str = ""
    auth_timeout_seconds: float = 5.0
    
    # Webhooks
    webhook_secret: str = ""
    webhook_lock_ttl_ms: int = 10_000
    
    # Providers
    provider_timeout_seconds: float = 10.0
    mtn_success_rate: float = 0.9
    mtn_settle_rate: float = 0.6
    
    # Reconciliation
    reconcile_after_minutes: int = 15
    reconcile_batch_size: int = 100
    
    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
