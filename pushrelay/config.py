"""Configuration management for the relay."""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Relay settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Redis (subscription store)
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_timeout_seconds: float = Field(default=5.0)
    subscription_key_prefix: str = Field(default="subscription:")
    subscription_ttl_days: int = Field(default=30)

    # Webhook endpoint exported upstream, e.g. https://relay.example.com
    public_base_url: str | None = Field(default=None)

    # Upstream federated server
    default_instance_url: str = Field(default="https://mastodon.social")
    upstream_timeout_seconds: float = Field(default=10.0)

    # Firebase Cloud Messaging
    firebase_service_account_base64: str | None = Field(default=None)
    fcm_project_id: str | None = Field(default=None)
    push_timeout_seconds: float = Field(default=10.0)

    # One aesgcm record (4096) plus its tag, with headroom for proxies
    max_body_bytes: int = Field(default=8192)

    # API
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate that production has the settings delivery depends on."""
        if self.environment == "production":
            if not self.firebase_service_account_base64:
                raise ValueError("FIREBASE_SERVICE_ACCOUNT_BASE64 must be set in production")
            if self.public_base_url and "localhost" in self.public_base_url:
                raise ValueError("PUBLIC_BASE_URL should not use localhost in production")
        return self

    @property
    def subscription_ttl_seconds(self) -> int:
        """Lifetime of a stored subscription record."""
        return self.subscription_ttl_days * 24 * 60 * 60


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
