"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic import RedisDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True

    # API
    api_v1_prefix: str = "/api/v1"
    project_name: str = "StoreLink API"
    version: str = "0.1.0"
    api_url: str = "http://localhost:8000"  # Public URL the provider calls back to
    frontend_url: str = "http://localhost:3000"

    # Redis
    redis_url: RedisDsn = RedisDsn("redis://localhost:6379/0")

    # Connection registry backend
    registry_backend: Literal["redis", "memory"] = "redis"

    # Shopify
    shopify_client_id: str = ""
    shopify_client_secret: str = ""
    shopify_webhook_secret: str = ""  # Falls back to the client secret
    shopify_api_version: str = "2024-01"
    shopify_scopes: list[str] = [
        "read_orders",
        "read_products",
        "read_customers",
        "read_inventory",
        "read_analytics",
        "read_reports",
    ]
    oauth_redirect_uri: str = ""
    oauth_state_ttl_seconds: int = 600  # 10 minutes
    provider_timeout_seconds: float = 10.0
    webhook_base_url: str = ""
    register_business_webhooks: bool = True
    webhook_handoff_timeout_seconds: float = 3.0

    # Security
    encryption_key: str = "CHANGE-ME-IN-PRODUCTION-use-openssl-rand-hex-32"

    # Dashboard authentication (JWKS)
    auth_url: str = "http://localhost:3000"  # Issuer of dashboard JWTs
    auth_jwks_url: str = ""

    # Monitoring
    sentry_dsn: str = ""

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",  # Dashboard
    ]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def scope_param(self) -> str:
        """Comma-joined scope list for the authorize URL."""
        return ",".join(self.shopify_scopes)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def callback_url(self) -> str:
        """Redirect URI registered with the provider."""
        return self.oauth_redirect_uri or f"{self.api_url}{self.api_v1_prefix}/shopify/callback"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def webhook_address_base(self) -> str:
        """Base address that webhook topics are appended to."""
        base = self.webhook_base_url or f"{self.api_url}{self.api_v1_prefix}/webhooks/shopify"
        return base.rstrip("/")

    @property
    def webhook_signing_secret(self) -> str:
        """Secret used to verify inbound webhook signatures."""
        return self.shopify_webhook_secret or self.shopify_client_secret

    @property
    def allowed_origins(self) -> list[str]:
        """CORS origins, always including the frontend URL."""
        origins = list(self.cors_origins)
        if self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
