"""Centralized application configuration via environment variables."""

from __future__ import annotations

from datetime import timedelta
from enum import StrEnum
from functools import lru_cache

from pydantic import SecretStr, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Hard ceiling on list page size, whatever the deployment configures.
MAX_PAGE_LIMIT = 200


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Database URL is assembled from individual components to match
    the official PostgreSQL Docker image environment variables.
    Rate limits are per tenant and per operation class.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App ---
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"
    service_name: str = "leadgen"

    # --- CORS ---
    cors_allowed_origins: list[str] = []
    cors_allow_credentials: bool = False
    cors_allowed_methods: list[str] = ["GET", "POST", "PATCH"]
    cors_allowed_headers: list[str] = [
        "Authorization",
        "Content-Type",
        "Idempotency-Key",
        "X-Idempotency-Key",
        "X-Request-Id",
        "X-Tenant-Id",
    ]

    # --- PostgreSQL ---
    postgres_user: str = "postgres"
    postgres_password: SecretStr = SecretStr("postgres")
    postgres_db: str = "mktr"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    db_pool_size: int = 10
    db_max_overflow: int = 5

    # Own tables live in pg_schema; the monolith's fleet/user tables in
    # legacy_schema are read only.
    pg_schema: str = "leadgen"
    legacy_schema: str = "public"
    bootstrap_schema: bool = True

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Assemble database URL from components.

        Uses psycopg v3 driver which supports both sync (create_engine)
        and async (create_async_engine) modes natively.
        """
        password = self.postgres_password.get_secret_value()
        return (
            f"postgresql+psycopg://{self.postgres_user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- Token verification ---
    auth_jwks_url: str = "http://localhost:4001/.well-known/jwks.json"
    auth_issuer: str = "http://localhost:4001"
    auth_audience: str = "mktr-api"
    auth_algorithms: list[str] = ["RS256", "ES256"]
    auth_tenant_claim: str = "tid"
    jwks_cache_ttl_seconds: float = 300.0
    jwks_timeout_seconds: float = 3.0

    # --- Rate limits ---
    rate_limit_create_rps: int = 5
    rate_limit_list_rps: int = 10
    scan_rate_limit_per_window: int = 60
    scan_rate_window_seconds: int = 60

    # --- Idempotency ---
    idempotency_window_hours: int = 24
    # 0 disables the periodic purge; expired rows are then only ignored.
    idempotency_purge_interval_seconds: int = 3600

    # --- Scans ---
    attribution_timeout_seconds: float = 2.0

    # --- Listing ---
    list_default_limit: int = 50
    list_max_limit: int = MAX_PAGE_LIMIT

    @model_validator(mode="after")
    def _check_limits(self) -> Settings:
        if not 1 <= self.list_max_limit <= MAX_PAGE_LIMIT:
            raise ValueError(f"list_max_limit must be between 1 and {MAX_PAGE_LIMIT}")
        if not 1 <= self.list_default_limit <= self.list_max_limit:
            raise ValueError("list_default_limit must be between 1 and list_max_limit")
        if self.rate_limit_create_rps < 0 or self.rate_limit_list_rps < 0:
            raise ValueError("rate limits must not be negative")
        return self

    # --- Derived values ---
    @property
    def idempotency_window(self) -> timedelta:
        return timedelta(hours=self.idempotency_window_hours)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton.

    Usage::

        from leadgen_service.config import get_settings
        settings = get_settings()
    """
    return Settings()


settings = get_settings()
