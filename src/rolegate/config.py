"""Application configuration from environment variables."""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="ROLEGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = Field(
        default="",
        description="PostgreSQL connection URL; empty keeps state in process memory",
    )
    database_pool_min_size: int = Field(default=2, ge=1, description="Connection pool minimum size")
    database_pool_max_size: int = Field(default=10, ge=1, description="Connection pool maximum size")
    database_pool_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Wait for a pooled connection before storage counts as unavailable",
    )

    # Keycloak OIDC
    keycloak_url: str = Field(
        default="",
        description="Keycloak server URL; empty trusts the X-User-Id header (development only)",
    )
    keycloak_realm: str = Field(default="rolegate", description="Keycloak realm")
    keycloak_client_id: str = Field(default="rolegate-api", description="Keycloak client ID")
    keycloak_client_secret: str = Field(default="", description="Keycloak client secret")

    # Authorization engine
    role_max_depth: int = Field(
        default=10,
        ge=1,
        description="Longest allowed role chain, the role itself included",
    )
    cache_ttl_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Upper bound on how long a cached decision is served; 0 disables the cache",
    )
    resolution_timeout_seconds: float = Field(
        default=0.5,
        gt=0,
        description="Permission checks exceeding this are denied",
    )
    seed_system_roles: bool = Field(default=True, description="Create built-in roles on start")
    bootstrap_admin_user: str = Field(
        default="",
        description="User id granted super_admin on start when it holds no assignment",
    )

    # Audit
    audit_buffer_size: int = Field(
        default=10_000,
        ge=1,
        description="Un-persisted audit events kept before the oldest are dropped",
    )
    audit_batch_size: int = Field(default=100, ge=1, description="Audit events written per batch")
    audit_retry_attempts: int = Field(default=5, ge=1, description="Write attempts per batch")
    audit_retry_max_wait_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Cap on the exponential backoff between audit write attempts",
    )
    risk_denial_threshold: int = Field(
        default=10,
        ge=1,
        description="Denials in the window that saturate the frequency part of the risk score",
    )
    risk_diversity_threshold: int = Field(
        default=5,
        ge=1,
        description="Distinct denied resources that saturate the diversity part of the risk score",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environment name",
    )
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
