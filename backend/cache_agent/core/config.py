"""Application configuration.

Environment variables are loaded from .env file and can be overridden.
All settings have sensible defaults for local development.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _valkey_alias(env_name: str) -> AliasChoices:
    """Support both VALKEY_* and REDIS_* env var names for compatibility."""
    redis_name = env_name.replace("VALKEY_", "REDIS_")
    return AliasChoices(redis_name, env_name)


def _split_csv(value: Any) -> list[str]:
    if isinstance(value, str) and value.lstrip().startswith("["):
        return list(json.loads(value))
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return list(value) if value else []


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ==========================================================================
    # Infrastructure
    # ==========================================================================

    environment: str = Field(
        default="development",
        alias="ENVIRONMENT",
        description="Deployment environment: 'development', 'staging', or 'production'.",
    )

    origin_base_url: str = Field(
        default="http://localhost:3000",
        alias="ORIGIN_BASE_URL",
        description="Base URL of the origin application behind the agent.",
    )
    origin_timeout_seconds: float = Field(
        default=12.0, alias="ORIGIN_TIMEOUT_SECONDS", gt=0.0, le=60.0
    )
    upstream_allowed_hosts: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["api.tomtom.com", "api.aviationstack.com"],
        alias="UPSTREAM_ALLOWED_HOSTS",
        description="Third-party hosts reachable through the absolute-URL fetch route.",
    )

    # ==========================================================================
    # Cache partitions
    # ==========================================================================

    cache_name_prefix: str = Field(default="teton-tracker", alias="CACHE_NAME_PREFIX")
    cache_version: str = Field(
        default="v2", alias="CACHE_VERSION", min_length=1, pattern=r"^[A-Za-z0-9._]+$"
    )
    cache_storage_backend: Literal["memory", "valkey"] = Field(
        default="memory", alias="CACHE_STORAGE_BACKEND"
    )

    valkey_url: str = Field(
        default="valkey://localhost:6379/0",
        validation_alias=_valkey_alias("VALKEY_URL"),
    )
    valkey_namespace: str = Field(
        default="cache-agent",
        validation_alias=_valkey_alias("VALKEY_NAMESPACE"),
    )
    valkey_socket_timeout_seconds: float = Field(
        default=2.0,
        validation_alias=_valkey_alias("VALKEY_SOCKET_TIMEOUT_SECONDS"),
        gt=0.0,
    )
    cache_circuit_breaker_timeout_seconds: float = Field(
        default=2.0, alias="CACHE_CIRCUIT_BREAKER_TIMEOUT_SECONDS", ge=0.0
    )

    # ==========================================================================
    # Cache TTLs (seconds)
    # ==========================================================================

    # Static assets: 7 days
    cache_static_ttl_seconds: int = Field(
        default=7 * 24 * 60 * 60, alias="CACHE_STATIC_TTL_SECONDS"
    )
    # Images: 24 hours
    cache_image_ttl_seconds: int = Field(
        default=24 * 60 * 60, alias="CACHE_IMAGE_TTL_SECONDS"
    )
    # Cacheable API responses: 30 minutes
    cache_api_ttl_seconds: int = Field(default=30 * 60, alias="CACHE_API_TTL_SECONDS")
    # App shell served as the typed fallback: 1 hour
    cache_fallback_ttl_seconds: int = Field(
        default=60 * 60, alias="CACHE_FALLBACK_TTL_SECONDS"
    )

    # ==========================================================================
    # Install / precache
    # ==========================================================================

    precache_urls: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "/",
            "/index.html",
            "/logo.svg",
            "/manifest.json",
            "/favicon.ico",
            "/settings",
            "/runs",
            "/flights",
            "/notifications",
            "/styles/globals.css",
        ],
        alias="PRECACHE_URLS",
    )
    precache_static_urls: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["/styles/globals.css"],
        alias="PRECACHE_STATIC_URLS",
    )
    lifecycle_skip_waiting_on_install: bool = Field(
        default=True, alias="LIFECYCLE_SKIP_WAITING_ON_INSTALL"
    )

    # ==========================================================================
    # Background work
    # ==========================================================================

    revalidation_max_concurrency: int = Field(
        default=4, alias="REVALIDATION_MAX_CONCURRENCY", ge=1, le=64
    )

    # ==========================================================================
    # Notifications
    # ==========================================================================

    notification_default_icon: str = Field(
        default="/logo.svg", alias="NOTIFICATION_DEFAULT_ICON"
    )
    notification_default_badge: str = Field(
        default="/favicon.ico", alias="NOTIFICATION_DEFAULT_BADGE"
    )

    # ==========================================================================
    # CORS
    # ==========================================================================

    cors_allow_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ],
        alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_origin_regex: str | None = Field(
        default=None, alias="CORS_ALLOW_ORIGIN_REGEX"
    )

    # ==========================================================================
    # OpenTelemetry (optional)
    # ==========================================================================

    otel_enabled: bool = Field(default=False, alias="OTEL_ENABLED")
    otel_service_name: str = Field(default="cache-agent", alias="OTEL_SERVICE_NAME")
    otel_service_version: str = Field(default="0.1.0", alias="OTEL_SERVICE_VERSION")
    otel_exporter_otlp_endpoint: str = Field(
        default="http://jaeger:4317", alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    otel_exporter_otlp_headers: str | None = Field(
        default=None, alias="OTEL_EXPORTER_OTLP_HEADERS"
    )

    # ==========================================================================
    # Pydantic Settings Config
    # ==========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # Validators
    # ==========================================================================

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: Any) -> list[str]:
        """Parse comma-separated CORS origins, rejecting wildcard '*'."""
        parsed = _split_csv(value)
        if "*" in parsed:
            raise ValueError(
                "Wildcard CORS origin '*' is not allowed. "
                "Specify explicit origins like 'http://localhost:3000'."
            )
        return parsed

    @field_validator(
        "precache_urls",
        "precache_static_urls",
        "upstream_allowed_hosts",
        mode="before",
    )
    @classmethod
    def parse_url_lists(cls, value: Any) -> list[str]:
        """Parse comma-separated URL or host lists."""
        return _split_csv(value)

    @field_validator(
        "cache_static_ttl_seconds",
        "cache_image_ttl_seconds",
        "cache_api_ttl_seconds",
        "cache_fallback_ttl_seconds",
    )
    @classmethod
    def validate_ttl(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"TTL value cannot be negative: {value}")
        return value

    @model_validator(mode="after")
    def validate_origin(self) -> "Settings":
        """Reject origin URLs the proxy cannot forward to."""
        if not self.origin_base_url.startswith(("http://", "https://")):
            raise ValueError(
                "ORIGIN_BASE_URL must be an absolute http(s) URL, "
                f"got '{self.origin_base_url}'."
            )
        self.origin_base_url = self.origin_base_url.rstrip("/")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
