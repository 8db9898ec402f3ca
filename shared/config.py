"""
Shared configuration management for the edge cache proxy.
"""

from typing import Any, Literal, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


DEFAULT_REQUEST_TIMEOUT = 100
DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROXY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Service runtime
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=0, le=65535)
    admin_path_prefix: str = Field(default="/__proxy")


class ProxyConfig(BaseConfig):
    """Validated, immutable configuration for the caching proxy."""

    # Cache
    ttl: int = Field(gt=0, description="TTL for cached responses in seconds")
    cache_key_prefix: str = Field(default="proxy-cache:")

    # Upstream target
    target_protocol: Literal["http", "https"] = Field(default="https")
    target_hostname: str = Field(min_length=1)
    target_port: int = Field(default=443, ge=0, le=65535)
    target_path_prefix: Optional[str] = Field(default=None)

    # Client contract
    require_https: bool = Field(default=True)
    allow_binary_data: bool = Field(default=False)
    request_timeout: int = Field(default=DEFAULT_REQUEST_TIMEOUT, ge=0)
    max_body_bytes: int = Field(default=DEFAULT_MAX_BODY_BYTES, gt=0)

    @field_validator("target_protocol", mode="before")
    @classmethod
    def _normalize_protocol(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("target_hostname", mode="before")
    @classmethod
    def _strip_hostname(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("target_path_prefix", mode="before")
    @classmethod
    def _empty_prefix_is_none(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    @field_validator("request_timeout")
    @classmethod
    def _default_timeout(cls, value: int) -> int:
        # Zero means "not configured"
        return value or DEFAULT_REQUEST_TIMEOUT

    @property
    def upstream_deadline(self) -> float:
        """Seconds the upstream call may take before a synthetic 504."""
        return float(self.request_timeout - 1)


def get_config(**overrides: Any) -> ProxyConfig:
    """Load and validate proxy configuration from the environment.

    Keyword overrides take precedence over environment values. Any invalid
    field raises ConfigurationError so the service refuses to start.
    """
    try:
        return ProxyConfig(**overrides)
    except ValidationError as exc:
        problems = [
            {"field": ".".join(str(part) for part in error["loc"]), "error": error["msg"]}
            for error in exc.errors()
        ]
        raise ConfigurationError("Invalid proxy configuration", details={"errors": problems}) from exc
