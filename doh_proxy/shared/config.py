"""Configuration management using pydantic-settings."""

from functools import lru_cache
from typing import Literal
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PathPolicy = Literal["passthrough", "fixed"]
MethodPolicy = Literal["preserve", "normalize-to-post"]
MissingDnsParamPolicy = Literal["passthrough-empty", "error"]


class Settings(BaseSettings):
    """Proxy settings loaded from ``DOH_PROXY_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DOH_PROXY_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    upstream_base_url: str = Field(description="Scheme and host (and optional path) of the upstream DoH resolver")
    path_policy: PathPolicy = Field(default="passthrough", description="How the upstream path is built")
    fixed_path: str | None = Field(default=None, description="Upstream path used by the fixed policy")
    forward_query: bool = Field(default=True, description="Propagate the inbound query string under the fixed policy")
    method_policy: MethodPolicy = Field(default="preserve", description="Upstream method mapping")
    missing_dns_param_policy: MissingDnsParamPolicy = Field(
        default="passthrough-empty", description="GET handling when the dns parameter is absent"
    )
    strict_content_type: bool = Field(default=True, description="Reject POST requests without a Content-Type")
    accept_json: bool = Field(default=True, description="Advertise application/dns-json upstream")
    upstream_failure_status: int = Field(default=502, description="Status returned on transport errors, 502 or 500")

    route_prefix: str = Field(default="", description="Path prefix the proxy route is mounted under")
    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8053, ge=1, le=65535, description="Bind port")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("upstream_base_url")
    @classmethod
    def _check_upstream_base_url(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError("upstream_base_url must be an absolute http(s) URL")
        return value

    @field_validator("fixed_path")
    @classmethod
    def _check_fixed_path(cls, value: str | None) -> str | None:
        if not value:
            return None
        if not value.startswith("/"):
            raise ValueError("fixed_path must start with '/'")
        return value

    @field_validator("upstream_failure_status")
    @classmethod
    def _check_upstream_failure_status(cls, value: int) -> int:
        if value not in (500, 502):
            raise ValueError("upstream_failure_status must be 500 or 502")
        return value

    @field_validator("route_prefix")
    @classmethod
    def _check_route_prefix(cls, value: str) -> str:
        if value and (not value.startswith("/") or value.endswith("/")):
            raise ValueError("route_prefix must start with '/' and must not end with '/'")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> Settings:
    """Get the application settings instance."""
    return Settings()
