from enum import StrEnum
from functools import lru_cache

from pydantic import Field, PositiveFloat, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreFailurePolicy(StrEnum):
    """What to do with a request when the counter store is down."""

    OPEN = "open"  # forward without rate limit headers
    CLOSED = "closed"  # reject with 503


class Settings(BaseSettings):
    app_name: str = "limitation-proxy"
    bind_host: str = "0.0.0.0"
    bind_port: int = Field(default=8080, ge=1, le=65535)
    redis_url: str = "redis://127.0.0.1/"
    proxy_to: str = "http://127.0.0.1:8000"
    header: str = "authorization"
    rate_limit: PositiveInt = 5000
    rate_period: PositiveInt = 3600
    key_prefix: str = "limitation:"
    store_timeout: PositiveFloat = 1.0
    backend_timeout: PositiveFloat = 30.0
    store_failure_policy: StoreFailurePolicy = StoreFailurePolicy.OPEN
    log_level: str = "info"

    model_config = SettingsConfigDict(env_prefix="LIMITATION_", env_file=".env", extra="ignore")

    @field_validator("header")
    @classmethod
    def _normalize_header(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("header name must not be empty")
        return value

    @field_validator("proxy_to")
    @classmethod
    def _check_proxy_to(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("proxy_to must be an http:// or https:// URL")
        return value.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings()
