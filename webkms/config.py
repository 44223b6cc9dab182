"""WebKMS client configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

AUTH_CAPABILITY_INVOCATION = "capability-invocation"
AUTH_HTTP_SIGNATURE = "http-signature"


class Settings(BaseSettings):
    """Client settings loaded from ``WEBKMS_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="WEBKMS_", extra="ignore")

    # KMS service
    base_url: str = "http://localhost:8080/kms"
    timeout: float = Field(default=30.0, gt=0)

    # Request authentication
    auth_strategy: Literal["capability-invocation", "http-signature"] = AUTH_CAPABILITY_INVOCATION
    operations_path: str = "/operations"
    signature_expires_in: int = Field(default=600, ge=1)  # seconds

    # Master key derivation and seed cache
    seed_namespace: str = "webkms"
    seed_cache_dir: str = "~/.webkms"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("operations_path")
    @classmethod
    def _leading_slash(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    @property
    def operations_url(self) -> str:
        """Shared endpoint used by the HTTP-signature strategy."""
        return f"{self.base_url}{self.operations_path}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
