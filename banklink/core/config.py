"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the token lifecycle
service and the maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file into the process env."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


_COMMON_CONFIG = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    populate_by_name=True,
)


class TrueLayerSettings(BaseSettings):
    """Configuration required for interacting with the TrueLayer APIs."""

    model_config = _COMMON_CONFIG

    client_id: str = Field(..., validation_alias="TL_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="TL_CLIENT_SECRET")
    redirect_uri: str = Field(
        ...,
        validation_alias="TL_REDIRECT_URI",
        description="Sent byte for byte; must match the URI registered with TrueLayer.",
    )
    auth_base_url: str = Field(
        "https://auth.truelayer-sandbox.com",
        validation_alias="TL_AUTH_BASE_URL",
        description="Host serving the consent screen and the token endpoint.",
    )
    api_base_url: str = Field(
        "https://api.truelayer-sandbox.com",
        validation_alias="TL_API_BASE_URL",
        description="Host serving the Data API.",
    )
    scopes: str = Field(
        "accounts transactions balance offline_access",
        validation_alias="TL_SCOPES",
        description="Space or comma separated list of requested scopes.",
    )
    providers: str = Field(
        "uk-cs-mock uk-ob-all uk-oauth-all",
        validation_alias="TL_PROVIDERS",
        description="Provider selection passed to the consent screen.",
    )
    request_timeout_seconds: float = Field(10.0, validation_alias="TL_REQUEST_TIMEOUT")

    @field_validator("scopes", "providers")
    @classmethod
    def _normalize_list(cls, value: str) -> str:
        """Accept comma separated values and emit the space separated form."""
        parts = value.replace(",", " ").split()
        return " ".join(parts)

    @field_validator("redirect_uri")
    @classmethod
    def _require_http_url(cls, value: str) -> str:
        parsed = urlparse(value.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("must be an absolute http(s) URL")
        return value.strip()

    @field_validator("auth_base_url", "api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class SessionSettings(BaseSettings):
    """Browser session cookie configuration."""

    model_config = _COMMON_CONFIG

    secret_key: str = Field(..., validation_alias="SESSION_SECRET")
    max_age_seconds: int = Field(
        7200,
        validation_alias="SESSION_MAX_AGE",
        description="Lifetime of the session cookie and of pending link attempts.",
    )
    cookie_name: str = Field("banklink_session", validation_alias="SESSION_COOKIE_NAME")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = _COMMON_CONFIG

    jwt_secret: str = Field(..., validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field("HS256", validation_alias="JWT_ALGORITHM")
    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    token_encryption_previous_secrets: str = Field(
        "",
        validation_alias="TOKEN_ENCRYPTION_PREVIOUS_SECRETS",
        description="Comma separated secrets still accepted for decrypting stored tokens.",
    )

    @property
    def previous_encryption_secrets(self) -> List[str]:
        secrets = self.token_encryption_previous_secrets.split(",")
        return [secret.strip() for secret in secrets if secret.strip()]


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = _COMMON_CONFIG

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    database_path: str = Field("data/banklink.db", validation_alias="DATABASE_PATH")
    frontend_url: str = Field(
        "http://localhost:4000",
        validation_alias="FRONTEND_URL",
        description="Browser origin allowed to call the API with credentials.",
    )
    truelayer: TrueLayerSettings = Field(default_factory=TrueLayerSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "SecuritySettings",
    "SessionSettings",
    "TrueLayerSettings",
    "get_settings",
]
