"""Client configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """FCM client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Credentials
    google_application_credentials: str | None = Field(
        default=None,
        alias="GOOGLE_APPLICATION_CREDENTIALS",
        description="Path to the service account key JSON file",
    )
    service_account_key_json: str | None = Field(
        default=None,
        alias="FCM_SERVICE_ACCOUNT_KEY_JSON",
        description="Raw JSON string of the service account key",
    )

    # Endpoint
    fcm_host: str = Field(default="fcm.googleapis.com", alias="FCM_HOST")
    # FCM recommends at least 10 seconds when a timeout is set
    request_timeout: float | None = Field(default=None, alias="FCM_REQUEST_TIMEOUT", gt=0)
    dry_run: bool = Field(default=False, alias="FCM_DRY_RUN")

    # Tokens
    token_backend: Literal["service_account", "firebase_admin"] = Field(
        default="service_account",
        alias="FCM_TOKEN_BACKEND",
    )
    token_cache: Literal["memory", "file", "redis"] = Field(
        default="memory",
        alias="FCM_TOKEN_CACHE",
    )
    token_cache_path: str | None = Field(default=None, alias="FCM_TOKEN_CACHE_PATH")

    # Redis
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_token_prefix: str = Field(default="fcm:token", alias="REDIS_TOKEN_PREFIX")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
