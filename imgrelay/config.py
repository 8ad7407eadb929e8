"""
Application configuration using pydantic-settings.
All settings are loaded from environment variables or .env file.
"""
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_UPLOAD_PATH = "/upload"


def _strip_trailing_slash(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    port: int = Field(3000, ge=1)

    # Telegram
    telegram_bot_token: str = Field(min_length=1)
    telegram_webhook_url: str = ""  # only used by scripts/set_webhook.py
    telegram_webhook_secret: str | None = None
    telegram_api_base_url: str = "https://api.telegram.org"
    # Comma separated list, e.g. "-1001234567890,-1009876543210"
    telegram_allowed_chat_ids: str

    # Image host
    imgbed_base_url: str = Field(min_length=1)
    imgbed_upload_token: str = Field(min_length=1)
    imgbed_upload_path: str = DEFAULT_UPLOAD_PATH

    # Outbound calls
    request_timeout_ms: int = Field(10000, ge=100)
    retry_max_attempts: int = Field(3, ge=1)
    retry_base_delay_ms: int = Field(200, ge=0)
    max_upload_bytes: int = Field(20 * 1024 * 1024, ge=1)

    # Logging / monitoring
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["json", "console"] = "json"
    sentry_dsn: str | None = None

    # Channel reply
    enable_channel_reply: bool = True
    channel_reply_template: str | None = None

    # Dedup
    dedup_store_type: Literal["memory", "redis"] = "memory"
    dedup_max_entries: int = Field(0, ge=0)  # 0 = unbounded

    @field_validator(
        "telegram_bot_token",
        "imgbed_base_url",
        "imgbed_upload_token",
        "telegram_api_base_url",
        mode="before",
    )
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("imgbed_base_url", "telegram_api_base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        return _strip_trailing_slash(value)

    @field_validator("imgbed_upload_path", mode="before")
    @classmethod
    def _default_upload_path(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_UPLOAD_PATH
        return value.strip()

    @field_validator("telegram_allowed_chat_ids")
    @classmethod
    def _require_chat_ids(cls, value: str) -> str:
        if not _split_chat_ids(value):
            raise ValueError("TELEGRAM_ALLOWED_CHAT_IDS is empty")
        return value

    @field_validator("log_level", "dedup_store_type", "log_format", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("channel_reply_template", "telegram_webhook_secret", "sentry_dsn", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    # --- Convenience properties ---
    @property
    def allowed_chat_ids(self) -> frozenset[str]:
        return frozenset(_split_chat_ids(self.telegram_allowed_chat_ids))

    @property
    def request_timeout(self) -> float:
        """Per-request timeout in seconds."""
        return self.request_timeout_ms / 1000

    @property
    def retry_base_delay(self) -> float:
        return self.retry_base_delay_ms / 1000

    @property
    def imgbed_upload_url(self) -> str:
        path = self.imgbed_upload_path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.imgbed_base_url}{path}"


def _split_chat_ids(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
