"""Application settings.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Credentials are optional at load time. The dev server and `build` work
without an OpenAI key; constructing an OpenAI-backed agent without one fails
with a `ConfigurationError`.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Levels both the stdlib and uvicorn understand.
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_LOG_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


class AppSettings(BaseSettings):
    """Settings for the agent-automation application.

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `AppSettings(_env_file=path_to_env)`.
    """

    app: str = Field(
        default="",
        validation_alias="AGENT_APP",
        description="Import path of the Application, e.g. 'myproject.app:application'",
    )

    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    openai_base_url: str | None = Field(
        default=None,
        validation_alias="OPENAI_BASE_URL",
        description="Override for OpenAI-compatible endpoints",
    )
    default_model: str = Field(
        default="openai/gpt-4o-mini",
        validation_alias="DEFAULT_MODEL",
        description="Model selector used by agents that do not name one",
    )

    database_url: str = Field(
        default="file://agent_state",
        validation_alias="DATABASE_URL",
        description="Storage backend URL: memory://, file://<dir>, or a SQLAlchemy URL",
    )

    telegram_bot_token: str = Field(default="", validation_alias="TELEGRAM_BOT_TOKEN")
    telegram_webhook_secret: str = Field(
        default="",
        validation_alias="TELEGRAM_WEBHOOK_SECRET",
        description="Expected X-Telegram-Bot-Api-Secret-Token header value",
    )
    slack_signing_secret: str = Field(default="", validation_alias="SLACK_SIGNING_SECRET")
    webhook_secret: str = Field(
        default="",
        validation_alias="WEBHOOK_SECRET",
        description="Expected X-Webhook-Secret header value for generic providers",
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    host: str = Field(default="127.0.0.1", validation_alias="HOST")
    port: int = Field(default=4111, validation_alias="PORT", gt=0, lt=65536)
    cors_origins: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    scheduler_enabled: bool = Field(default=True, validation_alias="SCHEDULER_ENABLED")
    scheduler_timezone: str = Field(default="UTC", validation_alias="SCHEDULER_TIMEZONE")

    build_dir: Path = Field(default=Path(".build"), validation_alias="BUILD_DIR")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        level = _LOG_LEVEL_ALIASES.get(level, level)
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown LOG_LEVEL {value!r}; expected one of {_LOG_LEVELS}")
        return level

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
