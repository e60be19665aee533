"""Environment-driven configuration for the client portal.

Every knob the service reads lives on ``AppSettings``. Values come from the
process environment first and then from ``.env``/``.env.local`` files, so a
developer can boot the API locally without exporting anything.

Outbound integrations (chat, email, issue tracker) are optional: leaving their
credentials blank simply disables that channel.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Digital Directions Portal"
    APP_ENV: str = "dev"
    APP_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    DB_URL: str = Field(default="sqlite:///./portal.db", validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))

    # ---- Identity provider (bearer JWTs minted by the external IdP)
    IDP_JWT_SECRET: str = "change-me"
    IDP_JWT_ALGORITHM: str = "HS256"
    IDP_AUDIENCE: str | None = None
    IDP_ISSUER: str | None = None
    ROLE_CLAIM: str = "role"
    CLIENT_CLAIM: str = "client_id"

    # ---- Notification channels
    SLACK_BOT_TOKEN: str = ""
    SLACK_CHANNEL_ID: str = ""
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Digital Directions <notifications@digitaldirections.com>"
    LINEAR_API_KEY: str = ""
    NOTIFY_TIMEOUT_SECONDS: float = 10.0

    # Demote other in-progress phases when a new phase becomes active.
    PHASE_SINGLE_ACTIVE: bool = False

    ALLOWED_ORIGINS: list[str] = Field(default_factory=list)

    HOST: str = "0.0.0.0"
    PORT: int = 8000

    @property
    def app_url(self) -> str:
        return self.APP_URL.rstrip("/")

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("ALLOWED_ORIGINS must be a comma separated string or list")


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()


settings = get_settings()
