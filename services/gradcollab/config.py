"""
Configuration and settings for the GradCollab API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")

    # Database (any SQLAlchemy URL; in-memory repositories when unset)
    database_url: Optional[str] = Field(default=None)
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "GRADCOLLAB_USE_IN_MEMORY_BACKENDS", "use_in_memory_backends"
        ),
    )

    # Sessions (signed cookie)
    session_secret_key: str = Field(default="dev-session-secret")
    session_cookie: str = Field(default="gradcollab.sid")

    # Web client, linked from outgoing emails
    web_client_origin: str = Field(default="http://localhost:8080")

    # Transactional email (SendGrid); in-memory mailer when no key is set
    sendgrid_api_key: Optional[str] = Field(default=None)
    mail_from: str = Field(default="noreply@gradcollab.org")

    # Listener
    is_prod: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    ssl_keyfile: Optional[str] = Field(default=None)
    ssl_certfile: Optional[str] = Field(default=None)

    log_level: str = Field(default="INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
