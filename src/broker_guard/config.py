"""Configuration management for Broker Guard.

These are process settings (environment variables and ``.env``). The
policy itself comes from the XML configuration document.
"""

import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PASSWORD_ALGORITHM = "PBKDF2WithHmacSHA256:10000:256"
DEFAULT_ACCEPTOR_URL = "tcp://[::]:61000"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="BROKER_GUARD_",
        env_file=".env" if os.getenv("ENVIRONMENT") != "test" else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Broker Guard"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = Field(
        default="development",
        validation_alias="ENVIRONMENT",
    )
    log_level: str = "INFO"

    # Passwords
    password_algorithm: str = Field(
        default=DEFAULT_PASSWORD_ALGORITHM,
        description="Algorithm identifier used by create-hashed-password",
    )

    # Broker
    acceptor_url: str = DEFAULT_ACCEPTOR_URL
    broker_factory: Optional[str] = Field(
        default=None,
        description="Import path 'module:callable' of the broker implementation",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v):
        return str(v).upper()

    def get_log_level(self) -> str:
        """Effective log level; ``debug`` forces DEBUG."""
        return "DEBUG" if self.debug else self.log_level


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
