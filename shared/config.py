"""
Shared configuration management for the Task Manager API.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment name")
    log_level: str = Field(default="info", description="Root log level")

    # Listener
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)

    # Browser clients
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @property
    def is_local(self) -> bool:
        return self.env == "local"
