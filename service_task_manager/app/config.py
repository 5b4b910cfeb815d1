"""
Configuration for the Task Manager service.

All settings are read from the environment with the ``TASKS_`` prefix (or a
local ``.env`` file), e.g. ``TASKS_COGNITO_USER_POOL_ID`` or
``TASKS_POSTGRES_DSN``.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from shared.config import BaseConfig


class TaskManagerConfig(BaseConfig):
    """Task Manager service settings."""

    model_config = SettingsConfigDict(
        env_prefix="TASKS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Task store
    task_store: str = Field(default="postgres", pattern="^(postgres|memory)$")
    postgres_dsn: str = "postgresql://localhost:5432/tasks"
    postgres_min_pool_size: int = Field(default=1, ge=0)
    postgres_max_pool_size: int = Field(default=10, ge=1)
    postgres_command_timeout: float = Field(default=30.0, gt=0)

    # Identity provider
    jwks_url: Optional[str] = None
    cognito_region: str = "us-east-1"
    cognito_user_pool_id: Optional[str] = None
    issuer: Optional[str] = None
    audience: Optional[str] = Field(default=None, description="Expected aud or client_id claim")
    token_use: Optional[str] = Field(default=None, description="Expected token_use claim (Cognito)")
    allowed_algorithms: List[str] = Field(default_factory=lambda: ["RS256", "RS384", "RS512"])
    token_leeway: int = Field(default=0, ge=0)

    # Key cache
    jwks_http_timeout: float = Field(default=5.0, gt=0)
    jwks_fetch_attempts: int = Field(default=3, ge=1, le=10)
    jwks_retry_base_delay: float = Field(default=0.5, ge=0)
    jwks_refresh_interval: int = Field(default=3600, ge=0)
    jwks_min_refresh_interval: int = Field(default=30, ge=0)

    # Attachments
    s3_bucket_name: Optional[str] = None
    s3_region: Optional[str] = None
    upload_url_expires: int = Field(default=300, ge=1, le=3600)

    @property
    def cognito_issuer(self) -> Optional[str]:
        if not self.cognito_user_pool_id:
            return None
        return f"https://cognito-idp.{self.cognito_region}.amazonaws.com/{self.cognito_user_pool_id}"

    @property
    def resolved_jwks_url(self) -> str:
        """Explicit JWKS URL, else the Cognito user pool's well-known key set."""
        if self.jwks_url:
            return self.jwks_url
        if self.cognito_issuer:
            return f"{self.cognito_issuer}/.well-known/jwks.json"
        raise ValueError("Either TASKS_JWKS_URL or TASKS_COGNITO_USER_POOL_ID must be set")

    @property
    def resolved_issuer(self) -> Optional[str]:
        return self.issuer or self.cognito_issuer
