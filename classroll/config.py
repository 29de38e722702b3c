"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ClassRoll"
    app_env: Literal["development", "staging", "production"] = "development"
    app_secret_key: str
    app_base_url: str = "http://localhost:8000"
    app_debug: bool = False
    app_log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # JWT (tokens are issued by the identity service, only verified here)
    jwt_secret_key: str | None = None
    jwt_algorithm: str = "HS256"

    # Email
    email_provider: Literal["smtp", "resend", "disabled"] = "disabled"
    email_from_address: str = "no-reply@classroll.app"
    email_from_name: str = "ClassRoll"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    resend_api_key: str | None = None
    admin_notification_email: str | None = None

    # Onboarding
    invitation_code_max_attempts: int = Field(default=10, ge=1)
    invitation_max_uses_limit: int = Field(default=100, ge=1)
    generated_email_domain: str = "students.classroll.app"
    generated_password_length: int = Field(default=10, ge=8)
    # None disables the deadline
    onboarding_transaction_timeout_seconds: float | None = Field(default=30.0, gt=0)

    @field_validator("app_log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def effective_jwt_secret(self) -> str:
        """Get the JWT secret key, falling back to app secret key."""
        return self.jwt_secret_key or self.app_secret_key

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def async_database_url(self) -> str:
        """Get database URL with asyncpg driver for async SQLAlchemy."""
        url = self.database_url
        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        return url

    @property
    def login_url(self) -> str:
        """Get the URL guardians and students use to sign in."""
        return f"{self.app_base_url.rstrip('/')}/login"

    @property
    def email_enabled(self) -> bool:
        """Check if outbound email is configured."""
        return self.email_provider != "disabled"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
