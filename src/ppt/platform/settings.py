"""Centralized configuration using pydantic-settings.

All configuration is loaded from environment variables and .env files.
This is the single source of truth for all platform configuration.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseSettings(BaseModel):
    """Database configuration."""

    url: str | None = Field(None, description="Full database URL")
    host: str = Field("localhost", description="Database host")
    port: int = Field(5432, description="Database port")
    database: str = Field("ppt", description="Database name")
    username: str = Field("ppt", description="Database username")
    password: str = Field("", description="Database password")

    # Connection pool
    pool_size: int = Field(10, description="Connection pool size")
    max_overflow: int = Field(20, description="Max overflow connections")
    pool_timeout: int = Field(30, description="Pool timeout in seconds")
    pool_recycle: int = Field(3600, description="Recycle connections after seconds")
    pool_pre_ping: bool = Field(True, description="Test connections before use")

    echo: bool = Field(False, description="Echo SQL statements")


class JWTSettings(BaseModel):
    """JWT configuration."""

    secret_key: str = Field("change-me", description="JWT secret key")
    algorithm: str = Field("HS256", description="JWT algorithm")
    access_token_expire_minutes: int = Field(30, description="Access token expiration")
    issuer: str = Field("ppt-platform", description="JWT issuer")


class ObservabilitySettings(BaseModel):
    """Logging configuration."""

    log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
    log_format: str = Field("json", description="Log format (json or text)")


class FeatureAccessSettings(BaseModel):
    """Feature access configuration.

    Passed explicitly to the feature service, routers and guards instead of
    being read from module globals.
    """

    admin_roles: list[str] = Field(
        default_factory=lambda: ["admin", "super_admin", "platform_admin"],
        description="Roles allowed to manage flags, packages and subscriptions",
    )
    default_user_type: str = Field(
        "user", description="User type assumed when the token carries none"
    )
    stats_window_days: int = Field(
        30, ge=1, description="Default look-back window for usage statistics"
    )
    log_denials: bool = Field(True, description="Record a 'blocked' event when a guard denies")
    log_toggle_events: bool = Field(True, description="Record toggled_on/toggled_off events")


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    For nested settings, use double underscore: DATABASE__POOL_SIZE=20
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = Field("ppt-platform", description="Application name")
    app_version: str = Field("1.0.0", description="Application version")
    environment: Environment = Field(Environment.DEVELOPMENT, description="Deployment environment")
    debug: bool = Field(False, description="Debug mode")
    testing: bool = Field(False, description="Testing mode")

    host: str = Field("0.0.0.0", description="Server host")  # nosec B104
    port: int = Field(8000, description="Server port")

    database: DatabaseSettings = DatabaseSettings()  # type: ignore[call-arg]
    jwt: JWTSettings = JWTSettings()  # type: ignore[call-arg]
    observability: ObservabilitySettings = ObservabilitySettings()  # type: ignore[call-arg]
    features: FeatureAccessSettings = FeatureAccessSettings()  # type: ignore[call-arg]

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: Any) -> Any:
        """Validate environment."""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @field_validator("jwt")
    @classmethod
    def validate_jwt_secret(cls, v: JWTSettings, info: Any) -> JWTSettings:
        """Refuse the placeholder secret in production."""
        if v.secret_key == "change-me" and info.data.get("environment") == Environment.PRODUCTION:
            raise ValueError("JWT secret key must be changed in production")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.testing or self.environment == Environment.TEST


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore
    return _settings


def reset_settings() -> None:
    """Reset settings (mainly for testing)."""
    global _settings
    _settings = None


def get_feature_settings() -> FeatureAccessSettings:
    """FastAPI dependency returning the feature access configuration."""
    return get_settings().features


# Convenience export
settings = get_settings()
