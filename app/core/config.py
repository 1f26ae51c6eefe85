"""
app/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URI, session secret, etc.)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="meetstats",
        description="MongoDB database name"
    )

    # Sessions
    SECRET_KEY: str = Field(
        default="change-me-in-production",
        description="Secret used to sign the session cookie"
    )
    SESSION_COOKIE_NAME: str = Field(
        default="session",
        description="Name of the signed session cookie"
    )
    SESSION_MAX_AGE_SECONDS: int = Field(
        default=14 * 24 * 60 * 60,
        description="Session cookie lifetime in seconds"
    )

    # Meeting statistics
    RECENT_MEETINGS_DEFAULT_LIMIT: int = Field(
        default=10,
        description="Default number of meetings returned by the recent meetings endpoint"
    )
    RECENT_MEETINGS_MAX_LIMIT: int = Field(
        default=100,
        description="Upper bound for the recent meetings limit"
    )
    ENABLE_MONTHLY_ROLLOVER: bool = Field(
        default=True,
        description="Run the monthly baseline rollover job inside the web process"
    )
    STATS_POLL_INTERVAL_SECONDS: float = Field(
        default=30.0,
        description="Fallback polling interval used by the stats widget"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api",
        description="API route prefix"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v: str, info: ValidationInfo) -> str:
        """Ensure secret key is changed in production."""
        if info.data.get("ENVIRONMENT") == "production" and v == "change-me-in-production":
            raise ValueError("SECRET_KEY must be changed in production environment")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def session_middleware_options(self) -> dict:
        """SessionMiddleware arguments, shared by HTTP and the socket handshake."""
        return {
            "secret_key": self.SECRET_KEY,
            "session_cookie": self.SESSION_COOKIE_NAME,
            "max_age": self.SESSION_MAX_AGE_SECONDS,
            "https_only": self.is_production,
        }


# Global settings instance
settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if not settings.MONGODB_DB_NAME:
        errors.append("MONGODB_DB_NAME is required")

    if settings.RECENT_MEETINGS_DEFAULT_LIMIT < 1:
        errors.append("RECENT_MEETINGS_DEFAULT_LIMIT must be positive")

    if settings.RECENT_MEETINGS_MAX_LIMIT < settings.RECENT_MEETINGS_DEFAULT_LIMIT:
        errors.append("RECENT_MEETINGS_MAX_LIMIT must not be below the default limit")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
