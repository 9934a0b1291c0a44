"""Application configuration management using Pydantic Settings.

This module loads and validates environment variables using Pydantic Settings.
All configuration is loaded from environment variables or a .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        database_url: SQLAlchemy connection string
        database_pool_size: Number of connections to maintain in pool
        database_max_overflow: Maximum overflow connections beyond pool_size
        twilio_auth_token: Twilio authentication token (used to verify webhooks)
        verify_twilio_signature: Reject webhooks without a valid X-Twilio-Signature
        environment: Application environment (development, staging, production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        surveys_dir: Directory containing survey definition files
        default_survey_id: Definition started for every new caller or texter
        phone_hash_salt: Salt for one-way phone number hashing
        git_commit_sha: Git commit SHA reported at startup
    """

    # Database Configuration
    database_url: str = Field(
        description="SQLAlchemy connection string"
    )
    database_pool_size: int = Field(
        default=5,
        description="Number of database connections in pool"
    )
    database_max_overflow: int = Field(
        default=10,
        description="Maximum overflow connections beyond pool size"
    )

    # Twilio Configuration
    twilio_auth_token: str = Field(
        description="Twilio authentication token"
    )
    verify_twilio_signature: bool = Field(
        default=True,
        description="Verify X-Twilio-Signature on webhook requests"
    )

    # Application Configuration
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    surveys_dir: Optional[str] = Field(
        default=None,
        description="Path to survey definitions (defaults to <project>/surveys)"
    )
    default_survey_id: str = Field(
        default="automated_survey",
        description="Survey definition started for new respondents"
    )
    git_commit_sha: str = Field(
        default="local",
        description="Git commit SHA for versioning"
    )

    # Security Configuration
    phone_hash_salt: str = Field(
        description="Salt for one-way phone number hashing (must be kept secret)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("default_survey_id")
    @classmethod
    def validate_default_survey_id(cls, v: str) -> str:
        """Survey ids map to file names, so keep them path-safe."""
        if not v.replace("_", "").replace("-", "").isalnum():
            raise ValueError("Survey ID must be alphanumeric with underscores/hyphens")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings singleton

    Note:
        Uses lru_cache to ensure settings are only loaded once
        and shared across the application.
    """
    return Settings()
