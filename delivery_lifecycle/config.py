"""
Configuration management for the delivery lifecycle service.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = Field(default="Delivery Lifecycle")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_workers: int = Field(default=1)

    # Database
    database_url: str = Field(default="sqlite:///./delivery_lifecycle.db")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Delivery ledger
    version_allocation_retries: int = Field(
        default=1,
        ge=0,
        description="Automatic retries after two writers raced for the same version.",
    )
    allowed_artifact_schemes: str = Field(
        default="https,http",
        description="Comma-separated URL schemes accepted as artifact locators.",
    )

    # Batch projects
    default_delivery_mode: str = Field(default="sequential")

    def artifact_schemes(self) -> List[str]:
        """Parse allowed_artifact_schemes into a normalized list."""
        return [
            s.strip().lower()
            for s in self.allowed_artifact_schemes.split(",")
            if s.strip()
        ]


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
