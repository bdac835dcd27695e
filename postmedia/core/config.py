"""
Configuration management for Postmedia.

This module provides:
- Pydantic Settings for environment variable loading
- Structured configuration classes for the media engine
- Validation and type safety for configuration values
- Default values and environment-specific overrides
"""

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Main application configuration."""
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # App metadata
    app_name: str = Field(default="Postmedia", validation_alias="APP_NAME")
    version: str = Field(default="1.0.0", validation_alias="APP_VERSION")
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    debug: bool = Field(default=False, validation_alias="DEBUG")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ['development', 'testing', 'staging', 'production']
        if v not in allowed:
            raise ValueError(f'Environment must be one of: {allowed}')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in allowed:
            raise ValueError(f'Log level must be one of: {allowed}')
        return v.upper()

    @property
    def is_development(self) -> bool:
        return self.environment == 'development'

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'


class MediaConfig(BaseSettings):
    """Media validation, probing and export configuration."""
    model_config = SettingsConfigDict(
        env_prefix="MEDIA_",
        case_sensitive=False,
        extra="ignore"
    )

    # Spec table
    spec_table_path: str | None = Field(
        default=None,
        description="YAML file overriding the built-in media spec table"
    )
    aspect_ratio_tolerance: float | None = Field(
        default=None,
        description="Absolute ratio tolerance for catalog matching"
    )

    # Probing
    ffprobe_binary: str = Field(default="ffprobe")
    probe_timeout: float = Field(default=30.0)

    # Editor display surface
    preview_min_width: int = Field(default=200)
    preview_min_height: int = Field(default=150)
    viewport_padding: int = Field(default=32)

    # Export
    export_quality: float = Field(default=0.9)
    export_content_type: str = Field(default="image/jpeg")
    export_background: tuple[int, int, int] = Field(default=(0, 0, 0))
    max_export_pixels: int = Field(default=100_000_000)

    @field_validator('aspect_ratio_tolerance')
    @classmethod
    def validate_tolerance(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError('Aspect ratio tolerance must not be negative')
        return v

    @field_validator('export_quality')
    @classmethod
    def validate_quality(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError('Export quality must be in (0, 1]')
        return v

    @field_validator('export_content_type')
    @classmethod
    def validate_content_type(cls, v: str) -> str:
        allowed = ['image/jpeg', 'image/png', 'image/webp']
        if v not in allowed:
            raise ValueError(f'Export content type must be one of: {allowed}')
        return v


class Settings:
    """Main settings container with all configuration sections."""

    def __init__(self):
        self.app = AppConfig()
        self.media = MediaConfig()


# Global settings instance
settings = Settings()


def get_test_settings() -> Settings:
    """Get test-specific settings with overrides."""

    # Override with test values
    os.environ.update({
        'ENVIRONMENT': 'testing',
        'DEBUG': 'true',
        'LOG_FORMAT': 'console',
    })

    return Settings()
