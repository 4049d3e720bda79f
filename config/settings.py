"""
Pydantic Settings for Farm Backup

This module provides strongly-typed configuration settings using Pydantic,
with support for environment variables and YAML configuration files.
"""

from typing import List, Optional, Union
from pathlib import Path
import logging
import os

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_yaml import to_yaml_str


class ValidationSettings(BaseSettings):
    """
    File-level constraints applied to uploaded backups.

    These settings control which files the validator accepts:
    - Maximum file size
    - Required filename suffix
    - Backup format versions understood by this release
    """
    max_file_size_mb: int = Field(50, gt=0,
                                  description="Largest accepted backup file in megabytes")
    required_extension: str = Field(".json",
                                    description="Filename suffix an uploaded backup must carry (empty disables)")
    supported_format_versions: List[int] = Field(default_factory=lambda: [1],
                                                 description="Backup format versions accepted at validation")

    model_config = SettingsConfigDict(env_prefix="FARM_BACKUP_VALIDATION_", case_sensitive=False)


class RestoreSettings(BaseSettings):
    """
    Restore behavior settings.

    These settings control how restored data is written:
    - Whether restored invitations are renewed as pending ones
    - How long a renewed invitation stays valid
    - How often progress is reported
    """
    reset_invitations: bool = Field(True,
                                    description="Restore invitations as fresh pending invitations")
    invitation_ttl_days: int = Field(7, gt=0,
                                     description="Days a renewed invitation stays valid")
    progress_every_n_documents: int = Field(25, gt=0,
                                            description="Report progress every N documents within a collection")

    model_config = SettingsConfigDict(env_prefix="FARM_BACKUP_RESTORE_", case_sensitive=False)


class RetrySettings(BaseSettings):
    """
    Retry settings for transient store failures.

    Only failures the store adapter reports as transient are retried,
    with exponential backoff capped at ``max_delay_seconds``.
    """
    enabled: bool = Field(True,
                          description="Retry store calls that fail transiently")
    max_retries: int = Field(3, ge=0,
                             description="Retries after the first attempt")
    delay_seconds: float = Field(0.5, ge=0,
                                 description="Initial delay between attempts")
    max_delay_seconds: float = Field(5.0, ge=0,
                                     description="Upper bound for the delay between attempts")

    model_config = SettingsConfigDict(env_prefix="FARM_BACKUP_RETRY_", case_sensitive=False)


class LoggingSettings(BaseSettings):
    """
    Logging settings for hosts that let this package configure logging.

    The library itself never configures logging on import; see
    ``configure_logging``.
    """
    level: str = Field("INFO",
                       description="Root log level")
    format: str = Field("%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                        description="Log record format")

    model_config = SettingsConfigDict(env_prefix="FARM_BACKUP_LOGGING_", case_sensitive=False)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if not isinstance(logging.getLevelName(v), int):
            raise ValueError(f"Unknown log level: {v}")
        return v


class FarmBackupSettings(BaseSettings):
    """
    Main settings class that consolidates all configuration categories.

    Every value can be overridden through environment variables using the
    ``FARM_BACKUP_`` prefix and ``__`` between group and field, for example
    ``FARM_BACKUP_RETRY__MAX_RETRIES=5``.
    """
    validation: ValidationSettings = Field(default_factory=ValidationSettings,
                                           description="Backup file validation settings")
    restore: RestoreSettings = Field(default_factory=RestoreSettings,
                                     description="Restore behavior settings")
    retry: RetrySettings = Field(default_factory=RetrySettings,
                                 description="Transient failure retry settings")
    logging: LoggingSettings = Field(default_factory=LoggingSettings,
                                     description="Logging settings")

    model_config = SettingsConfigDict(
        env_prefix="FARM_BACKUP_",
        case_sensitive=False,
        env_nested_delimiter="__"
    )

    @classmethod
    def from_yaml(cls, yaml_file: Union[str, Path]) -> "FarmBackupSettings":
        """Load settings from YAML file"""
        with open(yaml_file, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self) -> str:
        """Dump settings as YAML text"""
        return to_yaml_str(self)


def load_settings(config_path: Optional[str] = None) -> FarmBackupSettings:
    """
    Load settings from file and/or environment variables.

    - If config_path is provided and exists, loads settings from the YAML file
    - Otherwise, creates a new settings instance with values from environment variables

    Args:
        config_path: Path to YAML configuration file. If None or file doesn't exist,
                    falls back to environment variables and default values.

    Returns:
        FarmBackupSettings object with loaded configuration

    Example:
        # Load from specific config file
        settings = load_settings("/etc/farm_backup/config.yaml")

        # Load from environment variables and defaults
        settings = load_settings()
    """
    if config_path and os.path.exists(config_path):
        return FarmBackupSettings.from_yaml(config_path)
    return FarmBackupSettings()


def configure_logging(settings: FarmBackupSettings) -> None:
    """Apply the logging settings to the root logger."""
    logging.basicConfig(level=settings.logging.level, format=settings.logging.format)
