"""
Configuration Module

This module provides environment- and file-driven settings for farm backups:
- Validation limits for uploaded backup files
- Restore behavior (invitation renewal, progress granularity)
- Retry behavior for transient store failures
- Logging setup for host applications

Settings convert to the runtime ``FarmBackupConfig`` with
``FarmBackupConfig.from_settings``.
"""

from .settings import (
    FarmBackupSettings,
    ValidationSettings,
    RestoreSettings,
    RetrySettings,
    LoggingSettings,
    load_settings,
    configure_logging
)

__all__ = [
    'FarmBackupSettings',
    'ValidationSettings',
    'RestoreSettings',
    'RetrySettings',
    'LoggingSettings',
    'load_settings',
    'configure_logging'
]
