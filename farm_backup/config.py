"""
Farm Backup Configuration

Centralized configuration for backup export, validation and restore,
providing a single source of truth for the policy knobs the core reads:
file limits, invitation renewal, retry behavior and progress granularity.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Any, Tuple, TYPE_CHECKING
import logging

from .models.entities import CURRENT_FORMAT_VERSION
from .models.parameters import ValidationPolicy

if TYPE_CHECKING:
    from config.settings import FarmBackupSettings

logger = logging.getLogger(__name__)


@dataclass
class FarmBackupConfig:
    """
    Configuration for farm backup operations.

    Validation Settings:
        max_file_size_bytes: Largest accepted backup blob (default: 50MB)
        required_extension: Suffix an uploaded filename must carry (default: .json)
        supported_format_versions: Format versions accepted at validation

    Restore Settings:
        reset_restored_invitations: Restore invitations as fresh pending ones
        invitation_ttl_days: Validity of a renewed invitation (default: 7)
        progress_every_n_documents: Emit progress every N documents (default: 25)

    Retry Settings:
        retry_transient_errors: Retry store calls failing with TransientStoreError
        max_retries: Maximum retry attempts after the first call (default: 3)
        retry_delay_seconds: Initial delay between retries (default: 0.5)
        retry_max_delay_seconds: Cap for the exponential delay (default: 5)

    Example:
        ```python
        config = FarmBackupConfig(
            max_file_size_bytes=10 * 1024 * 1024,
            max_retries=5
        )
        manager = BackupManager(store, config=config)
        ```
    """

    # Validation Settings
    max_file_size_bytes: int = 50 * 1024 * 1024
    required_extension: str = ".json"
    supported_format_versions: Tuple[int, ...] = (CURRENT_FORMAT_VERSION,)

    # Restore Settings
    reset_restored_invitations: bool = True
    invitation_ttl_days: int = 7
    progress_every_n_documents: int = 25

    # Retry Settings
    retry_transient_errors: bool = True
    max_retries: int = 3
    retry_delay_seconds: float = 0.5
    retry_max_delay_seconds: float = 5.0

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.supported_format_versions = tuple(self.supported_format_versions)
        self.validate()

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Raises:
            ValueError: If any configuration parameter is invalid
        """
        if self.max_file_size_bytes <= 0:
            raise ValueError("max_file_size_bytes must be positive")
        if self.max_file_size_bytes > 512 * 1024 * 1024:
            logger.warning(
                f"Large backup size limit ({self.max_file_size_bytes / (1024 * 1024):.0f}MB) "
                f"means whole files are parsed in memory"
            )

        if not self.supported_format_versions:
            raise ValueError("supported_format_versions cannot be empty")

        if self.invitation_ttl_days <= 0:
            raise ValueError("invitation_ttl_days must be positive")

        if self.progress_every_n_documents <= 0:
            raise ValueError("progress_every_n_documents must be positive")

        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.retry_delay_seconds < 0:
            raise ValueError("retry_delay_seconds cannot be negative")
        if self.retry_max_delay_seconds < self.retry_delay_seconds:
            raise ValueError("retry_max_delay_seconds cannot be lower than retry_delay_seconds")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'FarmBackupConfig':
        """
        Create configuration from a dictionary.

        Unknown keys are ignored with a warning so configuration files can be
        shared with newer versions.

        Args:
            config_dict: Dictionary containing configuration parameters

        Returns:
            FarmBackupConfig instance
        """
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(config_dict) - known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")

        values = {key: value for key, value in config_dict.items() if key in known}
        if 'supported_format_versions' in values:
            values['supported_format_versions'] = tuple(values['supported_format_versions'])

        return cls(**values)

    @classmethod
    def from_settings(cls, settings: 'FarmBackupSettings') -> 'FarmBackupConfig':
        """
        Create configuration from environment/YAML settings.

        Args:
            settings: Loaded FarmBackupSettings

        Returns:
            FarmBackupConfig instance
        """
        return cls(
            max_file_size_bytes=settings.validation.max_file_size_mb * 1024 * 1024,
            required_extension=settings.validation.required_extension,
            supported_format_versions=tuple(settings.validation.supported_format_versions),
            reset_restored_invitations=settings.restore.reset_invitations,
            invitation_ttl_days=settings.restore.invitation_ttl_days,
            progress_every_n_documents=settings.restore.progress_every_n_documents,
            retry_transient_errors=settings.retry.enabled,
            max_retries=settings.retry.max_retries,
            retry_delay_seconds=settings.retry.delay_seconds,
            retry_max_delay_seconds=settings.retry.max_delay_seconds,
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to a dictionary.

        Returns:
            Dictionary representation of the configuration
        """
        result = asdict(self)
        result['supported_format_versions'] = list(self.supported_format_versions)
        return result

    def validation_policy(self) -> ValidationPolicy:
        """Build the validation policy described by this configuration."""
        return ValidationPolicy(
            max_size_bytes=self.max_file_size_bytes,
            required_extension=self.required_extension,
            supported_format_versions=self.supported_format_versions
        )

    @property
    def invitation_ttl_ms(self) -> int:
        """Invitation validity in milliseconds."""
        return self.invitation_ttl_days * 24 * 60 * 60 * 1000

    def __repr__(self) -> str:
        """String representation of configuration."""
        return (
            f"FarmBackupConfig("
            f"max_size={self.max_file_size_bytes / (1024 * 1024):.0f}MB, "
            f"extension={self.required_extension or 'any'}, "
            f"versions={list(self.supported_format_versions)}, "
            f"retries={self.max_retries if self.retry_transient_errors else 'disabled'}"
            f")"
        )
