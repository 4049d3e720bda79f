"""
Farm Backup Parameters

Parameter classes for validating and restoring backups. These are the
caller-supplied policy knobs; nothing here is hardcoded in the core.
"""

from typing import Optional, Tuple
from pydantic import BaseModel, Field, field_validator

from .entities import CURRENT_FORMAT_VERSION, RestoreMode


class ValidationPolicy(BaseModel):
    """
    File-level constraints applied when validating an uploaded backup.

    Attributes:
        max_size_bytes: Largest accepted blob in bytes
        required_extension: Filename suffix the upload must carry (checked
                            only when a filename is supplied; empty disables)
        supported_format_versions: Format versions the running codec understands

    Example:
        ```python
        policy = ValidationPolicy(max_size_bytes=10 * 1024 * 1024)
        result = validator.validate(data, policy, filename="respaldo.json")
        ```
    """
    max_size_bytes: int = Field(
        default=50 * 1024 * 1024,
        gt=0,
        description="Maximum accepted file size in bytes"
    )
    required_extension: str = Field(
        default=".json",
        description="Required filename suffix (empty to disable)"
    )
    supported_format_versions: Tuple[int, ...] = Field(
        default=(CURRENT_FORMAT_VERSION,),
        description="Accepted format versions"
    )

    @field_validator("required_extension")
    @classmethod
    def normalize_extension(cls, v: str) -> str:
        """Store the suffix lower-cased with a leading dot."""
        v = v.strip().lower()
        if v and not v.startswith("."):
            v = f".{v}"
        return v

    @field_validator("supported_format_versions")
    @classmethod
    def validate_versions(cls, v):
        if not v:
            raise ValueError("supported_format_versions cannot be empty")
        return v

    @property
    def max_size_mb(self) -> float:
        """Get size limit in megabytes."""
        return self.max_size_bytes / (1024 * 1024)

    def accepts_filename(self, filename: str) -> bool:
        """Check whether a filename carries the required suffix."""
        if not self.required_extension:
            return True
        return filename.lower().endswith(self.required_extension)


class RestoreParams(BaseModel):
    """
    Parameters for a restore run.

    Attributes:
        mode: Reconciliation mode
        operator_id: Identifier of the user running the restore; when given,
                     restored records carrying ``farmerId`` are reassigned to
                     this user and restored invitations are sent in their name

    Example:
        ```python
        params = RestoreParams(mode=RestoreMode.REPLACE, operator_id="user_1")
        ```
    """
    mode: RestoreMode = Field(default=RestoreMode.MERGE, description="Reconciliation mode")
    operator_id: Optional[str] = Field(default=None, description="Restoring operator")

    @property
    def is_replace(self) -> bool:
        return self.mode == RestoreMode.REPLACE
