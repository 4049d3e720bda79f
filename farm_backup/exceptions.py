"""
Farm Backup Exceptions

Defines the exception hierarchy for backup export, validation and restore,
so callers can tell fatal failures (unreadable files, failed exports) apart
from failures that a restore run recovers from locally.
"""

from typing import Optional, Dict, Any, List


class FarmBackupError(Exception):
    """
    Base exception for all farm backup operations.

    Attributes:
        message: Human-readable error message
        collection_name: Name of the collection involved (if applicable)
        farm_id: Identifier of the farm involved (if applicable)
        context: Additional context information as key-value pairs

    Example:
        ```python
        try:
            backup = await manager.export_backup("farm_1")
        except FarmBackupError as e:
            logger.error(f"Backup error for {e.collection_name}: {e.message}")
        ```
    """

    def __init__(
        self,
        message: str,
        collection_name: Optional[str] = None,
        farm_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.collection_name = collection_name
        self.farm_id = farm_id
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.collection_name:
            parts.append(f"Collection: {self.collection_name}")
        if self.farm_id:
            parts.append(f"Farm ID: {self.farm_id}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


class BackupFormatError(FarmBackupError):
    """
    Backup blob could not be parsed at all.

    Raised when the bytes are not valid UTF-8 JSON or the top level is not
    an object. The validator reports it as a single error entry; a restore
    is never attempted from such a blob.

    Additional Attributes:
        cause: Underlying parser message
    """

    def __init__(
        self,
        message: str,
        cause: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context=context)
        self.cause = cause


class StructuralValidationError(FarmBackupError):
    """
    Backup has a recognized but invalid shape.

    Carries every structural problem found, not only the first one, so the
    operator sees the full list at once.

    Additional Attributes:
        errors: Accumulated structural error messages

    Example:
        ```python
        raise StructuralValidationError(
            "Backup file failed validation",
            errors=["Unsupported format version: 7", "meta.farmId is missing"]
        )
        ```
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        farm_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, farm_id=farm_id, context=context)
        self.errors = errors or []

    def __str__(self) -> str:
        base = super().__str__()
        if self.errors:
            return f"{base} | Errors: {'; '.join(self.errors)}"
        return base


class ContentWarning(UserWarning):
    """
    Category for suspicious but acceptable backup content.

    Validator warnings are reported as strings in ``ValidationResult.warnings``
    and never raised; this class names the category for callers that want to
    route them through :mod:`warnings`.
    """


class DocumentWriteError(FarmBackupError):
    """
    A single document failed to be written or deleted during restore.

    Never escapes a restore run; its string form is what lands in
    ``RestoreResult.errors``.

    Additional Attributes:
        document_id: Identifier of the failed document
        cause: Description of the underlying failure
    """

    def __init__(
        self,
        collection_name: str,
        document_id: str,
        cause: str,
        farm_id: Optional[str] = None
    ):
        super().__init__(
            f"{collection_name}/{document_id}: {cause}",
            collection_name=collection_name,
            farm_id=farm_id
        )
        self.document_id = document_id
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class ExportReadError(FarmBackupError):
    """
    Reading a collection (or the farm itself) failed during export.

    Always fatal to the whole export: no partial backup leaves the system.

    Example:
        ```python
        raise ExportReadError(
            "Failed to read collection",
            collection_name="animals",
            farm_id="farm_1"
        )
        ```
    """


class RestoreInProgressError(FarmBackupError):
    """
    A restore run is already active for the target farm.

    Additional Attributes:
        started_at: When the running restore started
    """

    def __init__(
        self,
        message: str,
        farm_id: Optional[str] = None,
        started_at: Optional[Any] = None
    ):
        super().__init__(message, farm_id=farm_id)
        self.started_at = started_at


class TransientStoreError(FarmBackupError):
    """
    Retryable store failure (timeouts, throttling, brief unavailability).

    Store adapters raise this for conditions worth another attempt; every
    other exception from the store is treated as permanent.

    Additional Attributes:
        operation: Name of the store operation that failed
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        collection_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, collection_name=collection_name, context=context)
        self.operation = operation


class DocumentConflictError(FarmBackupError):
    """
    A backup record's id is already used by a document of another farm.

    The reconciler records it as a per-document failure and leaves the other
    farm's document untouched.
    """
