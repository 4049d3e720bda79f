"""
Farm Backup Module

Export, validation and restore of a farm's records (animals, breeding
records, reminders, weight records and collaborator invitations) against a
remote document store.

Features:
- Portable JSON backups with dates stored as epoch milliseconds
- Validation of untrusted files with itemized errors and warnings
- Merge (non-destructive) and replace restore modes
- Per-document failure isolation with a full error list
- Progress callbacks and transient-error retries
- Per-farm restore run state

Typical usage:

    from farm_backup import BackupManager, InMemoryDocumentStore, RestoreMode

    manager = BackupManager(store)
    backup = await manager.export_backup("farm_1")
    data = dump_backup_bytes(backup)

    result = manager.validate_backup_blob(data, filename="respaldo.json")
    if result.valid:
        restored = await manager.restore_backup(result, "farm_1", RestoreMode.MERGE)
"""

# Configuration
from .config import FarmBackupConfig

# Core
from .core import (
    BackupManager,
    BackupExporter,
    BackupValidator,
    RestoreReconciler,
    DateCodec,
    PortableDate,
    CollectionDescriptor,
    DEFAULT_COLLECTIONS,
    DocumentStore,
    InMemoryDocumentStore
)

# Models
from .models.entities import (
    COLLECTION_NAMES,
    CURRENT_FORMAT_VERSION,
    RestoreMode,
    OperationPhase,
    BackupMeta,
    BackupFile,
    ValidationResult,
    RestoreResult,
    RestoreProgress
)

from .models.parameters import (
    ValidationPolicy,
    RestoreParams
)

from .models.run_state import (
    RunIdle,
    RunRunning,
    RunDone,
    RestoreRun
)

# Exceptions
from .exceptions import (
    FarmBackupError,
    BackupFormatError,
    StructuralValidationError,
    ContentWarning,
    DocumentWriteError,
    DocumentConflictError,
    ExportReadError,
    RestoreInProgressError,
    TransientStoreError
)

# Utilities
from .utils import (
    ProgressTracker,
    call_with_retry,
    dump_backup_bytes,
    load_backup_bytes,
    suggest_backup_filename
)

__all__ = [
    # Configuration
    'FarmBackupConfig',

    # Core
    'BackupManager',
    'BackupExporter',
    'BackupValidator',
    'RestoreReconciler',
    'DateCodec',
    'PortableDate',
    'CollectionDescriptor',
    'DEFAULT_COLLECTIONS',
    'DocumentStore',
    'InMemoryDocumentStore',

    # Models
    'COLLECTION_NAMES',
    'CURRENT_FORMAT_VERSION',
    'RestoreMode',
    'OperationPhase',
    'BackupMeta',
    'BackupFile',
    'ValidationResult',
    'RestoreResult',
    'RestoreProgress',
    'ValidationPolicy',
    'RestoreParams',
    'RunIdle',
    'RunRunning',
    'RunDone',
    'RestoreRun',

    # Exceptions
    'FarmBackupError',
    'BackupFormatError',
    'StructuralValidationError',
    'ContentWarning',
    'DocumentWriteError',
    'DocumentConflictError',
    'ExportReadError',
    'RestoreInProgressError',
    'TransientStoreError',

    # Utilities
    'ProgressTracker',
    'call_with_retry',
    'dump_backup_bytes',
    'load_backup_bytes',
    'suggest_backup_filename'
]
