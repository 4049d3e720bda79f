"""
Farm Backup Models

Exports all data models, entities, and parameters for backup operations.
"""

from .entities import (
    COLLECTION_NAMES,
    FARM_COLLECTION,
    CURRENT_FORMAT_VERSION,
    RestoreMode,
    OperationPhase,
    BackupMeta,
    BackupFile,
    ValidationResult,
    RestoreResult,
    RestoreProgress
)

from .parameters import (
    ValidationPolicy,
    RestoreParams
)

from .run_state import (
    RunIdle,
    RunRunning,
    RunDone,
    RunState,
    RestoreRun
)

__all__ = [
    # Constants
    'COLLECTION_NAMES',
    'FARM_COLLECTION',
    'CURRENT_FORMAT_VERSION',

    # Enums
    'RestoreMode',
    'OperationPhase',

    # Entities
    'BackupMeta',
    'BackupFile',
    'ValidationResult',
    'RestoreResult',
    'RestoreProgress',

    # Parameters
    'ValidationPolicy',
    'RestoreParams',

    # Run state
    'RunIdle',
    'RunRunning',
    'RunDone',
    'RunState',
    'RestoreRun'
]
