"""
Backup Manager

Functional surface for the UI layer: export a farm, validate an uploaded
file, restore it. Holds the per-farm restore run state so two restores never
run against the same farm at once.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Sequence, Union

from ..config import FarmBackupConfig
from ..exceptions import StructuralValidationError
from ..models.entities import BackupFile, RestoreMode, RestoreResult, ValidationResult
from ..models.parameters import RestoreParams, ValidationPolicy
from ..models.run_state import RestoreRun, RunIdle, RunState
from ..utils.progress import ProgressCallback
from .exporter import BackupExporter
from .reconciler import RestoreReconciler
from .registry import DEFAULT_COLLECTIONS, CollectionDescriptor
from .store import DocumentStore
from .validator import BackupValidator

logger = logging.getLogger(__name__)


class BackupManager:
    """
    Entry point for farm backup operations.

    Example:
        ```python
        manager = BackupManager(store, config=FarmBackupConfig())

        # Export
        backup = await manager.export_backup("farm_1", exported_by="user_1")

        # Validate an upload
        result = manager.validate_backup_blob(data, filename="respaldo.json", current_farm_id="farm_1")

        # Restore it
        if result.valid:
            restored = await manager.restore_backup(result, "farm_1", RestoreMode.MERGE)
        ```
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[FarmBackupConfig] = None,
        collections: Sequence[CollectionDescriptor] = DEFAULT_COLLECTIONS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize BackupManager.

        Args:
            store: Document store holding the farm data
            config: Backup configuration (uses defaults if None)
            collections: Collection registry, in processing order
            clock: Returns the current aware datetime (UTC now if None)
        """
        self._config = config or FarmBackupConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._exporter = BackupExporter(store, self._config, collections)
        self._validator = BackupValidator(self._config, collections)
        self._reconciler = RestoreReconciler(store, self._config, collections, clock=self._clock)

        self._runs: Dict[str, RestoreRun] = {}

        logger.info(f"BackupManager initialized with {self._config!r}")

    @property
    def config(self) -> FarmBackupConfig:
        return self._config

    async def export_backup(
        self,
        farm_id: str,
        exported_by: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None
    ) -> BackupFile:
        """
        Export a farm to a BackupFile.

        Raises:
            ExportReadError: If any read fails; no partial backup is returned
        """
        return await self._exporter.export(
            farm_id,
            exported_by=exported_by,
            progress_callback=progress_callback,
            now=self._clock()
        )

    def validate_backup_blob(
        self,
        data: bytes,
        policy: Optional[ValidationPolicy] = None,
        filename: Optional[str] = None,
        current_farm_id: Optional[str] = None
    ) -> ValidationResult:
        """
        Validate an uploaded backup blob.

        Args:
            data: Raw file content
            policy: File constraints (from configuration if None)
            filename: Uploaded file name
            current_farm_id: Farm the operator is working on

        Returns:
            ValidationResult
        """
        return self._validator.validate(
            data,
            policy=policy,
            filename=filename,
            current_farm_id=current_farm_id,
            now=self._clock()
        )

    async def restore_backup(
        self,
        backup: Union[BackupFile, ValidationResult],
        farm_id: str,
        mode: Union[RestoreMode, str] = RestoreMode.MERGE,
        progress_callback: Optional[ProgressCallback] = None,
        operator_id: Optional[str] = None
    ) -> RestoreResult:
        """
        Restore a backup into a farm.

        Accepts either a BackupFile or the ValidationResult that vouched for
        it; an invalid result is refused before anything is written.

        Args:
            backup: Backup file or validation result
            farm_id: Target farm
            mode: Reconciliation mode (``"merge"`` or ``"replace"``)
            progress_callback: Receives ``(message, percent)`` updates
            operator_id: Restoring user

        Returns:
            RestoreResult

        Raises:
            StructuralValidationError: If given an invalid ValidationResult
            RestoreInProgressError: If a restore is already running for the farm
            ValueError: If the mode is unknown
        """
        if isinstance(backup, ValidationResult):
            backup = self.require_valid(backup)
        params = RestoreParams(mode=RestoreMode(mode), operator_id=operator_id)

        run = self._runs.setdefault(farm_id, RestoreRun(farm_id))
        return await self._reconciler.restore(
            backup,
            farm_id,
            params.mode,
            progress_callback=progress_callback,
            operator_id=params.operator_id,
            run=run
        )

    def get_run_state(self, farm_id: str) -> RunState:
        """Current restore run state of a farm."""
        run = self._runs.get(farm_id)
        if run is None:
            return RunIdle()
        return run.state

    def is_restoring(self, farm_id: str) -> bool:
        run = self._runs.get(farm_id)
        return run is not None and run.is_running

    @staticmethod
    def require_valid(result: ValidationResult) -> BackupFile:
        """
        Return the backup a validation result vouches for.

        Raises:
            StructuralValidationError: If the result is not valid
        """
        if not result.valid or result.backup is None:
            raise StructuralValidationError(
                "Backup file failed validation",
                errors=list(result.errors)
            )
        return result.backup
