"""
Backup Exporter

Reads one farm and its farm-scoped collections from the store and assembles
a portable BackupFile. Exports are all-or-nothing: any failed read aborts
the export.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Any

from ..config import FarmBackupConfig
from ..exceptions import ExportReadError
from ..models.entities import CURRENT_FORMAT_VERSION, BackupFile, BackupMeta, OperationPhase
from ..utils.progress import ProgressCallback, ProgressTracker
from ..utils.retry import call_with_retry
from .codec import DateCodec, datetime_to_millis
from .registry import DEFAULT_COLLECTIONS, FARM, CollectionDescriptor, check_registry
from .store import DocumentStore

logger = logging.getLogger(__name__)

FARM_STEP = "farm"


class BackupExporter:
    """
    Produces a BackupFile for one farm.

    Collections are read in registry order, every record is converted with
    the DateCodec, and ``meta.counts`` is derived from the arrays actually
    written into the file.

    Example:
        ```python
        exporter = BackupExporter(store)
        backup = await exporter.export("farm_1", exported_by="user_1")
        print(backup.meta.counts)
        ```
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[FarmBackupConfig] = None,
        collections: Sequence[CollectionDescriptor] = DEFAULT_COLLECTIONS,
        codec: Optional[DateCodec] = None
    ):
        """
        Initialize exporter.

        Args:
            store: Store to read from
            config: Backup configuration (uses defaults if None)
            collections: Collection registry, in processing order
            codec: Date codec (default codec if None)
        """
        self._store = store
        self._config = config or FarmBackupConfig()
        self._collections = check_registry(collections)
        self._codec = codec or DateCodec()
        logger.debug("BackupExporter initialized")

    async def export(
        self,
        farm_id: str,
        exported_by: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
        now: Optional[datetime] = None
    ) -> BackupFile:
        """
        Export a farm.

        Args:
            farm_id: Farm to export
            exported_by: Operator requesting the export
            progress_callback: Receives ``(message, percent)`` updates
            now: Export time override (current UTC time if None)

        Returns:
            Complete BackupFile

        Raises:
            ExportReadError: If the farm or any collection cannot be read
        """
        tracker = ProgressTracker(
            OperationPhase.EXPORT,
            callback=progress_callback,
            every_n=self._config.progress_every_n_documents
        )
        tracker.plan(FARM_STEP, 1)
        for descriptor in self._collections:
            tracker.plan(descriptor.name, 1)

        logger.info(f"Starting export of farm {farm_id}")

        tracker.start_step(FARM_STEP, "Reading farm details...")
        farm = await self._read_farm(farm_id)
        tracker.finish_step()

        collections: Dict[str, List[Dict[str, Any]]] = {}
        for descriptor in self._collections:
            tracker.start_step(descriptor.name, f"Exporting {descriptor.label}...", descriptor.name)
            records = await self._read_collection(descriptor, farm_id)
            collections[descriptor.name] = [self._codec.to_portable(record) for record in records]
            logger.debug(f"Exported {len(records)} documents from '{descriptor.name}'")
            tracker.finish_step()

        meta = BackupMeta(
            farm_id=farm_id,
            farm_name=farm.get("name"),
            export_date=datetime_to_millis(now or datetime.now(timezone.utc)),
            exported_by=exported_by,
            counts={name: len(records) for name, records in collections.items()}
        )
        snapshot = {key: value for key, value in farm.items() if key != "id"}
        backup = BackupFile(
            format_version=CURRENT_FORMAT_VERSION,
            meta=meta,
            farm=self._codec.to_portable(snapshot),
            collections=collections
        )

        tracker.complete("Backup ready")
        logger.info(f"Export of farm {farm_id} completed: {meta.total_records} records {meta.counts}")
        return backup

    async def _read_farm(self, farm_id: str) -> Dict[str, Any]:
        try:
            farm = await call_with_retry(
                self._store.get_document, self._config, f"read farm {farm_id}",
                FARM.collection, farm_id
            )
        except Exception as e:
            logger.error(f"Failed to read farm {farm_id}: {e}")
            raise ExportReadError(
                f"Failed to read farm: {e}",
                collection_name=FARM.collection,
                farm_id=farm_id
            ) from e

        if farm is None:
            logger.error(f"Farm {farm_id} not found")
            raise ExportReadError("Farm not found", collection_name=FARM.collection, farm_id=farm_id)
        return farm

    async def _read_collection(self, descriptor: CollectionDescriptor, farm_id: str) -> List[Dict[str, Any]]:
        try:
            return await call_with_retry(
                self._store.list_documents, self._config, f"list {descriptor.name}",
                descriptor.name, farm_id
            )
        except Exception as e:
            logger.error(f"Failed to read '{descriptor.name}' for farm {farm_id}: {e}")
            raise ExportReadError(
                f"Failed to read collection: {e}",
                collection_name=descriptor.name,
                farm_id=farm_id
            ) from e
