"""
Restore Reconciler

Applies a validated BackupFile to a target farm, collection by collection,
under one of the reconciliation modes. A failed document is recorded and
skipped; the run always continues to the end and reports what landed.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Union

from ..config import FarmBackupConfig
from ..exceptions import DocumentConflictError, DocumentWriteError
from ..models.entities import BackupFile, OperationPhase, RestoreMode, RestoreResult
from ..models.run_state import RestoreRun
from ..utils.progress import ProgressCallback, ProgressTracker
from ..utils.retry import call_with_retry
from .codec import DateCodec
from .registry import DEFAULT_COLLECTIONS, FARM, CollectionDescriptor, RestoreContext, check_registry
from .store import DocumentStore

logger = logging.getLogger(__name__)

FARM_STEP = "farm"

# (descriptor, records, context, tracker, errors) -> documents written
CollectionStrategy = Callable[
    [CollectionDescriptor, List[Dict[str, Any]], RestoreContext, ProgressTracker, List[str]],
    Awaitable[int]
]


def _cause(error: Exception) -> str:
    return str(error) or error.__class__.__name__


class RestoreReconciler:
    """
    Writes a backup back into the store.

    The farm entity is field-updated first (never deleted), then every
    collection in registry order goes through the strategy of the requested
    mode:

    - MERGE: existing ids are field-updated with the incoming fields, new
      ids are created, nothing is deleted.
    - REPLACE: the farm's documents are deleted and the incoming records
      are created with their original ids. Collections flagged
      ``replace_exempt`` (invitations) are left untouched.

    Documents are only ever written for the target farm: a record whose id
    is held by another farm's document is reported and skipped.

    Example:
        ```python
        reconciler = RestoreReconciler(store)
        result = await reconciler.restore(
            backup,
            farm_id="farm_1",
            mode=RestoreMode.MERGE,
            progress_callback=lambda message, percent: print(percent, message)
        )
        print(result.counts, result.errors)
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
        Initialize reconciler.

        Args:
            store: Store to write to
            config: Backup configuration (uses defaults if None)
            collections: Collection registry, in processing order
            clock: Returns the current aware datetime (UTC now if None)
        """
        self._store = store
        self._config = config or FarmBackupConfig()
        self._collections = check_registry(collections)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._codec = DateCodec(getattr(store, "timestamp_factory", None))
        self._strategies: Dict[RestoreMode, CollectionStrategy] = {
            RestoreMode.MERGE: self._merge_collection,
            RestoreMode.REPLACE: self._replace_collection,
        }
        logger.debug("RestoreReconciler initialized")

    async def restore(
        self,
        backup: BackupFile,
        farm_id: str,
        mode: Union[RestoreMode, str],
        progress_callback: Optional[ProgressCallback] = None,
        operator_id: Optional[str] = None,
        run: Optional[RestoreRun] = None
    ) -> RestoreResult:
        """
        Restore a backup into a farm.

        Args:
            backup: Validated backup file
            farm_id: Target farm
            mode: Reconciliation mode
            progress_callback: Receives ``(message, percent)`` updates
            operator_id: Restoring user; becomes owner of reassigned records
            run: Caller-held run state for the farm; moved to running, then done

        Returns:
            RestoreResult with the documents written per collection and
            one error entry per failed document or collection step

        Raises:
            ValueError: If the mode is not a known reconciliation mode
            RestoreInProgressError: If ``run`` is already running
        """
        mode = RestoreMode(mode)
        strategy = self._strategies.get(mode)
        if strategy is None:
            raise ValueError(f"No reconciliation strategy for mode: {mode.value}")

        started_at = self._clock()
        if run is not None:
            run.begin(started_at)

        context = RestoreContext(
            farm_id=farm_id,
            operator_id=operator_id,
            now=started_at,
            codec=self._codec,
            reset_invitations=self._config.reset_restored_invitations,
            invitation_ttl_days=self._config.invitation_ttl_days
        )
        tracker = ProgressTracker(
            OperationPhase.RESTORE,
            callback=progress_callback,
            every_n=self._config.progress_every_n_documents
        )
        tracker.plan(FARM_STEP, 1)
        for descriptor in self._collections:
            tracker.plan(descriptor.name, len(backup.records(descriptor.name)))

        counts = {descriptor.name: 0 for descriptor in self._collections}
        errors: List[str] = []

        logger.info(
            f"Starting {mode.value} restore of {backup.meta.total_records} records "
            f"from farm {backup.meta.farm_id} into farm {farm_id}"
        )

        try:
            await self._restore_farm(backup, context, tracker, errors)

            for descriptor in self._collections:
                tracker.start_step(descriptor.name, f"Restoring {descriptor.label}...", descriptor.name)
                if backup.has_collection(descriptor.name):
                    counts[descriptor.name] = await strategy(
                        descriptor, backup.records(descriptor.name), context, tracker, errors
                    )
                else:
                    logger.debug(f"Collection '{descriptor.name}' not in backup, skipping")
                tracker.finish_step()

        except Exception as e:
            logger.error(f"Restore into farm {farm_id} aborted: {e}")
            errors.append(f"Restore aborted: {_cause(e)}")

        result = RestoreResult(
            success=not errors,
            counts=counts,
            errors=errors,
            mode=mode,
            farm_id=farm_id,
            started_at=started_at,
            finished_at=self._clock()
        )

        if result.success:
            tracker.complete("Restore completed")
        else:
            tracker.complete(f"Restore completed with {len(errors)} errors")
        if run is not None:
            run.finish(result)

        logger.info(
            f"Restore into farm {farm_id} finished: {result.total_written} documents written, "
            f"{len(errors)} errors {result.counts}"
        )
        return result

    async def _call(self, operation: Callable[..., Awaitable[Any]], operation_name: str, *args: Any) -> Any:
        return await call_with_retry(operation, self._config, operation_name, *args)

    def _record_failure(
        self,
        collection_name: str,
        document_id: str,
        error: Exception,
        context: RestoreContext,
        errors: List[str]
    ) -> None:
        failure = DocumentWriteError(collection_name, document_id, _cause(error), farm_id=context.farm_id)
        errors.append(str(failure))
        logger.warning(f"Failed to restore {failure}")

    async def _restore_farm(
        self,
        backup: BackupFile,
        context: RestoreContext,
        tracker: ProgressTracker,
        errors: List[str]
    ) -> None:
        tracker.start_step(FARM_STEP, "Restoring farm details...")
        if backup.farm is None:
            logger.info("Backup has no farm details, farm left unchanged")
        else:
            try:
                payload = FARM.update_payload(backup.farm, self._codec)
                if payload:
                    await self._call(
                        self._store.update_document, f"update farm {context.farm_id}",
                        FARM.collection, context.farm_id, payload
                    )
                    logger.debug(f"Updated {len(payload)} farm fields")
            except Exception as e:
                self._record_failure(FARM.collection, context.farm_id, e, context, errors)
        tracker.finish_step()

    async def _list_existing(
        self,
        descriptor: CollectionDescriptor,
        context: RestoreContext,
        errors: List[str]
    ) -> Optional[List[Dict[str, Any]]]:
        """Current documents of the target farm, or None when they cannot be read."""
        try:
            return await self._call(
                self._store.list_documents, f"list {descriptor.name}",
                descriptor.name, context.farm_id
            )
        except Exception as e:
            errors.append(f"{descriptor.name}: {_cause(e)}")
            logger.warning(f"Skipping '{descriptor.name}', existing documents could not be read: {e}")
            return None

    async def _write_records(
        self,
        descriptor: CollectionDescriptor,
        records: List[Dict[str, Any]],
        existing_ids: Set[str],
        farm_ids: Set[str],
        context: RestoreContext,
        tracker: ProgressTracker,
        errors: List[str]
    ) -> int:
        """
        Update known ids, create the rest; returns documents written.

        ``farm_ids`` are the ids the target farm held before the run. A new id
        that already exists in the store outside that set belongs to another
        farm and is skipped, never overwritten.
        """
        written = 0
        for record in records:
            document_id = descriptor.record_id(record) or "?"
            try:
                document_id, payload = descriptor.restore_payload(record, context)
                if document_id in existing_ids:
                    await self._call(
                        self._store.update_document, f"update {descriptor.name}/{document_id}",
                        descriptor.name, document_id, payload
                    )
                else:
                    if document_id not in farm_ids and await self._exists(descriptor, document_id):
                        raise DocumentConflictError("belongs to another farm")
                    await self._call(
                        self._store.create_document, f"create {descriptor.name}/{document_id}",
                        descriptor.name, document_id, payload
                    )
                    existing_ids.add(document_id)
                written += 1
            except Exception as e:
                self._record_failure(descriptor.name, document_id, e, context, errors)
            tracker.advance()
        return written

    async def _exists(self, descriptor: CollectionDescriptor, document_id: str) -> bool:
        document = await self._call(
            self._store.get_document, f"get {descriptor.name}/{document_id}",
            descriptor.name, document_id
        )
        return document is not None

    async def _merge_collection(
        self,
        descriptor: CollectionDescriptor,
        records: List[Dict[str, Any]],
        context: RestoreContext,
        tracker: ProgressTracker,
        errors: List[str]
    ) -> int:
        existing = await self._list_existing(descriptor, context, errors)
        if existing is None:
            return 0
        existing_ids = {document.get("id") for document in existing}

        written = await self._write_records(
            descriptor, records, existing_ids, set(existing_ids), context, tracker, errors
        )
        logger.debug(f"Merged {written}/{len(records)} documents into '{descriptor.name}'")
        return written

    async def _replace_collection(
        self,
        descriptor: CollectionDescriptor,
        records: List[Dict[str, Any]],
        context: RestoreContext,
        tracker: ProgressTracker,
        errors: List[str]
    ) -> int:
        if descriptor.replace_exempt:
            logger.info(f"'{descriptor.name}' is exempt from replace, left untouched")
            return 0

        existing = await self._list_existing(descriptor, context, errors)
        if existing is None:
            return 0

        failed = 0
        for document in existing:
            document_id = document.get("id")
            try:
                await self._call(
                    self._store.delete_document, f"delete {descriptor.name}/{document_id}",
                    descriptor.name, document_id
                )
            except Exception as e:
                failed += 1
                self._record_failure(descriptor.name, document_id, e, context, errors)
        logger.debug(f"Deleted {len(existing) - failed} documents from '{descriptor.name}'")

        farm_ids = {document.get("id") for document in existing}
        written = await self._write_records(descriptor, records, set(), farm_ids, context, tracker, errors)
        logger.debug(f"Recreated {written}/{len(records)} documents in '{descriptor.name}'")
        return written
