"""
Document Store Interface

Abstract async interface to the remote document store the backup core reads
from and writes to, plus an in-memory implementation used by tests and
local demos.

Documents are plain dicts keyed by collection name and document id. Reads
return the document id under ``"id"`` alongside the stored fields.
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models.entities import FARM_COLLECTION
from .codec import TimestampFactory

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """
    Store operations the backup core depends on.

    Adapters raise ``TransientStoreError`` for failures worth retrying;
    any other exception is treated as permanent for that call. Timeouts are
    the adapter's policy.

    Attributes:
        timestamp_factory: Builds the store's native timestamp type from epoch
                           milliseconds; None stores plain datetimes
    """

    timestamp_factory: Optional[TimestampFactory] = None

    @abstractmethod
    async def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Read one document, or None if it does not exist."""

    @abstractmethod
    async def list_documents(self, collection: str, farm_id: str) -> List[Dict[str, Any]]:
        """Read every document of a collection that belongs to a farm."""

    @abstractmethod
    async def create_document(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        """Write a whole document under the given id."""

    @abstractmethod
    async def update_document(self, collection: str, document_id: str, fields: Dict[str, Any]) -> None:
        """
        Write only the given top-level fields of an existing document.

        Fields not listed keep their stored values.
        """

    @abstractmethod
    async def delete_document(self, collection: str, document_id: str) -> None:
        """Delete one document."""


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed DocumentStore.

    Farm scoping uses one field per collection (``farmId`` unless
    ``scope_fields`` says otherwise). Stored and returned documents are deep
    copies, so callers never share state with the store.

    Example:
        ```python
        store = InMemoryDocumentStore()
        await store.create_document("farms", "farm_1", {"name": "La Esperanza"})
        await store.create_document("animals", "a1", {"farmId": "farm_1", "animalNumber": "OV-01"})
        animals = await store.list_documents("animals", "farm_1")
        ```
    """

    def __init__(
        self,
        scope_fields: Optional[Dict[str, str]] = None,
        timestamp_factory: Optional[TimestampFactory] = None
    ):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._scope_fields = scope_fields or {}
        self.timestamp_factory = timestamp_factory
        self._lock = asyncio.Lock()
        logger.debug("InMemoryDocumentStore initialized")

    def _collection(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def scope_field(self, collection: str) -> str:
        return self._scope_fields.get(collection, "farmId")

    async def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            stored = self._collection(collection).get(document_id)
            if stored is None:
                return None
            return {"id": document_id, **copy.deepcopy(stored)}

    async def list_documents(self, collection: str, farm_id: str) -> List[Dict[str, Any]]:
        if collection == FARM_COLLECTION:
            raise ValueError("Farms are read with get_document")
        field_name = self.scope_field(collection)
        async with self._lock:
            return [
                {"id": document_id, **copy.deepcopy(stored)}
                for document_id, stored in self._collection(collection).items()
                if stored.get(field_name) == farm_id
            ]

    async def create_document(self, collection: str, document_id: str, data: Dict[str, Any]) -> None:
        async with self._lock:
            self._collection(collection)[document_id] = copy.deepcopy(data)

    async def update_document(self, collection: str, document_id: str, fields: Dict[str, Any]) -> None:
        async with self._lock:
            stored = self._collection(collection).get(document_id)
            if stored is None:
                raise KeyError(f"No document '{document_id}' in '{collection}'")
            stored.update(copy.deepcopy(fields))

    async def delete_document(self, collection: str, document_id: str) -> None:
        async with self._lock:
            self._collection(collection).pop(document_id, None)

    def snapshot(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """Copy of every stored document in a collection, keyed by id."""
        return copy.deepcopy(self._collection(collection))

    def count(self, collection: str) -> int:
        return len(self._collection(collection))
