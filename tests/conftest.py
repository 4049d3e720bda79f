"""Pytest configuration and fixtures for farm_backup tests."""

import asyncio
import copy
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

from farm_backup import BackupManager, FarmBackupConfig, InMemoryDocumentStore, TransientStoreError
from farm_backup.models.entities import COLLECTION_NAMES

FARM_ID = "farm_1"
OTHER_FARM_ID = "farm_2"
OPERATOR_ID = "user_1"

FIXED_NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
# 2023-11-14T22:13:20Z
EXPORT_MS = 1700000000000


class FlakyStore(InMemoryDocumentStore):
    """In-memory store that can fail chosen operations and yields on every call."""

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self.failures: Dict[Tuple[str, str, Optional[str]], Exception] = {}
        self.transient_failures: Dict[Tuple[str, str, Optional[str]], int] = {}
        self.calls: List[Tuple[str, str, Optional[str]]] = []

    def fail(self, operation: str, collection: str, document_id: Optional[str] = None,
             error: Optional[Exception] = None) -> None:
        """Fail every call of an operation (on one document, or on all when id is None)."""
        self.failures[(operation, collection, document_id)] = error or RuntimeError("write rejected")

    def fail_transiently(self, operation: str, collection: str, document_id: Optional[str] = None,
                         times: int = 1) -> None:
        self.transient_failures[(operation, collection, document_id)] = times

    async def _check(self, operation: str, collection: str, document_id: Optional[str]) -> None:
        self.calls.append((operation, collection, document_id))
        await asyncio.sleep(0)
        for key in ((operation, collection, document_id), (operation, collection, None)):
            if self.transient_failures.get(key, 0) > 0:
                self.transient_failures[key] -= 1
                raise TransientStoreError("store temporarily unavailable", operation=operation)
            if key in self.failures:
                raise self.failures[key]

    async def get_document(self, collection, document_id):
        await self._check("get", collection, document_id)
        return await super().get_document(collection, document_id)

    async def list_documents(self, collection, farm_id):
        await self._check("list", collection, None)
        return await super().list_documents(collection, farm_id)

    async def create_document(self, collection, document_id, data):
        await self._check("create", collection, document_id)
        await super().create_document(collection, document_id, data)

    async def update_document(self, collection, document_id, fields):
        await self._check("update", collection, document_id)
        await super().update_document(collection, document_id, fields)

    async def delete_document(self, collection, document_id):
        await self._check("delete", collection, document_id)
        await super().delete_document(collection, document_id)

    def operations(self, operation: str, collection: str) -> List[Optional[str]]:
        """Document ids of the recorded calls of one operation on one collection."""
        return [doc_id for op, coll, doc_id in self.calls if op == operation and coll == collection]


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


SAMPLE_FARM = {
    "name": "La Esperanza",
    "description": "Ovinos y caprinos",
    "ownerId": OPERATOR_ID,
    "collaboratorsIds": ["user_2"],
    "createdAt": utc(2023, 1, 1),
    "updatedAt": utc(2023, 6, 1),
}

SAMPLE_DOCUMENTS = {
    "animals": {
        "a1": {
            "farmId": FARM_ID,
            "farmerId": OPERATOR_ID,
            "animalNumber": "OV-01",
            "type": "oveja",
            "birthDate": utc(2023, 11, 14, 22, 13, 20),
            "weight": 42,
            "createdAt": utc(2023, 11, 15),
        },
        "a2": {
            "farmId": FARM_ID,
            "farmerId": OPERATOR_ID,
            "animalNumber": "OV-02",
            "motherId": "a1",
            "birthDate": utc(2024, 1, 2),
            "createdAt": utc(2024, 1, 3),
        },
    },
    "breedingRecords": {
        "b1": {
            "farmId": FARM_ID,
            "maleId": "a2",
            "breedingDate": utc(2024, 1, 5),
            "femaleBreedingInfo": [
                {"femaleId": "a1", "expectedBirthDate": utc(2024, 6, 1), "offspring": []},
            ],
        },
    },
    "reminders": {
        "r1": {"farmId": FARM_ID, "title": "Desparasitar", "dueDate": utc(2024, 2, 1), "completed": False},
    },
    "weightRecords": {
        "w1": {"farmId": FARM_ID, "animalId": "a1", "weight": 40, "date": utc(2024, 1, 10)},
    },
    "farmInvitations": {
        "i1": {
            "farmId": FARM_ID,
            "email": "ana@example.com",
            "role": "collaborator",
            "status": "accepted",
            "userId": "user_3",
            "token": "old-token",
            "acceptedAt": utc(2023, 12, 1),
            "createdAt": utc(2023, 11, 30),
        },
    },
}


async def seed_store(store: InMemoryDocumentStore, with_records: bool = True) -> None:
    await store.create_document("farms", FARM_ID, copy.deepcopy(SAMPLE_FARM))
    await store.create_document("farms", OTHER_FARM_ID, {"name": "El Roble", "ownerId": "user_9"})
    if with_records:
        for collection, documents in SAMPLE_DOCUMENTS.items():
            for document_id, data in documents.items():
                await store.create_document(collection, document_id, copy.deepcopy(data))


@pytest.fixture
def config() -> FarmBackupConfig:
    """Configuration with instant retries."""
    return FarmBackupConfig(max_retries=2, retry_delay_seconds=0, retry_max_delay_seconds=0)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest_asyncio.fixture
async def store() -> FlakyStore:
    """Store holding the sample farm and its records."""
    store = FlakyStore()
    await seed_store(store)
    store.calls.clear()
    return store


@pytest_asyncio.fixture
async def empty_store() -> FlakyStore:
    """Store holding the farms but no farm-scoped records."""
    store = FlakyStore()
    await seed_store(store, with_records=False)
    store.calls.clear()
    return store


@pytest.fixture
def manager(store: FlakyStore, config: FarmBackupConfig, clock) -> BackupManager:
    return BackupManager(store, config=config, clock=clock)


@pytest.fixture
def make_backup_dict() -> Callable[..., Dict[str, Any]]:
    """
    Factory for portable backup dicts.

    Collections default to a single animal; ``meta.counts`` is derived from
    the collections given, and any keyword named after a meta key overrides it.
    """

    def _make(collections: Optional[Dict[str, List[Dict[str, Any]]]] = None,
              farm: Any = "default", **meta_overrides: Any) -> Dict[str, Any]:
        if collections is None:
            collections = {
                "animals": [{"id": "a1", "farmId": FARM_ID, "animalNumber": "OV-01", "birthDate": EXPORT_MS}],
                "breedingRecords": [],
                "reminders": [],
                "weightRecords": [],
                "farmInvitations": [],
            }
        meta = {
            "farmId": FARM_ID,
            "farmName": "La Esperanza",
            "exportDate": EXPORT_MS,
            "counts": {name: len(records) for name, records in collections.items()
                       if name in COLLECTION_NAMES and isinstance(records, list)},
        }
        meta.update(meta_overrides)
        data = {"formatVersion": 1, "meta": meta, "collections": collections}
        if farm == "default":
            data["farm"] = {"name": "La Esperanza", "createdAt": EXPORT_MS}
        elif farm is not None:
            data["farm"] = farm
        return data

    return _make


@pytest.fixture
def encode() -> Callable[[Any], bytes]:
    return lambda data: json.dumps(data).encode("utf-8")
