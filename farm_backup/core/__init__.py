"""
Farm Backup Core

Core classes for backup export, validation and restore: the date codec, the
collection registry, the store interface and the components built on them.
"""

from .codec import DateCodec, PortableDate, SupportsPortableDate, to_domain, to_portable
from .registry import (
    CollectionDescriptor,
    FarmDescriptor,
    RestoreContext,
    DEFAULT_COLLECTIONS,
    FARM,
    ANIMALS,
    BREEDING_RECORDS,
    REMINDERS,
    WEIGHT_RECORDS,
    FARM_INVITATIONS,
    descriptor_by_name
)
from .store import DocumentStore, InMemoryDocumentStore
from .exporter import BackupExporter
from .validator import BackupValidator
from .reconciler import RestoreReconciler
from .manager import BackupManager

__all__ = [
    # Codec
    'DateCodec',
    'PortableDate',
    'SupportsPortableDate',
    'to_domain',
    'to_portable',

    # Registry
    'CollectionDescriptor',
    'FarmDescriptor',
    'RestoreContext',
    'DEFAULT_COLLECTIONS',
    'FARM',
    'ANIMALS',
    'BREEDING_RECORDS',
    'REMINDERS',
    'WEIGHT_RECORDS',
    'FARM_INVITATIONS',
    'descriptor_by_name',

    # Store
    'DocumentStore',
    'InMemoryDocumentStore',

    # Components
    'BackupExporter',
    'BackupValidator',
    'RestoreReconciler',
    'BackupManager'
]
