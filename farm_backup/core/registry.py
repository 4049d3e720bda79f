"""
Collection Registry

Enumerates the farm-scoped collections a backup carries, in their fixed
processing order, together with how each one is decoded, checked and
prepared for restore. Components iterate this registry rather than whatever
keys a file happens to contain.
"""

import hashlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple

from ..models.entities import COLLECTION_NAMES, FARM_COLLECTION
from .codec import DateCodec, datetime_to_millis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestoreContext:
    """
    Per-run values the restore preparation needs.

    Attributes:
        farm_id: Target farm
        operator_id: Restoring user, if known
        now: Run clock reading (aware datetime)
        codec: Codec used to build domain dates
        reset_invitations: Renew invitations as pending ones
        invitation_ttl_days: Validity of renewed invitations
    """
    farm_id: str
    operator_id: Optional[str]
    now: datetime
    codec: DateCodec
    reset_invitations: bool = True
    invitation_ttl_days: int = 7


# (payload, document_id, context) -> payload
PrepareHook = Callable[[Dict[str, Any], str, RestoreContext], Dict[str, Any]]


def iter_path_values(record: Any, path: str) -> Iterator[Any]:
    """
    Yield the values found at a dotted path.

    A segment ending in ``[]`` walks every element of a list, so
    ``"femaleBreedingInfo[].offspring[]"`` yields each offspring id of each
    female entry. Missing keys yield nothing.
    """
    yield from _walk(record, path.split("."))


def _walk(value: Any, segments: List[str]) -> Iterator[Any]:
    if not segments:
        yield value
        return
    head, rest = segments[0], segments[1:]
    many = head.endswith("[]")
    key = head[:-2] if many else head
    if not isinstance(value, Mapping) or key not in value:
        return
    child = value[key]
    if many:
        if isinstance(child, list):
            for item in child:
                yield from _walk(item, rest)
    else:
        yield from _walk(child, rest)


def invitation_token(farm_id: str, invitation_id: str, expires_at_ms: int) -> str:
    """Invitation token bound to the farm, the invitation and its expiry."""
    digest = hashlib.sha256(f"{farm_id}:{invitation_id}:{expires_at_ms}".encode("utf-8")).hexdigest()
    return f"{farm_id}_{digest[:16]}"


def renew_invitation(payload: Dict[str, Any], document_id: str, context: RestoreContext) -> Dict[str, Any]:
    """
    Turn a restored invitation into a fresh pending one.

    Invitees must accept again: acceptance fields are dropped, the token is
    regenerated and the expiry restarts from the run clock.
    """
    if not context.reset_invitations:
        return payload

    now_ms = datetime_to_millis(context.now)
    expires_ms = datetime_to_millis(context.now + timedelta(days=context.invitation_ttl_days))

    payload["status"] = "pending"
    payload["farmId"] = context.farm_id
    if context.operator_id:
        payload["invitedBy"] = context.operator_id
    payload["token"] = invitation_token(context.farm_id, document_id, expires_ms)
    payload["expiresAt"] = context.codec.make_date(expires_ms)
    payload["createdAt"] = context.codec.make_date(now_ms)
    payload["updatedAt"] = context.codec.make_date(now_ms)
    for accepted_field in ("userId", "acceptedAt", "rejectedAt"):
        payload.pop(accepted_field, None)
    return payload


@dataclass(frozen=True)
class CollectionDescriptor:
    """
    How one farm-scoped collection is exported, validated and restored.

    Attributes:
        name: Collection name in the store and in the backup file
        label: Plural noun used in progress messages
        id_field: Record field holding the document id
        date_fields: Field names (at any depth) holding dates
        animal_reference_paths: Paths whose values are animal ids
        replace_exempt: Left untouched by replace mode (no deletes, no creates)
        expects_data: An empty array is worth a warning
        prepare: Hook applied to the payload right before it is written
    """
    name: str
    label: str
    id_field: str = "id"
    date_fields: FrozenSet[str] = frozenset({"createdAt", "updatedAt"})
    animal_reference_paths: Tuple[str, ...] = ()
    replace_exempt: bool = False
    expects_data: bool = False
    prepare: Optional[PrepareHook] = field(default=None, compare=False)

    def record_id(self, record: Mapping) -> Optional[str]:
        """Document id of a record, or None when missing or not a string."""
        value = record.get(self.id_field)
        if isinstance(value, str) and value:
            return value
        return None

    def decode(self, record: Mapping, codec: DateCodec) -> Dict[str, Any]:
        """Decode a portable record into its domain form."""
        return codec.to_domain(record, self.date_fields)

    def referenced_animal_ids(self, record: Mapping) -> Iterator[Tuple[str, str]]:
        """Yield ``(path, animal_id)`` for every animal reference in a record."""
        for path in self.animal_reference_paths:
            for value in iter_path_values(record, path):
                if isinstance(value, str) and value:
                    yield path, value

    def restore_payload(self, record: Mapping, context: RestoreContext) -> Tuple[str, Dict[str, Any]]:
        """
        Build the document id and the fields to write for a backup record.

        The id field is not written as data. Records that carry ``farmId``
        are moved to the target farm, and ``farmerId`` is reassigned to the
        restoring operator when one is known.

        Raises:
            ValueError: If the record has no usable id
        """
        document_id = self.record_id(record)
        if document_id is None:
            raise ValueError(f"record has no '{self.id_field}'")

        payload = self.decode(record, context.codec)
        payload.pop(self.id_field, None)
        if "farmId" in payload:
            payload["farmId"] = context.farm_id
        if "farmerId" in payload and context.operator_id:
            payload["farmerId"] = context.operator_id
        if self.prepare is not None:
            payload = self.prepare(payload, document_id, context)
        return document_id, payload


@dataclass(frozen=True)
class FarmDescriptor:
    """
    The farm entity: snapshotted on export, only ever field-updated on restore.

    Attributes:
        collection: Store collection holding farms
        date_fields: Field names holding dates
        protected_fields: Fields never written back (identity and membership)
    """
    collection: str = FARM_COLLECTION
    date_fields: FrozenSet[str] = frozenset({"createdAt", "updatedAt"})
    protected_fields: FrozenSet[str] = frozenset({
        "id",
        "ownerId",
        "collaborators",
        "collaboratorsIds",
        "collaboratorsEmails",
    })

    def update_payload(self, snapshot: Mapping, codec: DateCodec) -> Dict[str, Any]:
        """Fields of a farm snapshot that a restore may write."""
        payload = codec.to_domain(snapshot, self.date_fields)
        return {key: value for key, value in payload.items() if key not in self.protected_fields}


ANIMALS = CollectionDescriptor(
    name="animals",
    label="animals",
    date_fields=frozenset({
        "createdAt", "updatedAt", "birthDate", "statusAt", "weanedAt",
        "date", "resolvedDate", "nextDueDate", "lostAt", "foundAt",
        "originalTimestamp",
    }),
    animal_reference_paths=("motherId", "fatherId"),
    expects_data=True,
)

BREEDING_RECORDS = CollectionDescriptor(
    name="breedingRecords",
    label="breeding records",
    date_fields=frozenset({
        "createdAt", "updatedAt", "breedingDate", "pregnancyConfirmedDate",
        "expectedBirthDate", "actualBirthDate", "timestamp",
    }),
    animal_reference_paths=(
        "maleId",
        "femaleBreedingInfo[].femaleId",
        "femaleBreedingInfo[].offspring[]",
    ),
)

REMINDERS = CollectionDescriptor(
    name="reminders",
    label="reminders",
    date_fields=frozenset({"createdAt", "updatedAt", "dueDate"}),
)

WEIGHT_RECORDS = CollectionDescriptor(
    name="weightRecords",
    label="weight records",
    date_fields=frozenset({"createdAt", "updatedAt", "date"}),
    animal_reference_paths=("animalId",),
)

FARM_INVITATIONS = CollectionDescriptor(
    name="farmInvitations",
    label="invitations",
    date_fields=frozenset({
        "createdAt", "updatedAt", "expiresAt", "invitedAt", "acceptedAt", "rejectedAt",
    }),
    replace_exempt=True,
    prepare=renew_invitation,
)

DEFAULT_COLLECTIONS: Tuple[CollectionDescriptor, ...] = (
    ANIMALS,
    BREEDING_RECORDS,
    REMINDERS,
    WEIGHT_RECORDS,
    FARM_INVITATIONS,
)

FARM = FarmDescriptor()


def check_registry(collections: Sequence[CollectionDescriptor]) -> Tuple[CollectionDescriptor, ...]:
    """
    Verify a registry before use.

    Names must be unique and part of the backup format, and descriptors must
    follow the format's collection order.

    Raises:
        ValueError: If the registry is inconsistent
    """
    names = [descriptor.name for descriptor in collections]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate collections in registry: {names}")
    unknown = [name for name in names if name not in COLLECTION_NAMES]
    if unknown:
        raise ValueError(f"Collections not supported by the backup format: {unknown}")
    positions = [COLLECTION_NAMES.index(name) for name in names]
    if positions != sorted(positions):
        raise ValueError(f"Registry must follow the order {list(COLLECTION_NAMES)}")
    return tuple(collections)


def descriptor_by_name(
    name: str,
    collections: Sequence[CollectionDescriptor] = DEFAULT_COLLECTIONS
) -> Optional[CollectionDescriptor]:
    """Look up a descriptor by collection name."""
    for descriptor in collections:
        if descriptor.name == name:
            return descriptor
    return None
