"""
Farm Backup Entities

Defines the data models exchanged by the backup components: the portable
backup file and its metadata, validation and restore results, and progress
snapshots.

The wire format uses camelCase keys; the models expose snake_case attributes
and accept either spelling on input.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Farm-scoped collections in their fixed processing order
COLLECTION_NAMES = (
    "animals",
    "breedingRecords",
    "reminders",
    "weightRecords",
    "farmInvitations",
)

# Collection holding the farm entities themselves
FARM_COLLECTION = "farms"

CURRENT_FORMAT_VERSION = 1


class RestoreMode(str, Enum):
    """
    Reconciliation strategy applied by a restore.

    Modes:
        MERGE: Create missing documents and field-update existing ones;
               nothing is deleted
        REPLACE: Delete the target farm's documents in each collection and
                 recreate them from the backup (farm entity and invitations
                 are exempt from deletion)
    """
    MERGE = "merge"
    REPLACE = "replace"


class OperationPhase(str, Enum):
    """Operation reported by a progress snapshot."""
    EXPORT = "export"
    RESTORE = "restore"


class BackupMeta(BaseModel):
    """
    Metadata block of a backup file.

    Attributes:
        farm_id: Identifier of the farm the backup was taken from
        farm_name: Display name of that farm (informational only)
        export_date: Export time as epoch milliseconds
        exported_by: Identifier of the operator who exported it
        counts: Number of records per collection at export time

    Example:
        ```python
        meta = BackupMeta(
            farm_id="farm_1",
            farm_name="La Esperanza",
            export_date=1700000000000,
            counts={"animals": 12, "breedingRecords": 3}
        )
        ```
    """
    model_config = ConfigDict(populate_by_name=True)

    farm_id: str = Field(..., alias="farmId", min_length=1, description="Source farm identifier")
    farm_name: Optional[str] = Field(default=None, alias="farmName", description="Source farm display name")
    export_date: Optional[int] = Field(default=None, alias="exportDate", description="Export time (epoch ms)")
    exported_by: Optional[str] = Field(default=None, alias="exportedBy", description="Exporting operator")
    counts: Dict[str, int] = Field(default_factory=dict, description="Records per collection")

    @property
    def export_datetime(self) -> Optional[datetime]:
        """Export time as an aware UTC datetime."""
        if self.export_date is None:
            return None
        return datetime.fromtimestamp(self.export_date / 1000.0, tz=timezone.utc)

    @property
    def total_records(self) -> int:
        """Total number of records across all collections."""
        return sum(self.counts.values())


class BackupFile(BaseModel):
    """
    Portable snapshot of one farm.

    Only the recognized farm-scoped collections may appear under
    ``collections``. Record shapes belong to the domain layer; here a record
    is a JSON object with an id and zero or more date fields stored as epoch
    milliseconds.

    Attributes:
        format_version: Backup format identifier
        meta: Backup metadata
        farm: Portable snapshot of the farm entity (optional)
        collections: Records per collection name
    """
    model_config = ConfigDict(populate_by_name=True)

    format_version: int = Field(default=CURRENT_FORMAT_VERSION, alias="formatVersion")
    meta: BackupMeta
    farm: Optional[Dict[str, Any]] = Field(default=None, description="Farm entity snapshot")
    collections: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)

    @field_validator("collections")
    @classmethod
    def validate_collection_names(cls, v):
        """Reject collections outside the recognized set."""
        unknown = [name for name in v if name not in COLLECTION_NAMES]
        if unknown:
            raise ValueError(f"Unknown collections: {', '.join(sorted(unknown))}")
        return v

    def records(self, collection_name: str) -> List[Dict[str, Any]]:
        """Records of a collection, empty when the collection is absent."""
        return self.collections.get(collection_name, [])

    def has_collection(self, collection_name: str) -> bool:
        """Check whether the collection is present in the file."""
        return collection_name in self.collections

    def to_portable_dict(self) -> Dict[str, Any]:
        """Build the wire representation (camelCase keys)."""
        data: Dict[str, Any] = {
            "formatVersion": self.format_version,
            "meta": self.meta.model_dump(by_alias=True, exclude_none=True),
        }
        if self.farm is not None:
            data["farm"] = self.farm
        data["collections"] = {
            name: self.collections[name]
            for name in COLLECTION_NAMES
            if name in self.collections
        }
        return data


class ValidationResult(BaseModel):
    """
    Outcome of validating an untrusted backup blob.

    Attributes:
        valid: Whether the blob may be used for restore
        errors: Structural problems; any entry forces ``valid`` to False
        warnings: Advisory findings that never block restore
        preview: Backup metadata, present only when valid
        backup: Parsed backup file, present only when valid (not serialized)
    """
    valid: bool = Field(..., description="Whether restore may proceed")
    errors: List[str] = Field(default_factory=list, description="Blocking errors")
    warnings: List[str] = Field(default_factory=list, description="Advisory warnings")
    preview: Optional[BackupMeta] = Field(default=None, description="Metadata preview")
    backup: Optional[BackupFile] = Field(default=None, exclude=True, repr=False)

    @model_validator(mode="after")
    def _errors_block_validity(self):
        if self.errors:
            self.valid = False
        if not self.valid:
            self.preview = None
            self.backup = None
        return self

    @property
    def has_errors(self) -> bool:
        """Check if any errors were encountered."""
        return len(self.errors) > 0

    @property
    def has_warnings(self) -> bool:
        """Check if any warnings were encountered."""
        return len(self.warnings) > 0


class RestoreResult(BaseModel):
    """
    Outcome of a restore run.

    ``counts`` reports documents actually written (created or updated) per
    collection, so a partially failed run still shows how much landed.

    Attributes:
        success: True only when ``errors`` is empty
        counts: Documents written per collection
        errors: One entry per failed document or failed collection step
        mode: Reconciliation mode used
        farm_id: Target farm
        started_at: When the run started
        finished_at: When the run finished

    Example:
        ```python
        result = RestoreResult(
            success=True,
            counts={"animals": 1},
            errors=[],
            mode=RestoreMode.MERGE,
            farm_id="farm_1"
        )
        ```
    """
    success: bool = Field(default=True, description="Whether every write succeeded")
    counts: Dict[str, int] = Field(default_factory=dict, description="Documents written per collection")
    errors: List[str] = Field(default_factory=list, description="Failure descriptions")
    mode: Optional[RestoreMode] = Field(default=None, description="Reconciliation mode")
    farm_id: Optional[str] = Field(default=None, description="Target farm")
    started_at: Optional[datetime] = Field(default=None, description="Run start time")
    finished_at: Optional[datetime] = Field(default=None, description="Run end time")

    @model_validator(mode="after")
    def _success_tracks_errors(self):
        self.success = len(self.errors) == 0
        return self

    @property
    def total_written(self) -> int:
        """Total documents written across collections."""
        return sum(self.counts.values())

    @property
    def execution_time_ms(self) -> Optional[float]:
        """Run duration in milliseconds."""
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds() * 1000


@dataclass
class RestoreProgress:
    """
    Progress snapshot delivered to progress callbacks.

    Attributes:
        phase: Operation being reported (export or restore)
        message: Short human-readable description of the current step
        percent: Completion percentage (0-100), never decreasing within a run
        collection_name: Collection being processed, if any
    """
    phase: OperationPhase
    message: str
    percent: int = 0
    collection_name: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        """Check if the operation reported completion."""
        return self.percent >= 100
