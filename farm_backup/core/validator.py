"""
Backup Validator

Decides whether an untrusted blob may be used for restore. Structural
problems are accumulated as errors (blocking); suspicious content is
reported as warnings (advisory). Validation never touches the store.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set

from pydantic import ValidationError

from ..config import FarmBackupConfig
from ..exceptions import BackupFormatError
from ..models.entities import BackupFile, ValidationResult
from ..models.parameters import ValidationPolicy
from ..utils.serialization import load_backup_bytes
from .codec import datetime_to_millis
from .registry import ANIMALS, DEFAULT_COLLECTIONS, CollectionDescriptor, check_registry

logger = logging.getLogger(__name__)

# Dangling-reference warnings listed per collection before summarizing
MAX_REFERENCE_WARNINGS = 20


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class BackupValidator:
    """
    Validator for uploaded backup files.

    Checks, in order:
    - File name suffix and size (oversized blobs are not parsed)
    - JSON parsing
    - Format version, metadata, collections and record ids
    - Declared counts against the actual arrays
    - Content heuristics: future export date, empty collections, another
      farm's backup, duplicate ids, dangling animal references

    The result depends only on the input and the policy, plus the
    validation time used for the future-date check.

    Example:
        ```python
        validator = BackupValidator()
        result = validator.validate(data, filename="respaldo.json", current_farm_id="farm_1")
        if not result.valid:
            for error in result.errors:
                print(error)
        ```
    """

    def __init__(
        self,
        config: Optional[FarmBackupConfig] = None,
        collections: Sequence[CollectionDescriptor] = DEFAULT_COLLECTIONS
    ):
        """
        Initialize backup validator.

        Args:
            config: Backup configuration (uses defaults if None)
            collections: Collection registry, in processing order
        """
        self.config = config or FarmBackupConfig()
        self._collections = check_registry(collections)
        self._names = [descriptor.name for descriptor in self._collections]
        logger.debug("BackupValidator initialized")

    def validate(
        self,
        data: bytes,
        policy: Optional[ValidationPolicy] = None,
        filename: Optional[str] = None,
        current_farm_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> ValidationResult:
        """
        Validate a candidate backup blob.

        Args:
            data: Raw file content
            policy: File-level constraints (from configuration if None)
            filename: Uploaded file name, checked against the required suffix
            current_farm_id: Farm the operator is restoring into, if known
            now: Validation time (current UTC time if None)

        Returns:
            ValidationResult; ``preview`` and ``backup`` are set only when valid
        """
        policy = policy or self.config.validation_policy()
        now_ms = datetime_to_millis(now or datetime.now(timezone.utc))
        errors: List[str] = []
        warnings: List[str] = []

        if filename is not None and not policy.accepts_filename(filename):
            errors.append(f"File must have the {policy.required_extension} extension")

        if len(data) > policy.max_size_bytes:
            errors.append(
                f"File is too large ({len(data) / (1024 * 1024):.1f} MB); "
                f"the limit is {policy.max_size_mb:.0f} MB"
            )
            return self._finish(errors, warnings)

        try:
            raw = load_backup_bytes(data)
        except BackupFormatError as e:
            errors.append(e.message)
            return self._finish(errors, warnings)

        if not isinstance(raw, dict):
            errors.append("Backup file must contain a JSON object")
            return self._finish(errors, warnings)

        self._check_version(raw, policy, errors)
        meta = self._check_meta(raw, now_ms, current_farm_id, errors, warnings)
        collections = self._check_collections(raw, errors, warnings)
        self._check_counts(meta, raw.get("collections"), collections, errors)
        self._check_farm(raw, errors, warnings)
        self._check_content(collections, warnings)

        backup = None
        if not errors:
            try:
                backup = BackupFile.model_validate(raw)
            except ValidationError as e:
                for detail in e.errors():
                    location = ".".join(str(part) for part in detail["loc"])
                    errors.append(f"{location}: {detail['msg']}")

        return self._finish(errors, warnings, backup)

    def _finish(
        self,
        errors: List[str],
        warnings: List[str],
        backup: Optional[BackupFile] = None
    ) -> ValidationResult:
        valid = not errors and backup is not None
        logger.info(
            f"Backup validation finished: valid={valid}, "
            f"{len(errors)} errors, {len(warnings)} warnings"
        )
        return ValidationResult(
            valid=valid,
            errors=errors,
            warnings=warnings,
            preview=backup.meta if valid else None,
            backup=backup if valid else None
        )

    def _check_version(self, raw: Dict[str, Any], policy: ValidationPolicy, errors: List[str]) -> None:
        if "formatVersion" not in raw:
            errors.append("formatVersion is missing")
            return
        version = raw["formatVersion"]
        if not _is_int(version) or version not in policy.supported_format_versions:
            errors.append(f"Unsupported format version: {version!r}")

    def _check_meta(
        self,
        raw: Dict[str, Any],
        now_ms: int,
        current_farm_id: Optional[str],
        errors: List[str],
        warnings: List[str]
    ) -> Optional[Dict[str, Any]]:
        meta = raw.get("meta")
        if meta is None:
            errors.append("meta is missing")
            return None
        if not isinstance(meta, dict):
            errors.append("meta must be an object")
            return None

        farm_id = meta.get("farmId")
        if not isinstance(farm_id, str) or not farm_id:
            errors.append("meta.farmId is missing")
        elif current_farm_id and farm_id != current_farm_id:
            warnings.append(
                f"Backup was exported from farm {farm_id}; its data will be imported into the current farm"
            )

        for key in ("farmName", "exportedBy"):
            if meta.get(key) is not None and not isinstance(meta[key], str):
                errors.append(f"meta.{key} must be a string")

        export_date = meta.get("exportDate")
        if export_date is None:
            warnings.append("meta.exportDate is missing")
        elif not _is_int(export_date):
            errors.append("meta.exportDate must be an integer timestamp")
        elif export_date > now_ms:
            warnings.append("Export date is in the future")

        counts = meta.get("counts")
        if counts is None:
            errors.append("meta.counts is missing")
        elif not isinstance(counts, dict):
            errors.append("meta.counts must be an object")
        else:
            for name, count in counts.items():
                if name not in self._names:
                    errors.append(f"meta.counts has an unknown collection: {name}")
                elif not _is_int(count) or count < 0:
                    errors.append(f"meta.counts.{name} must be a non-negative integer")

        return meta

    def _check_collections(
        self,
        raw: Dict[str, Any],
        errors: List[str],
        warnings: List[str]
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Return the collections whose arrays are well formed."""
        collections = raw.get("collections")
        if collections is None:
            errors.append("collections is missing")
            return {}
        if not isinstance(collections, dict):
            errors.append("collections must be an object")
            return {}

        for name in collections:
            if name not in self._names:
                errors.append(f"Unknown collection: {name}")

        usable: Dict[str, List[Dict[str, Any]]] = {}
        for descriptor in self._collections:
            if descriptor.name not in collections:
                warnings.append(f"Collection {descriptor.name} is missing from the file and will be skipped")
                continue
            records = collections[descriptor.name]
            if not isinstance(records, list):
                errors.append(f"collections.{descriptor.name} must be an array")
                continue

            well_formed = True
            seen: Set[str] = set()
            duplicates: Set[str] = set()
            for index, record in enumerate(records):
                if not isinstance(record, dict):
                    errors.append(f"collections.{descriptor.name}[{index}] must be an object")
                    well_formed = False
                    continue
                record_id = descriptor.record_id(record)
                if record_id is None:
                    errors.append(f"collections.{descriptor.name}[{index}] has no {descriptor.id_field}")
                    well_formed = False
                    continue
                if record_id in seen:
                    duplicates.add(record_id)
                seen.add(record_id)

            if duplicates:
                warnings.append(
                    f"Collection {descriptor.name} repeats ids: {', '.join(sorted(duplicates))}; "
                    f"the last record wins"
                )
            if well_formed:
                usable[descriptor.name] = records
        return usable

    def _check_counts(
        self,
        meta: Optional[Dict[str, Any]],
        raw_collections: Any,
        collections: Dict[str, List[Dict[str, Any]]],
        errors: List[str]
    ) -> None:
        """Compare declared counts with the arrays; an absent collection counts as 0."""
        if meta is None or not isinstance(meta.get("counts"), dict):
            return
        counts = meta["counts"]
        if isinstance(raw_collections, dict):
            for name in self._names:
                if name not in raw_collections and _is_int(counts.get(name)) and counts[name] != 0:
                    errors.append(
                        f"meta.counts.{name} is {counts[name]} but the file has no {name} collection"
                    )
        for name, records in collections.items():
            if name not in counts:
                errors.append(f"meta.counts.{name} is missing")
            elif _is_int(counts[name]) and counts[name] != len(records):
                errors.append(
                    f"meta.counts.{name} is {counts[name]} but the file has {len(records)} records"
                )

    def _check_farm(self, raw: Dict[str, Any], errors: List[str], warnings: List[str]) -> None:
        farm = raw.get("farm")
        if farm is None:
            warnings.append("File has no farm details; the farm will not be updated")
        elif not isinstance(farm, dict):
            errors.append("farm must be an object")

    def _check_content(self, collections: Dict[str, List[Dict[str, Any]]], warnings: List[str]) -> None:
        if collections and sum(len(records) for records in collections.values()) == 0:
            warnings.append("Backup contains no records")
        else:
            for descriptor in self._collections:
                if descriptor.expects_data and collections.get(descriptor.name) == []:
                    warnings.append(f"Collection {descriptor.name} is empty")

        if ANIMALS.name not in collections:
            return
        animal_ids = {ANIMALS.record_id(record) for record in collections[ANIMALS.name]}
        for descriptor in self._collections:
            if descriptor.name in collections and descriptor.animal_reference_paths:
                self._check_references(descriptor, collections[descriptor.name], animal_ids, warnings)

    def _check_references(
        self,
        descriptor: CollectionDescriptor,
        records: List[Mapping],
        animal_ids: Set[Optional[str]],
        warnings: List[str]
    ) -> None:
        dangling: List[str] = []
        for record in records:
            record_id = descriptor.record_id(record)
            for path, animal_id in descriptor.referenced_animal_ids(record):
                if animal_id not in animal_ids:
                    dangling.append(
                        f"{descriptor.name}/{record_id}: {path} references missing animal {animal_id}"
                    )

        warnings.extend(dangling[:MAX_REFERENCE_WARNINGS])
        if len(dangling) > MAX_REFERENCE_WARNINGS:
            warnings.append(
                f"{descriptor.name}: {len(dangling) - MAX_REFERENCE_WARNINGS} more missing animal references"
            )
