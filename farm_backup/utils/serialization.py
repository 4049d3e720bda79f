"""
Backup Serialization Utilities

Converts backup files to and from their transportable byte form and
suggests download filenames.
"""

import json
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Optional

from ..exceptions import BackupFormatError
from ..models.entities import BackupFile, BackupMeta

logger = logging.getLogger(__name__)

FILENAME_PREFIX = "mi-granja-respaldo"


def dump_backup_bytes(backup: BackupFile, indent: Optional[int] = 2) -> bytes:
    """
    Serialize a backup file to UTF-8 JSON.

    Args:
        backup: Backup file to serialize
        indent: JSON indentation (None for compact output)

    Returns:
        Encoded backup
    """
    text = json.dumps(backup.to_portable_dict(), indent=indent, ensure_ascii=False)
    return text.encode("utf-8")


def load_backup_bytes(data: bytes) -> Any:
    """
    Parse backup bytes as JSON.

    A leading UTF-8 byte order mark is accepted. The result is whatever the
    JSON holds; checking its shape is the validator's job.

    Raises:
        BackupFormatError: If the bytes are not UTF-8 JSON or nest too deeply
    """
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise BackupFormatError("Backup file is not valid UTF-8 text", cause=str(e)) from e

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise BackupFormatError(
            f"Backup file is not valid JSON (line {e.lineno}, column {e.colno})",
            cause=e.msg
        ) from e
    except RecursionError as e:
        raise BackupFormatError("Backup file is nested too deeply to parse", cause=str(e)) from e
    except ValueError as e:
        raise BackupFormatError("Backup file is not valid JSON", cause=str(e)) from e


def slugify(value: str) -> str:
    """Lower-case a name and join its words with hyphens."""
    return re.sub(r"\s+", "-", value.strip().lower())


def suggest_backup_filename(meta: BackupMeta, today: Optional[date] = None) -> str:
    """
    Suggest a download filename such as ``mi-granja-respaldo-la-esperanza-2024-01-15.json``.

    The date is the export date when known, otherwise ``today`` (UTC today
    by default).
    """
    farm_slug = slugify(meta.farm_name or "") or "granja"
    export_time = meta.export_datetime
    if export_time is not None:
        day = export_time.date()
    else:
        day = today or datetime.now(timezone.utc).date()
    return f"{FILENAME_PREFIX}-{farm_slug}-{day.isoformat()}.json"
