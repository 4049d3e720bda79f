"""
Farm Backup Utilities

Progress tracking, transient-error retry and file helpers.
"""

from .progress import ProgressCallback, ProgressTracker
from .retry import call_with_retry
from .serialization import dump_backup_bytes, load_backup_bytes, suggest_backup_filename

__all__ = [
    'ProgressCallback',
    'ProgressTracker',
    'call_with_retry',
    'dump_backup_bytes',
    'load_backup_bytes',
    'suggest_backup_filename'
]
