"""
Progress Tracking Utilities

Turns per-step work (the farm update, each collection's documents) into a
single percentage that never goes backwards and only reaches 100 when the
operation reports completion.
"""

import logging
from typing import Callable, Dict, List, Optional

from ..models.entities import OperationPhase, RestoreProgress

logger = logging.getLogger(__name__)

# (message, percent_complete) -> None
ProgressCallback = Callable[[str, int], None]


class ProgressTracker:
    """
    Weighted, monotonic progress for export and restore runs.

    Steps are planned up front with a weight (usually their document count).
    The percentage is the completed share of the total weight, held below
    100 until ``complete`` is called. A callback that raises is logged and
    otherwise ignored.

    Example:
        ```python
        tracker = ProgressTracker(OperationPhase.RESTORE, callback=print)
        tracker.plan("farm", 1)
        tracker.plan("animals", 120)

        tracker.start_step("farm", "Restoring farm details...")
        tracker.finish_step()
        tracker.start_step("animals", "Restoring animals...")
        tracker.advance(25)
        tracker.finish_step()
        tracker.complete("Restore completed")
        ```
    """

    def __init__(
        self,
        phase: OperationPhase,
        callback: Optional[ProgressCallback] = None,
        every_n: int = 25
    ):
        """
        Initialize progress tracker.

        Args:
            phase: Operation being tracked
            callback: Receives ``(message, percent)`` on every report
            every_n: Report after this many units within a step
        """
        self.phase = phase
        self._callback = callback
        self._every_n = max(1, every_n)

        self._weights: Dict[str, int] = {}
        self._finished_weight = 0
        self._current_step: Optional[str] = None
        self._current_units = 0
        self._units_since_report = 0
        self._last_percent = 0
        self._completed = False

        self.current: Optional[RestoreProgress] = None
        self.history: List[RestoreProgress] = []

    @property
    def total_weight(self) -> int:
        return sum(self._weights.values())

    @property
    def percent(self) -> int:
        """Current percentage (0-100)."""
        return self._last_percent

    @property
    def is_complete(self) -> bool:
        return self._completed

    def plan(self, step: str, weight: int) -> None:
        """Register a step and its share of the work (minimum 1)."""
        self._weights[step] = max(1, weight)

    def start_step(self, step: str, message: str, collection_name: Optional[str] = None) -> None:
        """Begin a planned step and report it."""
        if step not in self._weights:
            self.plan(step, 1)
        self._current_step = step
        self._current_units = 0
        self._units_since_report = 0
        self._emit(message, collection_name)

    def advance(self, units: int = 1, message: Optional[str] = None) -> None:
        """
        Record work done in the current step.

        Reports when a message is given or every ``every_n`` units.
        """
        self._current_units += units
        self._units_since_report += units
        if message is not None or self._units_since_report >= self._every_n:
            self._units_since_report = 0
            self._emit(message or (self.current.message if self.current else ""), self._current_collection())

    def finish_step(self) -> None:
        """Count the current step as fully done."""
        if self._current_step is not None:
            self._finished_weight += self._weights[self._current_step]
        self._current_step = None
        self._current_units = 0

    def complete(self, message: str) -> None:
        """Report completion at 100 percent, whatever the outcome."""
        self._completed = True
        self._emit(message, None)
        logger.debug(f"{self.phase.value} progress complete: {message}")

    def _current_collection(self) -> Optional[str]:
        return self.current.collection_name if self.current else None

    def _compute_percent(self) -> int:
        if self._completed:
            return 100
        total = self.total_weight
        if total <= 0:
            return self._last_percent
        done = self._finished_weight
        if self._current_step is not None:
            done += min(self._current_units, self._weights[self._current_step])
        return min(99, int(done * 99 / total))

    def _emit(self, message: str, collection_name: Optional[str]) -> None:
        self._last_percent = max(self._last_percent, self._compute_percent())
        snapshot = RestoreProgress(
            phase=self.phase,
            message=message,
            percent=self._last_percent,
            collection_name=collection_name
        )
        self.current = snapshot
        self.history.append(snapshot)

        if self._callback is None:
            return
        try:
            self._callback(message, self._last_percent)
        except Exception as e:
            logger.warning(f"Progress callback failed at {self._last_percent}%: {e}")
