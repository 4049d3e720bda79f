"""
Restore Run State

Explicit state of a restore run for one farm: idle, running or done. The
caller owns a ``RestoreRun`` per farm and hands it to the reconciler, which
refuses to start while the run is already in progress.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from .entities import RestoreResult
from ..exceptions import RestoreInProgressError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunIdle:
    """No restore has been started."""


@dataclass(frozen=True)
class RunRunning:
    """A restore is in progress."""
    started_at: datetime


@dataclass(frozen=True)
class RunDone:
    """The last restore finished with the given result."""
    result: RestoreResult


RunState = Union[RunIdle, RunRunning, RunDone]


class RestoreRun:
    """
    Advisory guard for restore runs against a single farm.

    Not a distributed lock: it prevents the same caller from starting a second
    reconciliation while one is running. A finished run can be started again.

    Example:
        ```python
        run = RestoreRun("farm_1")
        run.begin(datetime.now(timezone.utc))
        ...
        run.finish(result)
        assert isinstance(run.state, RunDone)
        ```
    """

    def __init__(self, farm_id: str):
        self.farm_id = farm_id
        self.state: RunState = RunIdle()

    @property
    def is_running(self) -> bool:
        return isinstance(self.state, RunRunning)

    @property
    def last_result(self) -> Optional[RestoreResult]:
        if isinstance(self.state, RunDone):
            return self.state.result
        return None

    def begin(self, started_at: datetime) -> None:
        """
        Move to the running state.

        Raises:
            RestoreInProgressError: If a run is already in progress
        """
        if isinstance(self.state, RunRunning):
            raise RestoreInProgressError(
                "A restore is already running for this farm",
                farm_id=self.farm_id,
                started_at=self.state.started_at
            )
        self.state = RunRunning(started_at=started_at)
        logger.debug(f"Restore run started for farm {self.farm_id}")

    def finish(self, result: RestoreResult) -> None:
        """Move to the done state with the run's result."""
        self.state = RunDone(result=result)
        logger.debug(f"Restore run finished for farm {self.farm_id} (success={result.success})")
