"""Progress events emitted by the batch orchestrator."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from mermex.constants import RUN_STATE_LABELS, RunState
from mermex.services.schemas import JobOutcome


@dataclass(frozen=True)
class ProgressEvent:
    """Typed event emitted on each state change and after each job."""

    run_id: str
    state: RunState
    completed: int
    total: int
    message: str = ""
    outcome: JobOutcome | None = None

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0 if self.state == RunState.COMPLETED else 0.0
        return round(100.0 * self.completed / self.total, 1)

    @property
    def label(self) -> str:
        """User-friendly display label from RUN_STATE_LABELS."""
        return RUN_STATE_LABELS[self.state]


type ProgressCallback = Callable[[ProgressEvent], None]
