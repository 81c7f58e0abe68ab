"""
Error taxonomy for reordering and reconciliation.

Structural errors (cycles, bad anchors) are raised before any mutation.
Reconciliation failures are raised after the pre-operation snapshot has
been restored. Drift is never raised; see ``DriftWarning``.
"""

from typing import List, Optional, Sequence

from pydantic import BaseModel

from tasktree.models import RelativePositionUpdate


class ReorderError(Exception):
    """Base exception for reorder errors."""
    pass


class CircularNestingError(ReorderError):
    """Raised when a move would make a task its own ancestor."""

    def __init__(self, task_id: str, parent_id: str) -> None:
        self.task_id = task_id
        self.parent_id = parent_id
        if task_id == parent_id:
            message = f"Task {task_id} cannot be nested under itself"
        else:
            message = (
                f"Task {task_id} cannot be nested under {parent_id}: "
                f"{parent_id} is a descendant of {task_id}"
            )
        super().__init__(message)


class InvalidAnchorError(ReorderError):
    """Raised when an update references a task that cannot serve as its anchor."""

    def __init__(self, task_id: str, anchor_id: Optional[str], reason: str) -> None:
        self.task_id = task_id
        self.anchor_id = anchor_id
        self.reason = reason
        super().__init__(f"Invalid anchor {anchor_id!r} for task {task_id}: {reason}")


class ReconciliationFailure(ReorderError):
    """Raised when the ordering authority rejects or never answers a batch."""

    def __init__(
        self,
        updates: Sequence[RelativePositionUpdate],
        cause: Optional[BaseException] = None,
    ) -> None:
        self.updates = list(updates)
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            f"Failed to save new order for {len(self.updates)} task(s){detail}"
        )


class DriftWarning(BaseModel):
    """A predicted vs. authoritative mismatch for one task. Logged, never raised."""

    task_id: str
    predicted_position: Optional[int] = None
    actual_position: Optional[int] = None
    predicted_parent_id: Optional[str] = None
    actual_parent_id: Optional[str] = None

    @property
    def position_delta(self) -> Optional[int]:
        """Actual minus predicted position, when both are known."""
        if self.predicted_position is None or self.actual_position is None:
            return None
        return self.actual_position - self.predicted_position

    @property
    def parent_changed(self) -> bool:
        return self.predicted_parent_id != self.actual_parent_id


def summarize_drift(warnings: List[DriftWarning]) -> str:
    """One-line summary used in log messages and diagnostic events."""
    parts = []
    for w in warnings:
        if w.parent_changed:
            parts.append(f"{w.task_id}: parent {w.predicted_parent_id}->{w.actual_parent_id}")
        else:
            parts.append(f"{w.task_id}: {w.predicted_position}->{w.actual_position}")
    return ", ".join(parts)
