"""
Reconciliation layer for tasktree.

Runs each reorder as an explicit predict/submit/diff/rollback state machine:

1. Snapshot the current task collection
2. Apply the relative updates optimistically and publish the result
3. Send the updates to the ordering authority
4. On success, optionally diff the authority's positions against the
   prediction and report drift (never rolled back: the authority wins on the
   next data refresh)
5. On failure or timeout, restore the snapshot exactly and report it

Operations on one store are serialized, so a second drag waits for the
first submission and then computes against the latest state.
"""

import asyncio
from enum import Enum
from typing import Callable, Iterable, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel, Field

from tasktree.config.reorder_config import ReorderConfig
from tasktree.logging_config import get_logger
from tasktree.models import (
    DropMode,
    DropZoneDescriptor,
    FlatRow,
    PredictedPlacement,
    RelativePositionUpdate,
    Task,
)
from tasktree.services.diagnostics import (
    DiagnosticEvent,
    DiagnosticEventType,
    DiagnosticsEmitter,
)
from tasktree.services.drop_zone import DropZoneResolver
from tasktree.services.hierarchy import TaskHierarchy, VisibilityPredicate
from tasktree.services.position_calculator import RelativePositionCalculator
from tasktree.services.positioning import PositioningResult, SequentialPositioningEngine
from tasktree.services.reorder_errors import (
    DriftWarning,
    ReconciliationFailure,
    summarize_drift,
)

logger = get_logger(__name__)

StoreListener = Callable[[Tuple[Task, ...], str], None]


class OrderingAuthority(Protocol):
    """Transport-facing interface of the remote ordering service."""

    async def send_updates(
        self, updates: List[RelativePositionUpdate]
    ) -> Optional[List[Task]]:
        """Submit a batch; return the authoritative task set or None for a bare ack."""
        ...

    async def fetch_tasks(self) -> List[Task]:
        """Fetch the authoritative task set."""
        ...


class ReconciliationState(str, Enum):
    """Lifecycle of one reorder operation."""
    IDLE = "idle"
    PREDICTED = "predicted"
    SUBMITTING = "submitting"
    VERIFYING = "verifying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TaskStore:
    """
    Copy-on-write holder of the task collection shown by the view.

    The collection is an immutable tuple swapped atomically, so a render pass
    always sees one consistent version.
    """

    def __init__(self, tasks: Iterable[Task] = ()) -> None:
        self._tasks: Tuple[Task, ...] = tuple(tasks)
        self._listeners: List[StoreListener] = []

    @property
    def tasks(self) -> Tuple[Task, ...]:
        return self._tasks

    def snapshot(self) -> Tuple[Task, ...]:
        return self._tasks

    def subscribe(self, listener: StoreListener) -> None:
        """Register a callback called with ``(tasks, reason)`` after every swap."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: StoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def replace(self, tasks: Iterable[Task], reason: str = "replace") -> None:
        self._tasks = tuple(tasks)
        logger.debug(f"Task store replaced ({reason}): {len(self._tasks)} tasks")
        for listener in list(self._listeners):
            try:
                listener(self._tasks, reason)
            except Exception as e:
                logger.warning(f"Task store listener failed: {e}", exc_info=True)

    def refresh(self, tasks: Iterable[Task]) -> None:
        """Adopt a fresh authoritative task set from the data layer."""
        self.replace(tasks, reason="refresh")


class SubmitResult(BaseModel):
    """Outcome of a committed reorder."""

    state: ReconciliationState
    updates: List[RelativePositionUpdate] = Field(default_factory=list)
    placements: List[PredictedPlacement] = Field(default_factory=list)
    drift: List[DriftWarning] = Field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        return bool(self.drift)


def compute_drift(
    predicted: Iterable[Task],
    actual: Iterable[Task],
) -> List[DriftWarning]:
    """
    Diff predicted against authoritative placements per task ID.

    Tasks missing from the authoritative set are reported with no actual
    position. Tasks only the authority knows about are ignored.
    """
    actual_by_id = {task.id: task for task in actual}
    drift: List[DriftWarning] = []
    for task in predicted:
        remote = actual_by_id.get(task.id)
        if remote is None:
            drift.append(DriftWarning(
                task_id=task.id,
                predicted_position=task.position,
                predicted_parent_id=task.parent_id,
            ))
        elif remote.position != task.position or remote.parent_id != task.parent_id:
            drift.append(DriftWarning(
                task_id=task.id,
                predicted_position=task.position,
                actual_position=remote.position,
                predicted_parent_id=task.parent_id,
                actual_parent_id=remote.parent_id,
            ))
    return drift


class ReconciliationSession:
    """
    Drives reorders for one task collection against the ordering authority.

    Usage:
        session = ReconciliationSession(store, authority, ReorderConfig.load())
        await session.move(descriptor, selected_ids, rows)
    """

    def __init__(
        self,
        store: TaskStore,
        authority: OrderingAuthority,
        config: Optional[ReorderConfig] = None,
        hierarchy: Optional[TaskHierarchy] = None,
        diagnostics: Optional[DiagnosticsEmitter] = None,
        engine: Optional[SequentialPositioningEngine] = None,
    ) -> None:
        self.store = store
        self.authority = authority
        self.config = config or ReorderConfig()
        self.hierarchy = hierarchy or TaskHierarchy()
        self.diagnostics = diagnostics or DiagnosticsEmitter()
        self.engine = engine or SequentialPositioningEngine()
        self.resolver = DropZoneResolver.from_config(self.config)
        self.calculator = RelativePositionCalculator(self.hierarchy)
        self._state = ReconciliationState.IDLE
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ReconciliationState:
        return self._state

    @property
    def busy(self) -> bool:
        """True while an operation holds the store."""
        return self._lock.locked()

    async def move(
        self,
        descriptor: Optional[DropZoneDescriptor],
        dragged_ids: Sequence[str],
        rows: List[FlatRow],
        drop_index: Optional[int] = None,
    ) -> Optional[SubmitResult]:
        """
        Handle a drag end: resolve the drop, calculate anchors and submit.

        Args:
            descriptor: Drop zone, None when dropped outside any valid zone
            dragged_ids: Selected task IDs
            rows: Flattened rows the drag happened on
            drop_index: Insertion index reported by the drag collaborator

        Returns:
            SubmitResult, or None for an aborted drag (nothing is changed)

        Anchors are calculated once the session lock is held, against the
        store as left by any earlier operation (including its rollback).
        ``rows`` is still the view the drag happened on; an anchor that is
        no longer valid raises InvalidAnchorError before anything changes.
        """
        resolved = self.resolver.resolve(descriptor, rows, drop_index)
        if resolved is None or not dragged_ids:
            return None

        async with self._lock:
            updates = self.calculator.calculate(
                resolved, resolved.parent_id, dragged_ids, self.store.tasks, rows
            )
            if not updates:
                return None
            result = await self._submit(updates)

        if resolved.mode == DropMode.NEST and resolved.parent_id is not None:
            self.hierarchy.expand_task(resolved.parent_id)
        return result

    def build_rows(
        self,
        tasks: Optional[Iterable[Task]] = None,
        is_visible: Optional[VisibilityPredicate] = None,
    ) -> List[FlatRow]:
        """Flatten the store's tasks (or ``tasks``) honoring ``config.auto_expand``."""
        return self.hierarchy.build_rows(
            self.store.tasks if tasks is None else tasks,
            is_visible,
            auto_expand=self.config.auto_expand,
        )

    async def submit(self, updates: Sequence[RelativePositionUpdate]) -> SubmitResult:
        """
        Apply updates optimistically and reconcile them with the authority.

        Args:
            updates: Relative updates in application order

        Returns:
            SubmitResult with the predicted placements and any drift

        Raises:
            CircularNestingError: Before any mutation, for ancestry cycles
            InvalidAnchorError: Before any mutation, for unusable anchors
            ReconciliationFailure: After the snapshot has been restored
        """
        updates = list(updates)
        if not updates:
            return SubmitResult(state=ReconciliationState.IDLE)

        async with self._lock:
            return await self._submit(updates)

    async def _submit(self, updates: List[RelativePositionUpdate]) -> SubmitResult:
        # Caller holds self._lock
        snapshot = self.store.snapshot()
        result = self.engine.apply(snapshot, updates)

        self.store.replace(result.updated_tasks, reason="optimistic")
        self._state = ReconciliationState.PREDICTED
        logger.info(
            f"Optimistically applied {len(updates)} reorder update(s): "
            + ", ".join(f"{u.id} {u.describe_anchor()}" for u in updates)
        )

        self._state = ReconciliationState.SUBMITTING
        try:
            authoritative = await asyncio.wait_for(
                self.authority.send_updates(updates),
                timeout=self.config.submit_timeout,
            )
        except asyncio.CancelledError:
            self._rollback(snapshot)
            raise
        except Exception as e:
            self._rollback(snapshot)
            self._report_failure(updates, e)
            raise ReconciliationFailure(updates, e) from e

        drift: List[DriftWarning] = []
        if self.config.drift_check:
            self._state = ReconciliationState.VERIFYING
            drift = await self._check_drift(updates, result, authoritative)

        self._state = ReconciliationState.COMMITTED
        logger.info(f"Reorder committed: {len(updates)} update(s), drift={len(drift)}")
        return SubmitResult(
            state=ReconciliationState.COMMITTED,
            updates=updates,
            placements=result.placements,
            drift=drift,
        )

    def _rollback(self, snapshot: Tuple[Task, ...]) -> None:
        self.store.replace(snapshot, reason="rollback")
        self._state = ReconciliationState.ROLLED_BACK
        logger.info(f"Rolled back to pre-operation snapshot ({len(snapshot)} tasks)")

    def _report_failure(self, updates: List[RelativePositionUpdate], error: Exception) -> None:
        if isinstance(error, asyncio.TimeoutError):
            reason = f"timed out after {self.config.submit_timeout}s"
        else:
            reason = str(error) or type(error).__name__
        logger.error(f"Reorder submission failed: {reason}", exc_info=True)
        self.diagnostics.emit(DiagnosticEvent(
            type=DiagnosticEventType.RECONCILIATION_FAILURE,
            message="Failed to save the new task order. Changes were reverted, please retry.",
            details={
                "reason": reason,
                "updates": [u.to_payload() for u in updates],
            },
        ))

    async def _check_drift(
        self,
        updates: List[RelativePositionUpdate],
        result: PositioningResult,
        authoritative: Optional[List[Task]],
    ) -> List[DriftWarning]:
        """Compare the prediction with the authority's state. Failures are non-fatal."""
        try:
            if authoritative is None:
                authoritative = await asyncio.wait_for(
                    self.authority.fetch_tasks(),
                    timeout=self.config.submit_timeout,
                )
        except Exception as e:
            logger.warning(f"Drift check skipped, could not fetch authoritative tasks: {e}", exc_info=True)
            return []

        drift = compute_drift(result.updated_tasks, authoritative)
        if drift:
            self.diagnostics.emit(DiagnosticEvent(
                type=DiagnosticEventType.DRIFT,
                message=(
                    f"Position drift for {len(drift)} task(s) after reorder: "
                    f"{summarize_drift(drift)}"
                ),
                details={
                    "sent": [u.to_payload() for u in updates],
                    "predicted": [p.model_dump() for p in result.placements],
                    "drift": [d.model_dump() for d in drift],
                },
            ))
        else:
            logger.debug("Drift check passed: prediction matches authority")
        return drift
