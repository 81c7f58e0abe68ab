"""
Sequential positioning engine for tasktree.

Applies relative position updates one at a time against the evolving task
set, renumbering each affected scope densely (1..N) after every update. This
mirrors the ordering authority's own sequential renumbering, so the
optimistic result matches what the authority will store.

Updates must be applied sequentially: a chained multi-select move anchors
"after" a task that was itself moved earlier in the same batch, and only the
already-updated state gives the right insertion index for it.
"""

from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from tasktree.logging_config import get_logger
from tasktree.models import (
    PositionOperation,
    PredictedPlacement,
    RelativePositionUpdate,
    Task,
)
from tasktree.services.hierarchy import scope_sort_key
from tasktree.services.reorder_errors import CircularNestingError, InvalidAnchorError

logger = get_logger(__name__)


class PositioningResult(BaseModel):
    """Outcome of applying a batch of relative updates."""

    updated_tasks: List[Task]
    operations: List[PositionOperation] = Field(default_factory=list)
    placements: List[PredictedPlacement] = Field(default_factory=list)

    def positions(self) -> Dict[str, Tuple[Optional[str], int]]:
        """Predicted ``(parent_id, position)`` for every task."""
        return {t.id: (t.parent_id, t.position) for t in self.updated_tasks}


class PositionCheck(BaseModel):
    """Result of validating scope positions."""

    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def ancestor_chain(task_id: Optional[str], by_id: Dict[str, Task]) -> List[str]:
    """
    IDs from ``task_id`` up to its root, following ``parent_id``.

    Stops at a missing parent or at the first repeated ID.
    """
    chain: List[str] = []
    current = task_id
    while current is not None and current in by_id and current not in chain:
        chain.append(current)
        current = by_id[current].parent_id
    return chain


def check_nesting(task_id: str, parent_id: Optional[str], by_id: Dict[str, Task]) -> None:
    """
    Check that nesting ``task_id`` under ``parent_id`` keeps the tree acyclic.

    Raises:
        CircularNestingError: If ``parent_id`` is the task or one of its descendants
    """
    if parent_id is None:
        return
    if parent_id == task_id or task_id in ancestor_chain(parent_id, by_id):
        raise CircularNestingError(task_id, parent_id)


class SequentialPositioningEngine:
    """
    Client-side emulation of the authority's sequential list renumbering.

    The input collection is never modified: every call works on deep copies
    and returns a new, internally consistent collection, so a renderer never
    observes a half-renumbered scope. A batch is rejected as a whole on the
    first structural error.
    """

    def apply(
        self,
        tasks: Iterable[Task],
        updates: Sequence[RelativePositionUpdate],
    ) -> PositioningResult:
        """
        Apply relative position updates one at a time.

        Args:
            tasks: Current task collection
            updates: Updates in application order

        Returns:
            PositioningResult with the updated copy, the position operations
            performed and the concrete placement of each update

        Raises:
            CircularNestingError: If an update would create an ancestry cycle
            InvalidAnchorError: If an update references a missing task, a
                missing parent, or an unusable anchor
        """
        working = [task.model_copy(deep=True) for task in tasks]
        by_id = {task.id: task for task in working}

        try:
            self._validate_batch(by_id, updates)

            operations: List[PositionOperation] = []
            placements: List[PredictedPlacement] = []
            for update in updates:
                placement = self._apply_one(by_id, update, operations)
                placements.append(placement)
        except (CircularNestingError, InvalidAnchorError) as e:
            logger.warning(f"Rejected reorder batch of {len(updates)} update(s): {e}")
            raise

        logger.debug(
            f"Applied {len(updates)} relative update(s), "
            f"{len(operations)} position operation(s)"
        )
        return PositioningResult(
            updated_tasks=working,
            operations=operations,
            placements=placements,
        )

    def predict_positions(
        self,
        tasks: Iterable[Task],
        updates: Sequence[RelativePositionUpdate],
    ) -> Dict[str, Tuple[Optional[str], int]]:
        """Predict the ``(parent_id, position)`` the authority will store per task."""
        return self.apply(tasks, updates).positions()

    # ==========================================================================
    # VALIDATION
    # ==========================================================================

    def _validate_batch(
        self,
        by_id: Dict[str, Task],
        updates: Sequence[RelativePositionUpdate],
    ) -> None:
        """Reject the batch before any mutation if any update is structurally invalid."""
        for i, update in enumerate(updates):
            if update.id not in by_id:
                raise InvalidAnchorError(update.id, None, "task does not exist")

            if update.parent_id is not None and update.parent_id not in by_id:
                raise InvalidAnchorError(update.id, update.parent_id, "parent task does not exist")

            check_nesting(update.id, update.parent_id, by_id)

            anchor_id = update.anchor_id
            if anchor_id is None:
                continue
            if anchor_id == update.id:
                raise InvalidAnchorError(
                    update.id, anchor_id, "a task cannot be positioned relative to itself"
                )
            if anchor_id not in by_id:
                raise InvalidAnchorError(update.id, anchor_id, "anchor task does not exist")
            if any(later.id == anchor_id for later in updates[i + 1:]):
                raise InvalidAnchorError(
                    update.id, anchor_id, "anchor is moved later in the same batch"
                )

    # ==========================================================================
    # SEQUENTIAL APPLICATION
    # ==========================================================================

    @staticmethod
    def _scope(by_id: Dict[str, Task], parent_id: Optional[str], exclude: str) -> List[Task]:
        members = [t for t in by_id.values() if t.parent_id == parent_id and t.id != exclude]
        members.sort(key=scope_sort_key)
        return members

    @staticmethod
    def _insertion_index(
        update: RelativePositionUpdate,
        scope: List[Task],
    ) -> int:
        if update.position == "first":
            return 0
        if update.position == "last":
            return len(scope)

        anchor_id = update.anchor_id
        for i, task in enumerate(scope):
            if task.id == anchor_id:
                return i + 1 if update.after_task_id else i
        raise InvalidAnchorError(update.id, anchor_id, "anchor is not in the target scope")

    def _apply_one(
        self,
        by_id: Dict[str, Task],
        update: RelativePositionUpdate,
        operations: List[PositionOperation],
    ) -> PredictedPlacement:
        """Move one task and renumber its old and new scopes."""
        moving = by_id[update.id]
        old_parent = moving.parent_id
        new_parent = update.parent_id

        # Ancestry may have changed earlier in this batch
        check_nesting(moving.id, new_parent, by_id)

        before = {t.id: t.position for t in by_id.values()}

        old_scope = self._scope(by_id, old_parent, moving.id)
        if old_parent != new_parent:
            for position, task in enumerate(old_scope, start=1):
                task.position = position

        new_scope = self._scope(by_id, new_parent, moving.id)
        index = self._insertion_index(update, new_scope)
        new_scope.insert(index, moving)
        moving.parent_id = new_parent
        for position, task in enumerate(new_scope, start=1):
            task.position = position

        gap_scope = old_scope if old_parent != new_parent else []
        for task in gap_scope:
            if task.position != before[task.id]:
                operations.append(PositionOperation(
                    type="gap-elimination",
                    scope=old_parent,
                    task_id=task.id,
                    old_position=before[task.id],
                    new_position=task.position,
                    reason=f"Shifted to fill gap left by {moving.id}",
                ))
        for task in new_scope:
            if task is moving or task.position == before[task.id]:
                continue
            operations.append(PositionOperation(
                type="insertion",
                scope=new_parent,
                task_id=task.id,
                old_position=before[task.id],
                new_position=task.position,
                reason=f"Shifted by insertion of {moving.id} at position {moving.position}",
            ))
        operations.append(PositionOperation(
            type="insertion",
            scope=new_parent,
            task_id=moving.id,
            old_position=before[moving.id],
            new_position=moving.position,
            reason=f"Moved {update.describe_anchor()}",
        ))

        logger.debug(
            f"Placed {moving.id}: parent {old_parent} -> {new_parent}, "
            f"position {before[moving.id]} -> {moving.position}"
        )
        return PredictedPlacement(
            id=moving.id,
            position=moving.position,
            parent_id=new_parent,
        )

    # ==========================================================================
    # POSITION MAINTENANCE
    # ==========================================================================

    @staticmethod
    def normalize(tasks: Iterable[Task]) -> List[Task]:
        """
        Return copies with every scope renumbered densely, keeping relative order.

        Used on load, when positions come from a source that leaves gaps.
        """
        working = [task.model_copy(deep=True) for task in tasks]
        scopes: Dict[Optional[str], List[Task]] = defaultdict(list)
        for task in working:
            scopes[task.parent_id].append(task)
        for members in scopes.values():
            members.sort(key=scope_sort_key)
            for position, task in enumerate(members, start=1):
                task.position = position
        return working

    @staticmethod
    def check_positions(tasks: Iterable[Task]) -> PositionCheck:
        """
        Validate that positions are dense per scope.

        Duplicates are errors; gaps and scopes not starting at 1 are warnings.
        """
        errors: List[str] = []
        warnings: List[str] = []

        scopes: Dict[Optional[str], List[int]] = defaultdict(list)
        for task in tasks:
            scopes[task.parent_id].append(task.position)

        for scope, positions in scopes.items():
            positions.sort()
            counts = Counter(positions)
            duplicates = sorted(p for p, n in counts.items() if n > 1)
            if duplicates:
                errors.append(
                    f"Scope {scope}: Duplicate positions found: "
                    f"{', '.join(str(p) for p in duplicates)}"
                )

            missing = [p for p in range(1, len(positions) + 1) if p not in counts]
            if missing:
                warnings.append(
                    f"Scope {scope}: Missing positions: {', '.join(str(p) for p in missing)}"
                )

            if positions and positions[0] != 1:
                warnings.append(
                    f"Scope {scope}: Positions don't start from 1 (first position: {positions[0]})"
                )

        return PositionCheck(valid=not errors, errors=errors, warnings=warnings)
