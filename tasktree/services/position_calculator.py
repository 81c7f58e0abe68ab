"""
Relative position calculator for tasktree.

Converts a resolved drop into anchor-relative position updates ("after task
X", "before task Y", "first", "last") instead of raw integers. Anchors stay
meaningful while the ordering authority renumbers scopes on its own.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from tasktree.logging_config import get_logger
from tasktree.models import (
    DropMode,
    FlatRow,
    RelativePositionUpdate,
    ResolvedDrop,
    Task,
)
from tasktree.services.drop_zone import find_row_index
from tasktree.services.hierarchy import TaskHierarchy, scope_sort_key
from tasktree.services.reorder_errors import InvalidAnchorError

logger = get_logger(__name__)


def has_ancestor_in(task: Task, ids: set, by_id: Dict[str, Task]) -> bool:
    """Check whether any ancestor of ``task`` is in ``ids``."""
    seen = {task.id}
    parent_id = task.parent_id
    while parent_id is not None and parent_id in by_id and parent_id not in seen:
        if parent_id in ids:
            return True
        seen.add(parent_id)
        parent_id = by_id[parent_id].parent_id
    return False


class RelativePositionCalculator:
    """
    Computes relative position updates for single and multi-task drags.

    For multi-selections the dragged tasks are ordered by visual (pre-order)
    index, never by ``position``: positions from different parents are not
    comparable. The first task gets a normal anchor, each following task is
    anchored after the previous one so the selection lands as one block.
    """

    def __init__(self, hierarchy: Optional[TaskHierarchy] = None) -> None:
        self.hierarchy = hierarchy or TaskHierarchy()

    def calculate(
        self,
        drop: ResolvedDrop,
        parent_id: Optional[str],
        dragged_ids: Sequence[str],
        tasks: Iterable[Task],
        rows: List[FlatRow],
    ) -> List[RelativePositionUpdate]:
        """
        Calculate relative position updates for a drop.

        Args:
            drop: Resolved drop zone
            parent_id: Target parent scope (None for root)
            dragged_ids: IDs of every selected, dragged task
            tasks: Current task collection
            rows: Flattened rows the drop was made on

        Returns:
            One update per moved task, in application order

        Raises:
            InvalidAnchorError: If a dragged ID is unknown
        """
        tasks = list(tasks)
        by_id = {task.id: task for task in tasks}

        ordered_ids = self._ordered_dragged_ids(dragged_ids, tasks, by_id)
        if not ordered_ids:
            return []

        dragged = set(ordered_ids)
        if drop.mode == DropMode.NEST:
            first = self._nest_anchor(ordered_ids[0], parent_id, dragged, tasks)
        else:
            first = self._reorder_anchor(
                ordered_ids[0], parent_id, dragged, tasks, rows, drop.insertion_index
            )

        updates = [first]
        for previous_id, task_id in zip(ordered_ids, ordered_ids[1:]):
            updates.append(RelativePositionUpdate(
                id=task_id,
                parent_id=parent_id,
                after_task_id=previous_id,
            ))

        logger.debug(
            f"Calculated {len(updates)} relative update(s) for {drop.mode.value} drop "
            f"into parent={parent_id}: first anchor {first.describe_anchor()}"
        )
        return updates

    def _ordered_dragged_ids(
        self,
        dragged_ids: Sequence[str],
        tasks: List[Task],
        by_id: Dict[str, Task],
    ) -> List[str]:
        """Deduplicate, drop tasks carried by a dragged ancestor, sort visually."""
        unique: List[str] = []
        for task_id in dragged_ids:
            if task_id not in by_id:
                raise InvalidAnchorError(task_id, None, "dragged task does not exist")
            if task_id not in unique:
                unique.append(task_id)

        selected = set(unique)
        movable = [
            task_id for task_id in unique
            if not has_ancestor_in(by_id[task_id], selected, by_id)
        ]
        if len(movable) < len(unique):
            logger.debug(
                f"{len(unique) - len(movable)} dragged task(s) travel with a dragged ancestor"
            )

        visual = self.hierarchy.visual_index(tasks)
        fallback = len(visual)
        return sorted(
            movable,
            key=lambda task_id: (visual.get(task_id, fallback), unique.index(task_id)),
        )

    @staticmethod
    def _scope_members(
        parent_id: Optional[str],
        dragged: set,
        tasks: List[Task],
    ) -> List[Task]:
        members = [t for t in tasks if t.parent_id == parent_id and t.id not in dragged]
        members.sort(key=scope_sort_key)
        return members

    def _nest_anchor(
        self,
        task_id: str,
        parent_id: Optional[str],
        dragged: set,
        tasks: List[Task],
    ) -> RelativePositionUpdate:
        """Nest drops append after the target's last existing child."""
        children = self._scope_members(parent_id, dragged, tasks)
        if children:
            return RelativePositionUpdate(
                id=task_id, parent_id=parent_id, after_task_id=children[-1].id
            )
        return RelativePositionUpdate(id=task_id, parent_id=parent_id, position="first")

    def _reorder_anchor(
        self,
        task_id: str,
        parent_id: Optional[str],
        dragged: set,
        tasks: List[Task],
        rows: List[FlatRow],
        insertion_index: int,
    ) -> RelativePositionUpdate:
        """Anchor on the nearest non-dragged scope member around the insertion point."""
        if parent_id is None:
            scope_depth = 0
        else:
            parent_index = find_row_index(rows, parent_id)
            if parent_index is None:
                # Parent not rendered, append to its scope
                return self._fallback_anchor(task_id, parent_id, dragged, tasks)
            scope_depth = rows[parent_index].depth + 1

        def in_scope(row: FlatRow) -> bool:
            return (
                row.parent_id == parent_id
                and row.task.parent_id == parent_id
                and row.task.id not in dragged
            )

        insertion_index = max(0, min(insertion_index, len(rows)))

        for row in reversed(rows[:insertion_index]):
            if row.task.id == parent_id or row.depth < scope_depth:
                break
            if in_scope(row):
                return RelativePositionUpdate(
                    id=task_id, parent_id=parent_id, after_task_id=row.task.id
                )

        for row in rows[insertion_index:]:
            if row.depth < scope_depth:
                break
            if in_scope(row):
                return RelativePositionUpdate(
                    id=task_id, parent_id=parent_id, before_task_id=row.task.id
                )

        return self._fallback_anchor(task_id, parent_id, dragged, tasks)

    def _fallback_anchor(
        self,
        task_id: str,
        parent_id: Optional[str],
        dragged: set,
        tasks: List[Task],
    ) -> RelativePositionUpdate:
        # No visible neighbor: "last" if hidden siblings exist, else "first"
        if self._scope_members(parent_id, dragged, tasks):
            return RelativePositionUpdate(id=task_id, parent_id=parent_id, position="last")
        return RelativePositionUpdate(id=task_id, parent_id=parent_id, position="first")
