"""
Drop-zone resolver for tasktree.

Turns the abstract drop descriptor produced by the drag-gesture collaborator
into the intended parent scope and insertion point within the flattened
render sequence.

Reorder drops infer the parent from depth continuity between the row just
before the insertion point and the row at it. Dropping directly below a task
that owns visible children is ambiguous between "first child" and "next
sibling"; the configured ``BoundaryPolicy`` decides. With the default
SIBLING policy, becoming a child is only possible through an explicit nest
drop onto the row body.
"""

from typing import List, Optional

from tasktree.config.reorder_config import BoundaryPolicy, ReorderConfig
from tasktree.logging_config import get_logger
from tasktree.models import (
    DropEdge,
    DropMode,
    DropZoneDescriptor,
    FlatRow,
    ResolvedDrop,
)

logger = get_logger(__name__)


def find_row_index(rows: List[FlatRow], task_id: Optional[str]) -> Optional[int]:
    """Index of the row showing ``task_id``, or None."""
    if task_id is None:
        return None
    for i, row in enumerate(rows):
        if row.task.id == task_id:
            return i
    return None


class DropZoneResolver:
    """Resolves drop zones into parent scopes and insertion indices."""

    def __init__(self, policy: BoundaryPolicy = BoundaryPolicy.SIBLING) -> None:
        self.policy = policy

    @classmethod
    def from_config(cls, config: ReorderConfig) -> 'DropZoneResolver':
        return cls(config.boundary_policy)

    def resolve_parent(
        self,
        drop_index: int,
        mode: DropMode,
        rows: List[FlatRow],
    ) -> Optional[str]:
        """
        Determine the parent scope for a drop.

        Args:
            drop_index: For nest drops, the index of the target row. For
                reorder drops, the insertion point (0 = before the first row,
                len(rows) = after the last row).
            mode: Drop mode
            rows: Current flattened render sequence

        Returns:
            Parent task ID, or None for the root scope

        Raises:
            IndexError: If a nest drop does not point at a row
        """
        if mode == DropMode.NEST:
            if not 0 <= drop_index < len(rows):
                raise IndexError(f"Nest drop index {drop_index} outside {len(rows)} rows")
            return rows[drop_index].task.id

        if drop_index <= 0 or not rows:
            return None

        drop_index = min(drop_index, len(rows))
        preceding = rows[drop_index - 1]
        following = rows[drop_index] if drop_index < len(rows) else None

        if following is None:
            return preceding.parent_id

        if following.depth > preceding.depth:
            # Insertion point sits between a parent and its first child
            if self.policy == BoundaryPolicy.CHILD:
                return preceding.task.id
            return preceding.parent_id

        if preceding.depth == 0 and self.policy == BoundaryPolicy.SIBLING:
            return None

        if following.depth == preceding.depth:
            return following.parent_id

        # Following row is shallower: the insertion point closes a subtree
        if self.policy == BoundaryPolicy.CHILD:
            return preceding.parent_id
        return following.parent_id

    @staticmethod
    def insertion_index(
        descriptor: DropZoneDescriptor,
        rows: List[FlatRow],
    ) -> Optional[int]:
        """
        Derive the drop index from the target row and edge.

        Returns:
            Target row index for nest drops and "above" edges, the next index
            for "below" edges, or None when the target is not rendered
        """
        target_index = find_row_index(rows, descriptor.target_task_id)
        if target_index is None:
            return None
        if descriptor.mode == DropMode.REORDER and descriptor.edge == DropEdge.BELOW:
            return target_index + 1
        return target_index

    def resolve(
        self,
        descriptor: Optional[DropZoneDescriptor],
        rows: List[FlatRow],
        drop_index: Optional[int] = None,
    ) -> Optional[ResolvedDrop]:
        """
        Resolve a drop descriptor.

        Args:
            descriptor: Drop zone from the drag collaborator, None when the
                drag ended outside any valid zone
            rows: Current flattened render sequence
            drop_index: Drop index reported by the collaborator, derived from
                the target row and edge when omitted

        Returns:
            ResolvedDrop, or None for an aborted drag (no mutation follows)
        """
        if descriptor is None:
            logger.debug("Drag ended outside any drop zone, ignoring")
            return None

        if descriptor.mode == DropMode.NEST:
            target_index = find_row_index(rows, descriptor.target_task_id)
            if target_index is None:
                logger.debug(f"Nest target {descriptor.target_task_id} not rendered, ignoring")
                return None
            return ResolvedDrop(
                mode=DropMode.NEST,
                parent_id=descriptor.target_task_id,
                insertion_index=target_index,
                target_task_id=descriptor.target_task_id,
            )

        if drop_index is None:
            drop_index = self.insertion_index(descriptor, rows)
            if drop_index is None:
                logger.debug(f"Reorder target {descriptor.target_task_id} not rendered, ignoring")
                return None

        drop_index = max(0, min(drop_index, len(rows)))
        parent_id = self.resolve_parent(drop_index, DropMode.REORDER, rows)
        logger.debug(
            f"Resolved reorder drop: index={drop_index}, parent={parent_id}, "
            f"policy={self.policy.value}"
        )
        return ResolvedDrop(
            mode=DropMode.REORDER,
            parent_id=parent_id,
            insertion_index=drop_index,
            target_task_id=descriptor.target_task_id,
        )
