"""
Keyboard reordering for tasktree.

Builds relative position updates for the keyboard equivalents of drag and
drop: move up, move down, indent and outdent. Every function reads the
current flattened rows and returns an empty list when the move does not
apply (first sibling, root task, orphan and so on).
"""

from typing import Iterable, List, Optional

from tasktree.logging_config import get_logger
from tasktree.models import FlatRow, RelativePositionUpdate, Task
from tasktree.services.drop_zone import find_row_index
from tasktree.services.hierarchy import scope_sort_key

logger = get_logger(__name__)


def _row_and_siblings(rows: List[FlatRow], task_id: str):
    """Row of ``task_id`` plus its visible siblings in visual order."""
    index = find_row_index(rows, task_id)
    if index is None:
        return None, []
    row = rows[index]
    if row.parent_id != row.task.parent_id:
        # Orphan shown as a root: its real scope is not rendered
        return row, []
    siblings = [
        r for r in rows
        if r.parent_id == row.parent_id and r.task.parent_id == row.task.parent_id
    ]
    return row, siblings


def _sibling_offset(rows: List[FlatRow], task_id: str, offset: int) -> Optional[FlatRow]:
    row, siblings = _row_and_siblings(rows, task_id)
    if row is None or not siblings:
        return None
    i = next(i for i, r in enumerate(siblings) if r.task.id == task_id)
    j = i + offset
    if not 0 <= j < len(siblings):
        return None
    return siblings[j]


def move_up(rows: List[FlatRow], task_id: str) -> List[RelativePositionUpdate]:
    """Swap a task with the visible sibling above it."""
    previous = _sibling_offset(rows, task_id, -1)
    if previous is None:
        return []
    return [RelativePositionUpdate(
        id=task_id,
        parent_id=previous.task.parent_id,
        before_task_id=previous.task.id,
    )]


def move_down(rows: List[FlatRow], task_id: str) -> List[RelativePositionUpdate]:
    """Swap a task with the visible sibling below it."""
    following = _sibling_offset(rows, task_id, 1)
    if following is None:
        return []
    return [RelativePositionUpdate(
        id=task_id,
        parent_id=following.task.parent_id,
        after_task_id=following.task.id,
    )]


def indent(
    rows: List[FlatRow],
    task_id: str,
    tasks: Iterable[Task],
) -> List[RelativePositionUpdate]:
    """
    Nest a task as the last child of the visible sibling above it.

    Args:
        rows: Current flattened rows
        task_id: Task to indent
        tasks: Full task collection, so collapsed or filtered children of
            the new parent are taken into account

    Returns:
        A single update, or an empty list for a first sibling
    """
    new_parent = _sibling_offset(rows, task_id, -1)
    if new_parent is None:
        return []

    children = [
        t for t in tasks
        if t.parent_id == new_parent.task.id and t.id != task_id
    ]
    if children:
        last_child = max(children, key=scope_sort_key)
        update = RelativePositionUpdate(
            id=task_id, parent_id=new_parent.task.id, after_task_id=last_child.id
        )
    else:
        update = RelativePositionUpdate(
            id=task_id, parent_id=new_parent.task.id, position="first"
        )
    logger.debug(f"Indent {task_id} under {new_parent.task.id}, {update.describe_anchor()}")
    return [update]


def outdent(rows: List[FlatRow], task_id: str) -> List[RelativePositionUpdate]:
    """Move a task out of its parent, placing it right after that parent."""
    index = find_row_index(rows, task_id)
    if index is None:
        return []
    row = rows[index]
    if row.parent_id is None:
        return []

    parent_index = find_row_index(rows, row.parent_id)
    if parent_index is None:
        return []
    parent_row = rows[parent_index]
    if parent_row.parent_id != parent_row.task.parent_id:
        # Grandparent scope is not loaded
        return []

    return [RelativePositionUpdate(
        id=task_id,
        parent_id=parent_row.task.parent_id,
        after_task_id=parent_row.task.id,
    )]
