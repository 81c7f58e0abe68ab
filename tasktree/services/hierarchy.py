"""
Hierarchy index for tasktree.

Organizes a flat, foreign-keyed task collection into a position-sorted tree,
tracks expand/collapse state and produces the flattened, depth-annotated
row sequence that drag-and-drop operates on.

Tasks are indexed by ID and children are derived on demand from
``parent_id``; tree nodes never hold references back to their parents.
"""

from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Set

from tasktree.logging_config import get_logger
from tasktree.models import FlatRow, Task, TaskNode

logger = get_logger(__name__)

VisibilityPredicate = Callable[[Task], bool]


def _show_all(task: Task) -> bool:
    return True


def scope_sort_key(task: Task):
    """Sort key for tasks within one scope."""
    return (task.position, task.id)


def build_children_index(tasks: Iterable[Task]) -> Dict[Optional[str], List[Task]]:
    """
    Group tasks by ``parent_id``, each scope sorted by position.

    Args:
        tasks: Flat task collection

    Returns:
        Mapping of parent ID (None for the root scope) to ordered children
    """
    index: Dict[Optional[str], List[Task]] = defaultdict(list)
    for task in tasks:
        index[task.parent_id].append(task)
    for siblings in index.values():
        siblings.sort(key=scope_sort_key)
    return dict(index)


class TaskExpansionState:
    """Set of expanded task IDs with one-time auto-expansion."""

    def __init__(self) -> None:
        self._expanded: Set[str] = set()
        self._has_auto_expanded = False

    @property
    def expanded_ids(self) -> Set[str]:
        return set(self._expanded)

    @property
    def has_auto_expanded(self) -> bool:
        return self._has_auto_expanded

    def is_expanded(self, task_id: str) -> bool:
        return task_id in self._expanded

    def toggle(self, task_id: str) -> bool:
        """
        Flip the expansion state of a task.

        Returns:
            The new state (True when expanded)
        """
        if task_id in self._expanded:
            self._expanded.discard(task_id)
            return False
        self._expanded.add(task_id)
        return True

    def expand(self, task_id: str) -> None:
        self._expanded.add(task_id)

    def collapse(self, task_id: str) -> None:
        self._expanded.discard(task_id)

    def auto_expand_all(self, tree: List[TaskNode]) -> None:
        """
        Expand every task that has subtasks, only the first time a non-empty
        tree is seen. Later refreshes keep user-collapsed nodes collapsed.
        """
        if not tree or self._has_auto_expanded:
            return

        stack = list(tree)
        while stack:
            node = stack.pop()
            if node.subtasks:
                self._expanded.add(node.task.id)
                stack.extend(node.subtasks)

        self._has_auto_expanded = True
        logger.debug(f"Auto-expanded {len(self._expanded)} tasks on initial load")

    def reset(self) -> None:
        self._expanded.clear()
        self._has_auto_expanded = False


class TaskHierarchy:
    """
    Organizes tasks hierarchically and flattens them for rendering.

    Responsibilities:
    - Build a position-sorted tree from the flat collection
    - Apply visibility filtering (hidden tasks take their subtrees with them)
    - Flatten the tree in pre-order, honoring expansion state
    - Provide visual order for multi-selection handling
    """

    def __init__(self, expansion: Optional[TaskExpansionState] = None) -> None:
        self.expansion = expansion or TaskExpansionState()

    def organize(
        self,
        tasks: Iterable[Task],
        is_visible: Optional[VisibilityPredicate] = None,
    ) -> List[TaskNode]:
        """
        Organize tasks into a hierarchical structure with filtering.

        A task whose ``parent_id`` points to a task missing from the
        collection is treated as a root. A task whose parent is present but
        not visible is dropped along with its descendants.

        Args:
            tasks: Flat list of tasks
            is_visible: Visibility predicate, defaults to showing everything

        Returns:
            Root nodes sorted by position, subtasks sorted recursively
        """
        is_visible = is_visible or _show_all
        tasks = list(tasks)
        by_id = {task.id: task for task in tasks}
        children = build_children_index(tasks)

        roots = [
            task for task in tasks
            if task.parent_id is None or task.parent_id not in by_id
        ]
        roots.sort(key=scope_sort_key)

        seen: Set[str] = set()

        def build(task: Task) -> TaskNode:
            seen.add(task.id)
            node = TaskNode(task=task)
            for child in children.get(task.id, []):
                if child.id in seen or not is_visible(child):
                    continue
                node.subtasks.append(build(child))
            return node

        tree = [build(task) for task in roots if is_visible(task)]
        logger.debug(f"Organized {len(tasks)} tasks into {len(tree)} root nodes")
        return tree

    def flatten(
        self,
        tree: List[TaskNode],
        expanded: Optional[Set[str]] = None,
    ) -> List[FlatRow]:
        """
        Flatten a task tree for rendering.

        Args:
            tree: Root nodes from organize()
            expanded: Expanded IDs; defaults to this index's expansion state

        Returns:
            Pre-order rows; a task's children follow it only when it is expanded
        """
        if expanded is None:
            expanded = self.expansion.expanded_ids

        rows: List[FlatRow] = []

        def render(node: TaskNode, depth: int, parent_id: Optional[str]) -> None:
            has_subtasks = bool(node.subtasks)
            is_expanded = node.task.id in expanded
            rows.append(FlatRow(
                task=node.task,
                depth=depth,
                has_subtasks=has_subtasks,
                is_expanded=is_expanded,
                parent_id=parent_id,
            ))
            if has_subtasks and is_expanded:
                for subtask in node.subtasks:
                    render(subtask, depth + 1, node.task.id)

        for root in tree:
            render(root, 0, None)
        return rows

    def build_rows(
        self,
        tasks: Iterable[Task],
        is_visible: Optional[VisibilityPredicate] = None,
        auto_expand: bool = True,
    ) -> List[FlatRow]:
        """Organize, optionally auto-expand once, and flatten."""
        tree = self.organize(tasks, is_visible)
        if auto_expand:
            self.expansion.auto_expand_all(tree)
        return self.flatten(tree)

    @staticmethod
    def flat_ids(rows: List[FlatRow]) -> List[str]:
        """Task IDs in visual order."""
        return [row.task.id for row in rows]

    def visual_index(
        self,
        tasks: Iterable[Task],
        is_visible: Optional[VisibilityPredicate] = None,
    ) -> Dict[str, int]:
        """
        Pre-order index of every visible task in the fully expanded tree.

        Collapsed rows still get an index, so a selection can be ordered
        the way the user sees it once expanded.
        """
        index: Dict[str, int] = {}
        stack = list(reversed(self.organize(tasks, is_visible)))
        while stack:
            node = stack.pop()
            index[node.task.id] = len(index)
            stack.extend(reversed(node.subtasks))
        return index

    # Expansion passthroughs used by the renderer

    def toggle_expansion(self, task_id: str) -> bool:
        return self.expansion.toggle(task_id)

    def is_task_expanded(self, task_id: str) -> bool:
        return self.expansion.is_expanded(task_id)

    def expand_task(self, task_id: str) -> None:
        """Force expand a task (used after nesting a task under it)."""
        self.expansion.expand(task_id)

    def reset_expansion(self) -> None:
        self.expansion.reset()
