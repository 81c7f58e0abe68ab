"""
Task visibility filtering for the hierarchy index.

Combines the deleted, status and search filters into a single predicate
that ``TaskHierarchy.organize`` uses to drop tasks from the render tree.
"""

from typing import List, Set

from pydantic import BaseModel, Field

from tasktree.logging_config import get_logger
from tasktree.models import Task, TaskStatus

logger = get_logger(__name__)

ALL_STATUSES: Set[TaskStatus] = set(TaskStatus)


class TaskFilter(BaseModel):
    """
    Visibility filter state for one task list.

    Attributes:
        statuses: Statuses to show. Showing every status disables the filter.
        show_deleted: When True only soft-deleted tasks are shown, otherwise
            only live ones.
        query: Case-insensitive title search; empty disables the filter.
    """

    statuses: Set[TaskStatus] = Field(default_factory=lambda: set(ALL_STATUSES))
    show_deleted: bool = False
    query: str = ""

    def has_status_filter(self) -> bool:
        return self.statuses != ALL_STATUSES

    def has_search_filter(self) -> bool:
        return bool(self.query.strip())

    def is_visible(self, task: Task) -> bool:
        """
        Check if a single task passes all filters.

        Args:
            task: Task to check

        Returns:
            True if the task should be rendered
        """
        if task.is_discarded != self.show_deleted:
            return False

        if self.has_status_filter() and task.status not in self.statuses:
            return False

        if self.has_search_filter() and self.query.strip().lower() not in task.title.lower():
            return False

        return True

    def __call__(self, task: Task) -> bool:
        return self.is_visible(task)

    def active_filter_summary(self) -> List[str]:
        """Summary of active filters for display next to the tree."""
        summary = []
        if self.has_status_filter():
            summary.append(f"Status: {len(self.statuses)} selected")
        if self.has_search_filter():
            summary.append(f'Search: "{self.query.strip()}"')
        if self.show_deleted:
            summary.append("Showing deleted")
        return summary
