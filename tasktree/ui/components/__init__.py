"""tasktree UI components - Reusable widgets."""

from tasktree.ui.components.task_tree import TaskTreeView

__all__ = ["TaskTreeView"]
