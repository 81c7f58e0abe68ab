"""TaskTreeView widget for displaying and reordering a task hierarchy.

This module provides the TaskTreeView widget which renders the flattened
task rows with:
- Indentation and expand/collapse markers per depth
- Depth-specific accent colors
- A keyboard cursor
- Keyboard reordering that posts relative position updates

The widget never changes positions itself. Reorder keys post a
``ReorderRequested`` message; the owner submits the updates through a
reconciliation session and the store pushes the new tasks back in.
"""

from typing import Iterable, List, Optional

from rich.text import Text
from textual.message import Message
from textual.reactive import reactive
from textual.widget import Widget

from tasktree.config.reorder_config import ReorderConfig
from tasktree.logging_config import get_logger
from tasktree.models import FlatRow, RelativePositionUpdate, Task
from tasktree.services import keyboard_reorder
from tasktree.services.hierarchy import TaskHierarchy
from tasktree.services.reconciliation import ReconciliationSession, TaskStore
from tasktree.services.task_filter import TaskFilter
from tasktree.ui.keybindings import TASK_TREE_BINDINGS
from tasktree.ui.theme import (
    BORDER,
    COMMENT,
    DISCARDED_COLOR,
    FOREGROUND,
    LEVEL_0_COLOR,
    SELECTION,
    STATUS_COLORS,
    STATUS_MARKERS,
    get_level_color,
)

logger = get_logger(__name__)

EXPANDED_MARKER = "▾ "
COLLAPSED_MARKER = "▸ "
LEAF_MARKER = "  "
INDENT = "  "


class TaskTreeView(Widget):
    """A focusable widget showing a task hierarchy as indented rows.

    Manages:
    - Row building through the hierarchy index and visibility filter
    - Cursor position, preserved by task ID across refreshes
    - Expansion toggling
    - Keyboard reorder requests
    """

    can_focus = True

    BINDINGS = TASK_TREE_BINDINGS

    DEFAULT_CSS = f"""
    TaskTreeView {{
        border: solid {BORDER};
        padding: 0 1;
        height: auto;
        min-height: 3;
    }}

    TaskTreeView:focus {{
        border: thick {LEVEL_0_COLOR};
    }}
    """

    cursor_index: reactive[int] = reactive(0)

    def __init__(
        self,
        hierarchy: Optional[TaskHierarchy] = None,
        task_filter: Optional[TaskFilter] = None,
        config: Optional[ReorderConfig] = None,
        store: Optional[TaskStore] = None,
        auto_expand: Optional[bool] = None,
        empty_message: str = "No tasks",
        **kwargs
    ) -> None:
        """Initialize a TaskTreeView widget.

        Args:
            hierarchy: Hierarchy index holding the expansion state
            task_filter: Visibility filter, defaults to showing active tasks
            config: Reorder configuration, supplies the auto_expand default
            store: Task store to follow once mounted
            auto_expand: Expand every parent the first time tasks are loaded,
                overrides ``config.auto_expand``
            empty_message: Message to show when no row is visible
            **kwargs: Additional keyword arguments for Widget
        """
        super().__init__(**kwargs)
        self.hierarchy = hierarchy or TaskHierarchy()
        self.task_filter = task_filter or TaskFilter()
        self.config = config or ReorderConfig()
        self.auto_expand = self.config.auto_expand if auto_expand is None else auto_expand
        self.empty_message = empty_message
        self._tasks: List[Task] = []
        self._rows: List[FlatRow] = []
        self._initial_store = store
        self._store: Optional[TaskStore] = None

    @classmethod
    def for_session(cls, session: ReconciliationSession, **kwargs) -> "TaskTreeView":
        """Create a view sharing the session's store, expansion state and config."""
        return cls(
            hierarchy=session.hierarchy,
            config=session.config,
            store=session.store,
            **kwargs
        )

    # ==========================================================================
    # MESSAGES
    # ==========================================================================

    class ReorderRequested(Message):
        """Message emitted when a reorder key produced position updates."""

        def __init__(self, updates: List[RelativePositionUpdate], action: str) -> None:
            """Initialize the ReorderRequested message.

            Args:
                updates: Relative updates to submit, in application order
                action: Name of the keyboard action (move_up, indent, ...)
            """
            super().__init__()
            self.updates = updates
            self.action = action

    class ExpansionToggled(Message):
        """Message emitted when a task is expanded or collapsed."""

        def __init__(self, task_id: str, expanded: bool) -> None:
            super().__init__()
            self.task_id = task_id
            self.expanded = expanded

    # ==========================================================================
    # DATA
    # ==========================================================================

    @property
    def rows(self) -> List[FlatRow]:
        return list(self._rows)

    @property
    def tasks(self) -> List[Task]:
        return list(self._tasks)

    @property
    def cursor_task_id(self) -> Optional[str]:
        if 0 <= self.cursor_index < len(self._rows):
            return self._rows[self.cursor_index].task.id
        return None

    def set_tasks(self, tasks: Iterable[Task]) -> None:
        """Replace the displayed tasks and rebuild the rows.

        Args:
            tasks: Full task collection; filtering happens here
        """
        self._tasks = list(tasks)
        self._rebuild_rows()

    def set_filter(self, task_filter: TaskFilter) -> None:
        self.task_filter = task_filter
        self._rebuild_rows()

    def bind_store(self, store: TaskStore) -> None:
        """Show the store's tasks and follow every later swap until unmounted."""
        self.unbind_store()
        self._store = store
        store.subscribe(self._on_store_replaced)
        self.set_tasks(store.tasks)

    def unbind_store(self) -> None:
        if self._store is not None:
            self._store.unsubscribe(self._on_store_replaced)
            self._store = None

    def _on_store_replaced(self, tasks: Iterable[Task], reason: str) -> None:
        self.set_tasks(tasks)

    def on_mount(self) -> None:
        if self._initial_store is not None:
            self.bind_store(self._initial_store)

    def on_unmount(self) -> None:
        self.unbind_store()

    def select_task(self, task_id: str) -> bool:
        """Move the cursor to a task. Returns False if it is not shown."""
        for i, row in enumerate(self._rows):
            if row.task.id == task_id:
                self.cursor_index = i
                return True
        return False

    def _rebuild_rows(self) -> None:
        previous_id = self.cursor_task_id

        self._rows = self.hierarchy.build_rows(
            self._tasks, self.task_filter, auto_expand=self.auto_expand
        )
        logger.debug(f"TaskTreeView: rebuilt {len(self._rows)} rows from {len(self._tasks)} tasks")

        if previous_id is None or not self.select_task(previous_id):
            self.cursor_index = min(self.cursor_index, max(len(self._rows) - 1, 0))
        self.refresh(layout=True)

    # ==========================================================================
    # RENDERING
    # ==========================================================================

    def render(self) -> Text:
        """Render all rows as Rich Text, one line per row."""
        if not self._rows:
            return Text(self.empty_message, style=COMMENT)

        text = Text()
        for i, row in enumerate(self._rows):
            if i:
                text.append("\n")
            text.append_text(self._render_row(row, selected=(i == self.cursor_index)))
        return text

    def _render_row(self, row: FlatRow, selected: bool) -> Text:
        line = Text(INDENT * row.depth)

        if row.has_subtasks:
            marker = EXPANDED_MARKER if row.is_expanded else COLLAPSED_MARKER
        else:
            marker = LEAF_MARKER
        line.append(marker, style=COMMENT)

        task = row.task
        line.append(f"{STATUS_MARKERS[task.status]} ", style=STATUS_COLORS[task.status])

        if task.is_discarded:
            title_style = f"{DISCARDED_COLOR} strike"
        elif selected:
            title_style = FOREGROUND
        else:
            title_style = get_level_color(row.depth)
        line.append(task.title or task.id, style=title_style)

        if selected and self.has_focus:
            line.stylize(f"on {SELECTION}")
        return line

    def get_content_height(self, container, viewport, width: int) -> int:
        return max(len(self._rows), 1)

    # ==========================================================================
    # ACTIONS
    # ==========================================================================

    def action_cursor_up(self) -> None:
        if self.cursor_index > 0:
            self.cursor_index -= 1

    def action_cursor_down(self) -> None:
        if self.cursor_index < len(self._rows) - 1:
            self.cursor_index += 1

    def action_toggle_expansion(self) -> None:
        """Expand or collapse the task under the cursor."""
        task_id = self.cursor_task_id
        if task_id is None or not self._rows[self.cursor_index].has_subtasks:
            return
        expanded = self.hierarchy.toggle_expansion(task_id)
        self._rebuild_rows()
        self.post_message(self.ExpansionToggled(task_id, expanded))

    def action_expand(self) -> None:
        row = self._cursor_row()
        if row is not None and row.has_subtasks and not row.is_expanded:
            self.action_toggle_expansion()

    def action_collapse(self) -> None:
        row = self._cursor_row()
        if row is not None and row.has_subtasks and row.is_expanded:
            self.action_toggle_expansion()

    def action_move_up(self) -> None:
        self._request_reorder("move_up", keyboard_reorder.move_up)

    def action_move_down(self) -> None:
        self._request_reorder("move_down", keyboard_reorder.move_down)

    def action_indent(self) -> None:
        self._request_reorder(
            "indent",
            lambda rows, task_id: keyboard_reorder.indent(rows, task_id, self._tasks),
        )

    def action_outdent(self) -> None:
        self._request_reorder("outdent", keyboard_reorder.outdent)

    def _cursor_row(self) -> Optional[FlatRow]:
        if 0 <= self.cursor_index < len(self._rows):
            return self._rows[self.cursor_index]
        return None

    def _request_reorder(self, action: str, build_updates) -> None:
        task_id = self.cursor_task_id
        if task_id is None:
            return
        updates = build_updates(self._rows, task_id)
        if not updates:
            logger.debug(f"TaskTreeView: {action} not applicable to {task_id}")
            return
        self.post_message(self.ReorderRequested(updates, action))
