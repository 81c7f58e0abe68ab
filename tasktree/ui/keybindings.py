"""Keybindings for the tasktree widgets.

Defines the keyboard shortcuts of the task tree:
- Cursor navigation (Up/Down arrows)
- Expand/collapse (Space, Left, Right)
- Keyboard reordering (Alt+Up/Down, Tab/Shift+Tab)
"""

from textual.binding import Binding


# Cursor navigation keybindings
NAVIGATION_BINDINGS = [
    Binding("up", "cursor_up", "Up", show=False),
    Binding("down", "cursor_down", "Down", show=False),
]

# Expansion keybindings
EXPANSION_BINDINGS = [
    Binding("space", "toggle_expansion", "Expand/Collapse", show=True),
    Binding("right", "expand", "Expand", show=False),
    Binding("left", "collapse", "Collapse", show=False),
]

# Reorder keybindings
REORDER_BINDINGS = [
    Binding("alt+up", "move_up", "Move Up", show=True),
    Binding("alt+down", "move_down", "Move Down", show=True),
    Binding("tab", "indent", "Indent", show=True),
    Binding("shift+tab", "outdent", "Outdent", show=True),
]

TASK_TREE_BINDINGS = NAVIGATION_BINDINGS + EXPANSION_BINDINGS + REORDER_BINDINGS
