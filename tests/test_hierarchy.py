"""
Tests for the hierarchy index.

Tests cover:
- Tree organization sorted by position
- Orphans treated as roots, filtered parents taking their subtrees
- Pre-order flattening honoring expansion state
- One-time auto-expansion
- Visual index for multi-selection ordering
"""

from tasktree.services.hierarchy import (
    TaskExpansionState,
    TaskHierarchy,
    build_children_index,
)
from tasktree.services.task_filter import TaskFilter


class TestOrganize:
    """Tests for TaskHierarchy.organize()."""

    def test_roots_sorted_by_position(self, make_task, hierarchy):
        tasks = [
            make_task("c", position=3),
            make_task("a", position=1),
            make_task("b", position=2),
        ]
        tree = hierarchy.organize(tasks)
        assert [node.task.id for node in tree] == ["a", "b", "c"]

    def test_subtasks_nested_and_sorted(self, nested_tasks, hierarchy):
        tree = hierarchy.organize(reversed(nested_tasks))
        a = tree[0]
        assert [n.task.id for n in a.subtasks] == ["a1", "a2"]
        assert [n.task.id for n in a.subtasks[1].subtasks] == ["a2x"]

    def test_orphan_is_root(self, make_task, hierarchy):
        """A task whose parent is missing from the collection is shown as a root."""
        tasks = [make_task("a"), make_task("o", parent_id="gone", position=1)]
        tree = hierarchy.organize(tasks)
        assert sorted(node.task.id for node in tree) == ["a", "o"]

    def test_filtered_parent_hides_subtree(self, make_task, hierarchy):
        tasks = [
            make_task("a", title="keep"),
            make_task("b", position=2, title="hidden"),
            make_task("b1", parent_id="b", title="keep child"),
        ]
        tree = hierarchy.organize(tasks, TaskFilter(query="keep"))
        assert [node.task.id for node in tree] == ["a"]

    def test_filtered_child_skipped(self, nested_tasks, hierarchy):
        tree = hierarchy.organize(nested_tasks, lambda t: t.id != "a1")
        assert [n.task.id for n in tree[0].subtasks] == ["a2"]

    def test_empty(self, hierarchy):
        assert hierarchy.organize([]) == []


class TestFlatten:
    """Tests for flatten() and build_rows()."""

    def test_collapsed_by_default_without_auto_expand(self, nested_tasks, hierarchy):
        rows = hierarchy.build_rows(nested_tasks, auto_expand=False)
        assert hierarchy.flat_ids(rows) == ["a", "b", "c"]
        assert rows[0].has_subtasks is True
        assert rows[0].is_expanded is False
        assert rows[2].has_subtasks is False

    def test_auto_expand_shows_everything(self, nested_tasks, hierarchy):
        rows = hierarchy.build_rows(nested_tasks)
        assert hierarchy.flat_ids(rows) == ["a", "a1", "a2", "a2x", "b", "b1", "c"]
        assert [row.depth for row in rows] == [0, 1, 1, 2, 0, 1, 0]
        assert [row.parent_id for row in rows] == [None, "a", "a", "a2", None, "b", None]

    def test_children_follow_only_expanded_parent(self, nested_tasks, hierarchy):
        tree = hierarchy.organize(nested_tasks)
        rows = hierarchy.flatten(tree, expanded={"a"})
        assert hierarchy.flat_ids(rows) == ["a", "a1", "a2", "b", "c"]

    def test_orphan_row_has_no_effective_parent(self, make_task, hierarchy):
        rows = hierarchy.build_rows([make_task("o", parent_id="gone")])
        assert rows[0].parent_id is None
        assert rows[0].task.parent_id == "gone"
        assert rows[0].depth == 0


class TestExpansionState:
    """Tests for TaskExpansionState."""

    def test_toggle_returns_new_state(self):
        state = TaskExpansionState()
        assert state.toggle("a") is True
        assert state.is_expanded("a") is True
        assert state.toggle("a") is False
        assert state.is_expanded("a") is False

    def test_auto_expand_runs_once(self, nested_tasks, hierarchy):
        hierarchy.build_rows(nested_tasks)
        assert hierarchy.expansion.expanded_ids == {"a", "a2", "b"}

        hierarchy.toggle_expansion("a")
        rows = hierarchy.build_rows(nested_tasks)
        assert hierarchy.flat_ids(rows) == ["a", "b", "b1", "c"]

    def test_auto_expand_waits_for_non_empty_tree(self, nested_tasks, hierarchy):
        hierarchy.build_rows([])
        assert hierarchy.expansion.has_auto_expanded is False
        hierarchy.build_rows(nested_tasks)
        assert hierarchy.expansion.has_auto_expanded is True

    def test_reset(self, nested_tasks, hierarchy):
        hierarchy.build_rows(nested_tasks)
        hierarchy.reset_expansion()
        assert hierarchy.expansion.expanded_ids == set()
        assert hierarchy.expansion.has_auto_expanded is False

    def test_expand_task(self, hierarchy):
        hierarchy.expand_task("a")
        assert hierarchy.is_task_expanded("a") is True


class TestVisualIndex:
    """Tests for visual_index()."""

    def test_pre_order_ignores_collapse(self, nested_tasks, hierarchy):
        index = hierarchy.visual_index(nested_tasks)
        assert index == {"a": 0, "a1": 1, "a2": 2, "a2x": 3, "b": 4, "b1": 5, "c": 6}

    def test_children_index(self, nested_tasks):
        index = build_children_index(nested_tasks)
        assert [t.id for t in index[None]] == ["a", "b", "c"]
        assert [t.id for t in index["a"]] == ["a1", "a2"]
