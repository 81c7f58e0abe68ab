"""
Tests for the task visibility filter.

Tests cover:
- Deleted filter (live vs. soft-deleted tasks)
- Status filter
- Case-insensitive title search
- Active filter summary
"""

from tasktree.models import TaskStatus
from tasktree.services.task_filter import TaskFilter


class TestDeletedFilter:
    """Tests for the show_deleted switch."""

    def test_live_tasks_shown_by_default(self, make_task):
        assert TaskFilter().is_visible(make_task("a")) is True

    def test_deleted_tasks_hidden_by_default(self, make_task):
        assert TaskFilter().is_visible(make_task("a", discarded=True)) is False

    def test_show_deleted_shows_only_deleted(self, make_task):
        task_filter = TaskFilter(show_deleted=True)
        assert task_filter.is_visible(make_task("a", discarded=True)) is True
        assert task_filter.is_visible(make_task("b")) is False


class TestStatusFilter:
    """Tests for status filtering."""

    def test_all_statuses_is_not_a_filter(self):
        assert TaskFilter().has_status_filter() is False

    def test_status_filter(self, make_task):
        task_filter = TaskFilter(statuses={TaskStatus.IN_PROGRESS})
        assert task_filter.has_status_filter() is True
        assert task_filter.is_visible(make_task("a", status=TaskStatus.IN_PROGRESS)) is True
        assert task_filter.is_visible(make_task("b", status=TaskStatus.PAUSED)) is False


class TestSearchFilter:
    """Tests for title search."""

    def test_search_is_case_insensitive(self, make_task):
        task_filter = TaskFilter(query="DRIVE")
        assert task_filter.is_visible(make_task("a", title="Replace failed drive")) is True
        assert task_filter.is_visible(make_task("b", title="Order cables")) is False

    def test_blank_query_ignored(self, make_task):
        task_filter = TaskFilter(query="   ")
        assert task_filter.has_search_filter() is False
        assert task_filter.is_visible(make_task("a", title="anything")) is True

    def test_filters_combine(self, make_task):
        task_filter = TaskFilter(statuses={TaskStatus.NEW_TASK}, query="cable")
        assert task_filter(make_task("a", title="Cable run")) is True
        assert task_filter(make_task("b", title="Cable run", status=TaskStatus.CANCELLED)) is False


class TestSummary:
    """Tests for active_filter_summary."""

    def test_no_filters(self):
        assert TaskFilter().active_filter_summary() == []

    def test_all_filters(self):
        task_filter = TaskFilter(
            statuses={TaskStatus.PAUSED, TaskStatus.CANCELLED},
            show_deleted=True,
            query=" rack ",
        )
        assert task_filter.active_filter_summary() == [
            "Status: 2 selected",
            'Search: "rack"',
            "Showing deleted",
        ]
