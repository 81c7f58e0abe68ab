"""
Pytest configuration and fixtures for tasktree tests.

Provides task factories, sample hierarchies and a fake ordering authority.
"""

from datetime import datetime

import pytest

from tasktree.models import Task, TaskStatus
from tasktree.services.hierarchy import TaskHierarchy
from tests.helpers.fake_authority import FakeOrderingAuthority


@pytest.fixture
def make_task():
    """
    Factory fixture for creating Task instances.

    Example:
        def test_something(make_task):
            task = make_task("a", position=2)
            child = make_task("b", parent_id="a")
    """
    def _make_task(
        task_id: str,
        parent_id=None,
        position: int = 1,
        title=None,
        status: TaskStatus = TaskStatus.NEW_TASK,
        discarded: bool = False,
    ) -> Task:
        return Task(
            id=task_id,
            title=title if title is not None else f"Task {task_id.upper()}",
            parent_id=parent_id,
            position=position,
            status=status,
            job_id="job-1",
            discarded_at=datetime(2024, 1, 1) if discarded else None,
        )

    return _make_task


@pytest.fixture
def flat_tasks(make_task):
    """Three root tasks: A, B, C."""
    return [
        make_task("a", position=1),
        make_task("b", position=2),
        make_task("c", position=3),
    ]


@pytest.fixture
def nested_tasks(make_task):
    """
    Two-level hierarchy:

        A
          A1
          A2
            A2x
        B
          B1
        C
    """
    return [
        make_task("a", position=1),
        make_task("a1", parent_id="a", position=1),
        make_task("a2", parent_id="a", position=2),
        make_task("a2x", parent_id="a2", position=1),
        make_task("b", position=2),
        make_task("b1", parent_id="b", position=1),
        make_task("c", position=3),
    ]


@pytest.fixture
def hierarchy():
    """Fresh hierarchy index."""
    return TaskHierarchy()


@pytest.fixture
def authority(nested_tasks):
    """Fake ordering authority seeded with the nested hierarchy."""
    return FakeOrderingAuthority(nested_tasks)
