"""
Tests for the reconciliation layer.

Tests cover:
- Optimistic apply and commit
- Rollback on authority failure and timeout
- Drift detection without rollback
- Structural rejection before any submission
- Queued operations
- Drag-end handling through move()
- Task store listeners
"""

import asyncio

import pytest

from tasktree.config.reorder_config import ReorderConfig
from tasktree.models import DropZoneDescriptor, RelativePositionUpdate as Update
from tasktree.services.diagnostics import DiagnosticEventType, DiagnosticsEmitter
from tasktree.services.reconciliation import (
    ReconciliationSession,
    ReconciliationState,
    TaskStore,
    compute_drift,
)
from tasktree.services.reorder_errors import CircularNestingError, ReconciliationFailure
from tests.helpers import AuthorityError, assert_dense_positions, scope_order


@pytest.fixture
def store(nested_tasks):
    return TaskStore(nested_tasks)


@pytest.fixture
def events():
    return []


@pytest.fixture
def diagnostics(events):
    return DiagnosticsEmitter(sinks=[events.append])


@pytest.fixture
def make_session(store, authority, diagnostics):
    def _make_session(**config):
        return ReconciliationSession(
            store,
            authority,
            ReorderConfig(**config),
            diagnostics=diagnostics,
        )
    return _make_session


class TestCommit:
    """Successful submissions."""

    @pytest.mark.asyncio
    async def test_commit_keeps_prediction(self, store, authority, make_session):
        session = make_session()
        result = await session.submit([Update(id="c", position="first")])

        assert result.state == ReconciliationState.COMMITTED
        assert session.state == ReconciliationState.COMMITTED
        assert scope_order(store.tasks) == ["c", "a", "b"]
        assert [p.position for p in result.placements] == [1]
        assert len(authority.received) == 1
        assert result.drift == []

    @pytest.mark.asyncio
    async def test_prediction_matches_authority(self, store, authority, make_session):
        session = make_session(drift_check=True)
        result = await session.submit([
            Update(id="a1", parent_id=None, after_task_id="c"),
            Update(id="b1", parent_id=None, after_task_id="a1"),
        ])

        assert result.has_drift is False
        assert {t.id: (t.parent_id, t.position) for t in store.tasks} == {
            t.id: (t.parent_id, t.position) for t in authority.snapshot()
        }
        assert_dense_positions(store.tasks)

    @pytest.mark.asyncio
    async def test_empty_batch_is_idle(self, authority, make_session):
        result = await make_session().submit([])
        assert result.state == ReconciliationState.IDLE
        assert authority.received == []

    @pytest.mark.asyncio
    async def test_ack_only_fetches_for_drift_check(self, authority, make_session):
        authority.return_tasks = False
        session = make_session(drift_check=True)
        await session.submit([Update(id="c", position="first")])
        assert authority.fetch_count == 1

    @pytest.mark.asyncio
    async def test_no_fetch_without_drift_check(self, authority, make_session):
        authority.return_tasks = False
        await make_session().submit([Update(id="c", position="first")])
        assert authority.fetch_count == 0


class TestRollback:
    """Failed submissions restore the snapshot."""

    @pytest.mark.asyncio
    async def test_failure_restores_snapshot(self, store, authority, make_session, events):
        snapshot = store.snapshot()
        reasons = []
        store.subscribe(lambda tasks, reason: reasons.append(reason))
        authority.fail = True
        session = make_session()

        with pytest.raises(ReconciliationFailure) as exc_info:
            await session.submit([Update(id="c", position="first")])

        assert store.tasks is snapshot
        assert session.state == ReconciliationState.ROLLED_BACK
        assert reasons == ["optimistic", "rollback"]
        assert isinstance(exc_info.value.cause, AuthorityError)
        assert [e.type for e in events] == [DiagnosticEventType.RECONCILIATION_FAILURE]
        assert events[0].details["updates"] == [
            {"id": "c", "parent_id": None, "position": "first"}
        ]

    @pytest.mark.asyncio
    async def test_timeout_rolls_back(self, store, authority, make_session, events):
        snapshot = store.snapshot()
        authority.delay = 1.0
        session = make_session(submit_timeout=0.05)

        with pytest.raises(ReconciliationFailure) as exc_info:
            await session.submit([Update(id="c", position="first")])

        assert isinstance(exc_info.value.cause, asyncio.TimeoutError)
        assert store.tasks is snapshot
        assert "timed out" in events[0].details["reason"]

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_mask_failure(self, store, authority):
        def broken_sink(event):
            raise RuntimeError("sink down")

        authority.fail = True
        session = ReconciliationSession(
            store, authority, diagnostics=DiagnosticsEmitter(sinks=[broken_sink])
        )
        with pytest.raises(ReconciliationFailure):
            await session.submit([Update(id="c", position="first")])


class TestStructuralRejection:
    """Invalid batches never reach the authority."""

    @pytest.mark.asyncio
    async def test_cycle_rejected_before_submit(self, store, authority, make_session):
        snapshot = store.snapshot()
        session = make_session()

        with pytest.raises(CircularNestingError):
            await session.submit([Update(id="a", parent_id="a2x", position="first")])

        assert store.tasks is snapshot
        assert authority.received == []
        assert session.state == ReconciliationState.IDLE


class TestDrift:
    """Prediction vs. authority mismatches."""

    @pytest.mark.asyncio
    async def test_drift_reported_without_rollback(self, store, authority, make_session, events):
        def concurrent_swap(tasks):
            tasks["a"].position, tasks["b"].position = 2, 1

        authority.concurrent_edit = concurrent_swap
        session = make_session(drift_check=True)
        result = await session.submit([Update(id="c", position="last")])

        assert result.state == ReconciliationState.COMMITTED
        assert sorted(d.task_id for d in result.drift) == ["a", "b"]
        assert scope_order(store.tasks) == ["a", "b", "c"]
        assert [e.type for e in events] == [DiagnosticEventType.DRIFT]
        assert len(events[0].details["drift"]) == 2
        assert events[0].details["sent"] == [{"id": "c", "parent_id": None, "position": "last"}]

    @pytest.mark.asyncio
    async def test_drift_ignored_when_check_disabled(self, authority, make_session, events):
        authority.concurrent_edit = lambda tasks: setattr(tasks["a"], "position", 9)
        result = await make_session().submit([Update(id="c", position="last")])
        assert result.drift == []
        assert events == []

    def test_compute_drift(self, make_task):
        predicted = [make_task("a", position=1), make_task("b", position=2), make_task("x")]
        actual = [
            make_task("a", position=2),
            make_task("b", position=2, parent_id="a"),
            make_task("new"),
        ]
        drift = {d.task_id: d for d in compute_drift(predicted, actual)}

        assert drift["a"].position_delta == 1
        assert drift["a"].parent_changed is False
        assert drift["b"].parent_changed is True
        assert drift["x"].actual_position is None
        assert "new" not in drift


class TestQueuedOperations:
    """Operations on one store never overlap."""

    @pytest.mark.asyncio
    async def test_concurrent_submits_are_serialized(self, store, authority, make_session):
        authority.delay = 0.01
        session = make_session(drift_check=True)

        first, second = await asyncio.gather(
            session.submit([Update(id="a", position="last")]),
            session.submit([Update(id="c", position="first")]),
        )

        assert first.state == second.state == ReconciliationState.COMMITTED
        assert [batch[0].id for batch in authority.received] == ["a", "c"]
        assert scope_order(store.tasks) == ["c", "b", "a"]
        assert not first.has_drift and not second.has_drift
        assert session.busy is False


class TestMove:
    """Drag-end handling."""

    @pytest.mark.asyncio
    async def test_reorder_drop(self, store, authority, make_session):
        session = make_session()
        rows = session.hierarchy.build_rows(store.tasks)
        descriptor = DropZoneDescriptor(mode="reorder", target_task_id="c", edge="below")

        result = await session.move(descriptor, ["a"], rows)

        assert result.state == ReconciliationState.COMMITTED
        assert scope_order(store.tasks) == ["b", "c", "a"]
        assert authority.received[0][0].after_task_id == "c"

    @pytest.mark.asyncio
    async def test_nest_drop_expands_parent(self, store, make_session):
        session = make_session()
        rows = session.hierarchy.build_rows(store.tasks)
        descriptor = DropZoneDescriptor(mode="nest", target_task_id="c")

        await session.move(descriptor, ["b1"], rows)

        assert scope_order(store.tasks, "c") == ["b1"]
        assert session.hierarchy.is_task_expanded("c") is True

    @pytest.mark.asyncio
    async def test_aborted_drag(self, store, authority, make_session):
        session = make_session()
        rows = session.hierarchy.build_rows(store.tasks)
        snapshot = store.snapshot()

        assert await session.move(None, ["a"], rows) is None
        assert store.tasks is snapshot
        assert authority.received == []


    @pytest.mark.asyncio
    async def test_queued_move_uses_rolled_back_state(self, store, authority, make_session):
        """A drag queued behind a failing submit anchors on the restored tasks."""
        send = authority.send_updates
        calls = []

        async def fail_first(updates):
            calls.append(updates)
            if len(calls) == 1:
                await asyncio.sleep(0.01)
                raise AuthorityError("authority unavailable")
            return await send(updates)

        authority.send_updates = fail_first
        session = make_session()
        rows = session.build_rows()

        failed, moved = await asyncio.gather(
            session.submit([Update(id="b1", parent_id="c", position="first")]),
            session.move(DropZoneDescriptor(mode="nest", target_task_id="c"), ["a1"], rows),
            return_exceptions=True,
        )

        assert isinstance(failed, ReconciliationFailure)
        assert moved.state == ReconciliationState.COMMITTED
        assert [(u.id, u.parent_id, u.position) for u in calls[1]] == [("a1", "c", "first")]
        assert scope_order(store.tasks, "c") == ["a1"]
        assert scope_order(store.tasks, "b") == ["b1"]
        assert_dense_positions(store.tasks)


class TestBuildRows:
    """Rows built with the configured auto_expand."""

    def test_auto_expand_by_default(self, make_session):
        rows = make_session().build_rows()
        assert [row.task.id for row in rows] == ["a", "a1", "a2", "a2x", "b", "b1", "c"]

    def test_auto_expand_disabled(self, make_session):
        rows = make_session(auto_expand=False).build_rows()
        assert [row.task.id for row in rows] == ["a", "b", "c"]

    def test_env_override_disables_auto_expand(self, store, authority, make_task, monkeypatch):
        monkeypatch.setenv("TASKTREE_AUTO_EXPAND", "false")
        session = ReconciliationSession(store, authority, ReorderConfig().with_env_overrides())
        tasks = [make_task("a"), make_task("b", parent_id="a")]
        assert [row.task.id for row in session.build_rows(tasks)] == ["a"]


class TestTaskStore:
    """Tests for TaskStore."""

    def test_refresh_notifies(self, store, make_task):
        seen = []
        store.subscribe(lambda tasks, reason: seen.append((len(tasks), reason)))
        store.refresh([make_task("z")])
        assert seen == [(1, "refresh")]

    def test_listener_errors_are_contained(self, store, make_task):
        def broken(tasks, reason):
            raise RuntimeError("boom")

        seen = []
        store.subscribe(broken)
        store.subscribe(lambda tasks, reason: seen.append(reason))
        store.replace([make_task("z")], reason="test")
        assert seen == ["test"]

    def test_unsubscribe(self, store, make_task):
        seen = []
        listener = lambda tasks, reason: seen.append(reason)
        store.subscribe(listener)
        store.unsubscribe(listener)
        store.refresh([make_task("z")])
        assert seen == []
