"""Tests for the debounced realtime reconciler."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeRemote, make_snapshot, make_task
from kanban_engine.board.coordinator import MutationCoordinator
from kanban_engine.board.intents import MoveTask
from kanban_engine.board.permissions import PermissionGate
from kanban_engine.board.reconciler import RealtimeReconciler, project_filters
from kanban_engine.board.store import TaskStore
from kanban_engine.domain.models import ChangeEvent
from kanban_engine.errors import NetworkFailure
from kanban_engine.realtime.manager import SubscriptionManager


def _insert(task_id: str, project_id: str = "p1", stage_id: str = "todo") -> dict:
    return {
        "eventType": "INSERT",
        "table": "tasks",
        "new": {"id": task_id, "project_id": project_id, "stage_id": stage_id},
        "old": {},
    }


@pytest.fixture
def manager() -> SubscriptionManager:
    manager = SubscriptionManager()
    manager.open_session("session-1")
    return manager


def _reconciler(remote: FakeRemote, notifier, manager: SubscriptionManager, role: str = "member"):
    store = TaskStore(["todo", "doing", "done"])
    gate = PermissionGate()
    coordinator = MutationCoordinator(store, remote, gate, notifier, project_id="p1")
    reconciler = RealtimeReconciler("p1", remote, coordinator, gate, manager, debounce_seconds=60)
    reconciler.commit(make_snapshot({"todo": [make_task("T1")], "doing": []}, role=role))
    reconciler.start()
    return store, gate, coordinator, reconciler


def test_project_filters_scope_every_table() -> None:
    assert project_filters("p1") == {
        "projects": "id=eq.p1",
        "tasks": "project_id=eq.p1",
        "project_members": "project_id=eq.p1",
    }


@pytest.mark.anyio
class TestRealtimeReconciler:
    async def test_realtime_insert_is_merged_by_refetch(self, remote, notifier, manager) -> None:
        store, _, _, reconciler = _reconciler(remote, notifier, manager)
        reconciler.mark_initial_load_complete()
        remote.snapshot = make_snapshot({"todo": [make_task("T1"), make_task("T2")], "doing": []})

        assert manager.deliver(_insert("T2")) == 1
        assert reconciler.refetch_scheduled
        assert await reconciler.flush() is True

        assert store.state.as_dict() == {"todo": ["T1", "T2"], "doing": [], "done": []}
        assert [t.id for t in store.state.tasks("todo")] == ["T1", "T2"]

    async def test_events_before_initial_load_are_dropped(self, remote, notifier, manager) -> None:
        _, _, _, reconciler = _reconciler(remote, notifier, manager)
        manager.deliver(_insert("T2"))
        assert not reconciler.refetch_scheduled
        assert await reconciler.flush() is False
        assert remote.calls == []

    async def test_burst_is_coalesced_into_one_refetch(self, remote, notifier, manager) -> None:
        _, _, _, reconciler = _reconciler(remote, notifier, manager)
        reconciler.mark_initial_load_complete()
        remote.snapshot = make_snapshot({"todo": [make_task("T1")]})
        for i in range(5):
            manager.deliver(_insert(f"N{i}"))
        assert reconciler.coalesced == 4
        await reconciler.flush()
        assert [c[0] for c in remote.calls] == ["fetch"]

    async def test_other_projects_are_filtered_out(self, remote, notifier, manager) -> None:
        _, _, _, reconciler = _reconciler(remote, notifier, manager)
        reconciler.mark_initial_load_complete()
        assert manager.deliver(_insert("X1", project_id="p2")) == 0
        assert not reconciler.refetch_scheduled

    async def test_debounce_timer_fires_on_its_own(self, remote, notifier, manager) -> None:
        store, _, _, reconciler = _reconciler(remote, notifier, manager)
        reconciler.debounce_seconds = 0.01
        reconciler.mark_initial_load_complete()
        remote.snapshot = make_snapshot({"todo": [], "doing": [make_task("T1", "doing")]})
        manager.deliver(_insert("T1"))
        for _ in range(100):
            await asyncio.sleep(0.01)
            if reconciler.committed_epoch:
                break
        assert store.state.as_dict()["doing"] == ["T1"]

    async def test_latest_refetch_wins(self, remote, notifier, manager) -> None:
        store, _, _, reconciler = _reconciler(remote, notifier, manager)
        reconciler.mark_initial_load_complete()
        gate = remote.hold("fetch")
        remote.snapshot = make_snapshot({"todo": [make_task("T1"), make_task("T2")]})

        older = asyncio.ensure_future(reconciler.refetch())
        await asyncio.sleep(0)
        newer = asyncio.ensure_future(reconciler.refetch())
        await asyncio.sleep(0)
        gate.set()

        assert await older is False
        assert await newer is True
        assert reconciler.committed_epoch == reconciler.epoch
        assert store.state.task_ids("todo") == ["T1", "T2"]

    async def test_refetch_failure_is_logged_not_raised(self, remote, notifier, manager) -> None:
        store, _, _, reconciler = _reconciler(remote, notifier, manager)
        reconciler.mark_initial_load_complete()
        before = store.snapshot()
        remote.fail("fetch", NetworkFailure("offline"))
        manager.deliver(_insert("T2"))
        assert await reconciler.flush() is False
        assert store.state is before
        assert notifier.history == []

    async def test_refetch_updates_role(self, remote, notifier, manager) -> None:
        _, gate, _, reconciler = _reconciler(remote, notifier, manager, role="member")
        reconciler.mark_initial_load_complete()
        assert gate.permissions.can_edit
        remote.snapshot = make_snapshot({"todo": [make_task("T1")]}, role="viewer")
        manager.deliver({"eventType": "UPDATE", "table": "project_members", "new": {"project_id": "p1", "role": "viewer"}})
        await reconciler.flush()
        assert gate.role == "viewer"
        assert not gate.permissions.can_edit

    async def test_in_flight_move_survives_refetch(self, remote, notifier, manager) -> None:
        store, _, coordinator, reconciler = _reconciler(remote, notifier, manager)
        reconciler.mark_initial_load_complete()
        hold = remote.hold("move")
        task = coordinator.submit(MoveTask("T1", "doing", 0))

        remote.snapshot = make_snapshot({"todo": [make_task("T1"), make_task("T2")], "doing": []})
        manager.deliver(_insert("T2"))
        await reconciler.flush()
        assert store.state.as_dict() == {"todo": ["T2"], "doing": ["T1"], "done": []}

        hold.set()
        await task
        assert store.state.as_dict() == {"todo": ["T2"], "doing": ["T1"], "done": []}

    async def test_close_discards_pending_refetch(self, remote, notifier, manager) -> None:
        store, _, _, reconciler = _reconciler(remote, notifier, manager)
        reconciler.mark_initial_load_complete()
        manager.deliver(_insert("T2"))
        assert reconciler.refetch_scheduled
        handlers_before = manager.handler_count

        reconciler.close()

        assert not reconciler.refetch_scheduled
        assert manager.handler_count == handlers_before - 3
        assert manager.deliver(ChangeEvent("insert", "tasks", new={"id": "T3", "project_id": "p1"})) == 0
        assert await reconciler.flush() is False
        assert remote.calls == []

    async def test_result_arriving_after_close_is_discarded(self, remote, notifier, manager) -> None:
        store, _, _, reconciler = _reconciler(remote, notifier, manager)
        reconciler.mark_initial_load_complete()
        gate = remote.hold("fetch")
        remote.snapshot = make_snapshot({"todo": []})
        pending = asyncio.ensure_future(reconciler.refetch())
        await asyncio.sleep(0)
        reconciler.close()
        gate.set()
        with pytest.raises(asyncio.CancelledError):
            await pending
        assert store.state.task_ids("todo") == ["T1"]

    async def test_read_overlapping_an_acknowledged_write_is_retried(self, remote, notifier, manager) -> None:
        store, _, coordinator, reconciler = _reconciler(remote, notifier, manager)
        reconciler.mark_initial_load_complete()
        gate = remote.hold("fetch")
        remote.snapshot = make_snapshot({"todo": [make_task("T1")], "doing": []})

        pending = asyncio.ensure_future(reconciler.refetch())
        await asyncio.sleep(0)
        await coordinator.dispatch(MoveTask("T1", "doing", 0))
        assert store.state.as_dict() == {"todo": [], "doing": ["T1"], "done": []}

        gate.set()
        assert await pending is False
        assert store.state.as_dict() == {"todo": [], "doing": ["T1"], "done": []}
        assert reconciler.committed_epoch == 0
        assert reconciler.refetch_scheduled

        remote.snapshot = make_snapshot({"todo": [], "doing": [make_task("T1", "doing")]})
        assert await reconciler.flush() is True
        assert store.state.as_dict() == {"todo": [], "doing": ["T1"], "done": []}
