"""Tests for board state transitions and the task store."""

from __future__ import annotations

import pytest

from conftest import make_task
from kanban_engine.board import state as transitions
from kanban_engine.board.state import BoardState, empty_board
from kanban_engine.board.store import TaskStore


def _board(**columns: list[str]) -> BoardState:
    stage_ids = list(columns) or ["todo", "doing"]
    return transitions.replace_all(
        empty_board(stage_ids),
        {sid: [make_task(tid, sid) for tid in ids] for sid, ids in columns.items()},
    )


def _assert_invariants(state: BoardState, stage_ids: tuple[str, ...]) -> None:
    assert state.stage_ids == stage_ids
    seen = [t.id for t in state.iter_tasks()]
    assert len(seen) == len(set(seen))
    for sid in state.stage_ids:
        assert all(t.stage_id == sid for t in state.tasks(sid))


class TestTransitions:
    def test_move_across_stages(self) -> None:
        state = _board(todo=["T1", "T2"], doing=["T3"])
        moved = transitions.move_task(state, "T1", "doing", 1)
        assert moved.as_dict() == {"todo": ["T2"], "doing": ["T3", "T1"]}
        assert moved.get("T1").stage_id == "doing"
        # Input untouched, untouched tasks shared.
        assert state.as_dict() == {"todo": ["T1", "T2"], "doing": ["T3"]}
        assert moved.get("T3") is state.get("T3")

    def test_move_clamps_position(self) -> None:
        state = _board(todo=["T1", "T2"], doing=["T3"])
        assert transitions.move_task(state, "T1", "doing", 99).as_dict()["doing"] == ["T3", "T1"]
        assert transitions.move_task(state, "T1", "doing", -5).as_dict()["doing"] == ["T1", "T3"]

    def test_move_unknown_task_or_stage_is_noop(self) -> None:
        state = _board(todo=["T1"], doing=[])
        assert transitions.move_task(state, "nope", "doing", 0) is state
        assert transitions.move_task(state, "T1", "nope", 0) is state

    def test_reorder_drops_unlisted_to_tail_and_ignores_strangers(self) -> None:
        state = _board(todo=["T1", "T2", "T3", "T4"], doing=["T5"])
        reordered = transitions.reorder_stage(state, "todo", ["T3", "T5", "T1"])
        assert reordered.as_dict()["todo"] == ["T3", "T1", "T2", "T4"]
        assert reordered.as_dict()["doing"] == ["T5"]

    def test_reorder_is_idempotent(self) -> None:
        state = _board(todo=["T1", "T2", "T3"], doing=[])
        once = transitions.reorder_stage(state, "todo", ["T3", "T1", "T2"])
        twice = transitions.reorder_stage(once, "todo", ["T3", "T1", "T2"])
        assert twice == once
        assert twice is once

    def test_bulk_move_appends_in_given_order(self) -> None:
        state = _board(todo=["T1", "T2", "T3"], doing=["T4"])
        moved = transitions.bulk_move(state, ["T3", "T1", "missing"], "doing")
        assert moved.as_dict() == {"todo": ["T2"], "doing": ["T4", "T3", "T1"]}

    def test_upsert_updates_in_place_or_relocates_to_tail(self) -> None:
        state = _board(todo=["T1", "T2"], doing=["T3"])
        renamed = transitions.upsert_task(state, make_task("T1", "todo", title="Renamed"))
        assert renamed.as_dict()["todo"] == ["T1", "T2"]
        assert renamed.get("T1").title == "Renamed"

        relocated = transitions.upsert_task(state, make_task("T1", "doing"))
        assert relocated.as_dict() == {"todo": ["T2"], "doing": ["T3", "T1"]}

        inserted = transitions.upsert_task(state, make_task("T9", "todo"))
        assert inserted.as_dict()["todo"] == ["T1", "T2", "T9"]

    def test_patch_never_changes_placement(self) -> None:
        state = _board(todo=["T1", "T2"], doing=[])
        patched = transitions.patch_task(state, "T1", {"title": "New", "stage_id": "doing", "position": 7})
        assert patched.as_dict() == {"todo": ["T1", "T2"], "doing": []}
        assert patched.get("T1").title == "New"

    def test_delete_missing_is_noop(self) -> None:
        state = _board(todo=["T1"], doing=[])
        assert transitions.delete_task(state, "nope") is state
        assert transitions.delete_task(state, "T1").as_dict() == {"todo": [], "doing": []}

    def test_replace_all_keeps_stage_set(self) -> None:
        state = empty_board(["todo", "doing"])
        replaced = transitions.replace_all(
            state,
            {"todo": [make_task("T1"), make_task("T1")], "archive": [make_task("T2", "archive")]},
        )
        assert replaced.as_dict() == {"todo": ["T1"], "doing": []}

    def test_replace_task_keeps_index(self) -> None:
        state = _board(todo=["T1", "temp-1", "T2"], doing=[])
        swapped = transitions.replace_task(state, "temp-1", make_task("srv-1", "todo"))
        assert swapped.as_dict()["todo"] == ["T1", "srv-1", "T2"]

    def test_replace_task_drops_earlier_copy_of_server_row(self) -> None:
        state = _board(todo=["T1", "temp-1", "srv-1"], doing=[])
        swapped = transitions.replace_task(state, "temp-1", make_task("srv-1", "todo"))
        assert swapped.as_dict()["todo"] == ["T1", "srv-1"]

    def test_invariants_hold_over_a_sequence(self) -> None:
        stages = ("todo", "doing", "done")
        state = _board(todo=["T1", "T2", "T3"], doing=["T4"], done=[])
        steps = [
            lambda s: transitions.move_task(s, "T1", "done", 0),
            lambda s: transitions.bulk_move(s, ["T2", "T4"], "done"),
            lambda s: transitions.reorder_stage(s, "done", ["T4", "T1"]),
            lambda s: transitions.upsert_task(s, make_task("T2", "todo")),
            lambda s: transitions.delete_task(s, "T3"),
            lambda s: transitions.move_task(s, "T4", "doing", 3),
        ]
        for step in steps:
            state = step(state)
            _assert_invariants(state, stages)
        assert state.as_dict() == {"todo": ["T2"], "doing": ["T4"], "done": ["T1"]}

    def test_refetch_that_reflects_a_move_matches_the_move(self) -> None:
        state = _board(todo=["T1", "T2"], doing=[])
        remote = {"todo": [make_task("T2")], "doing": [make_task("T1", "doing")]}
        direct = transitions.replace_all(state, remote)
        after_move = transitions.replace_all(transitions.move_task(state, "T1", "doing", 0), remote)
        assert after_move == direct


class TestTaskStore:
    def test_snapshot_is_cheap_and_restore_is_exact(self) -> None:
        store = TaskStore(["todo", "doing"])
        store.replace_all({"todo": [make_task("T1"), make_task("T2")]})
        saved = store.snapshot()
        store.move_task("T1", "doing", 0)
        assert store.state.as_dict() == {"todo": ["T2"], "doing": ["T1"]}
        store.restore(saved)
        assert store.state is saved

    def test_restore_rejects_foreign_snapshot(self) -> None:
        store = TaskStore(["todo"])
        with pytest.raises(ValueError):
            store.restore(empty_board(["todo", "doing"]))

    def test_listeners_see_each_change_once(self) -> None:
        store = TaskStore(["todo", "doing"])
        seen: list[dict[str, list[str]]] = []
        unsubscribe = store.subscribe(lambda s: seen.append(s.as_dict()))
        store.replace_all({"todo": [make_task("T1")]})
        store.move_task("missing", "doing", 0)  # no-op, no notification
        store.move_task("T1", "doing", 0)
        unsubscribe()
        store.delete_task("T1")
        assert seen == [{"todo": ["T1"], "doing": []}, {"todo": [], "doing": ["T1"]}]
        assert store.version == 3

    def test_failing_listener_does_not_block_others(self) -> None:
        store = TaskStore(["todo"])
        calls: list[int] = []

        def _boom(_state: BoardState) -> None:
            raise RuntimeError("boom")

        store.subscribe(_boom)
        store.subscribe(lambda s: calls.append(len(s)))
        store.upsert_task(make_task("T1"))
        assert calls == [1]
