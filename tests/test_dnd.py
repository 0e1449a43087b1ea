"""Tests for drag activation sensors, the scroll lock and drop resolution."""

from __future__ import annotations

import pytest

from conftest import make_task
from kanban_engine.board import state as transitions
from kanban_engine.board.intents import BulkDelete, BulkMove, MoveTask, ReorderStage
from kanban_engine.board.state import BoardState, empty_board
from kanban_engine.dnd.controller import DragController, resolve_drop
from kanban_engine.dnd.scroll_lock import (
    BodyScrollLock,
    HeadlessViewport,
    get_scroll_lock,
    init_scroll_lock,
    teardown_scroll_lock,
)
from kanban_engine.dnd.sensors import InputEvent, PointerActivation, SensorState, TouchActivation


def _board() -> BoardState:
    return transitions.replace_all(
        empty_board(["todo", "doing"]),
        {
            "todo": [make_task("T1"), make_task("T2"), make_task("T3")],
            "doing": [make_task("T4", "doing")],
        },
    )


def pointer(x: float, y: float, t: float = 0.0, **kw) -> InputEvent:
    return InputEvent("pointer", x, y, t, **kw)


def touch(x: float, y: float, t: float = 0.0, **kw) -> InputEvent:
    return InputEvent("touch", x, y, t, **kw)


class TestSensors:
    def test_pointer_needs_distance(self) -> None:
        sensor = PointerActivation(distance=10)
        assert sensor.press(pointer(0, 0, task_id="T1"))
        assert not sensor.move(pointer(6, 6))  # ~8.5px
        assert sensor.state == SensorState.PENDING
        assert sensor.move(pointer(6, 8))  # 10px
        assert sensor.is_active
        assert sensor.task_id == "T1"

    def test_interactive_targets_never_start_a_drag(self) -> None:
        sensor = PointerActivation()
        for tag in ("button", "INPUT", "a", "textarea", "select"):
            assert not sensor.press(pointer(0, 0, target_tag=tag, task_id="T1"))
        assert sensor.state == SensorState.IDLE
        assert sensor.press(pointer(0, 0, target_tag="div", task_id="T1"))

    def test_touch_hold_activates(self) -> None:
        sensor = TouchActivation(delay=0.4, tolerance=5)
        sensor.press(touch(0, 0, 0.0, task_id="T1"))
        assert not sensor.advance(0.39)
        assert sensor.move(touch(3, 0, 0.41))
        assert sensor.is_active

    def test_touch_moving_during_hold_cancels(self) -> None:
        sensor = TouchActivation(delay=0.4, tolerance=5)
        sensor.press(touch(0, 0, 0.0, task_id="T1"))
        assert not sensor.move(touch(0, 12, 0.2))
        assert sensor.state == SensorState.CANCELLED
        assert not sensor.advance(1.0)
        assert not sensor.release(touch(0, 12, 1.0))

    def test_touch_tolerance_is_euclidean(self) -> None:
        sensor = TouchActivation(delay=0.4, tolerance=5)
        sensor.press(touch(0, 0, 0.0, task_id="T1"))
        sensor.move(touch(4, 4, 0.1))  # ~5.66px
        assert sensor.state == SensorState.CANCELLED

    def test_mouse_events_do_not_feed_touch_sensor(self) -> None:
        assert not TouchActivation().press(pointer(0, 0, task_id="T1"))

    def test_pending_without_press_never_activates(self) -> None:
        for sensor in (PointerActivation(distance=1), TouchActivation(delay=0.1)):
            sensor.state = SensorState.PENDING
            assert not sensor.move(InputEvent(sensor.kind, 50, 50, 5.0))
            assert not sensor.advance(5.0)
            assert not sensor.is_active


class TestScrollLock:
    def test_nested_locks_restore_once(self) -> None:
        viewport = HeadlessViewport(scroll_y=240)
        lock = BodyScrollLock(viewport)
        lock.lock()
        lock.lock()
        assert viewport.body_style == {
            "overflow": "hidden",
            "position": "fixed",
            "top": "-240px",
            "width": "100%",
            "touch_action": "none",
        }
        viewport.scroll_by(-240)
        lock.unlock()
        assert lock.locked
        assert viewport.body_style["position"] == "fixed"
        lock.unlock()
        assert not lock.locked
        assert viewport.body_style == {}
        assert viewport.scroll_y == 240

    def test_extra_unlock_is_harmless(self) -> None:
        viewport = HeadlessViewport(scroll_y=10)
        lock = BodyScrollLock(viewport)
        lock.unlock()
        assert lock.count == 0
        assert viewport.scroll_y == 10

    def test_process_wide_lock_has_explicit_lifecycle(self) -> None:
        teardown_scroll_lock()
        with pytest.raises(RuntimeError):
            get_scroll_lock()
        viewport = HeadlessViewport()
        lock = init_scroll_lock(viewport)
        assert init_scroll_lock(viewport) is lock
        lock.lock()
        teardown_scroll_lock()
        assert not lock.locked
        with pytest.raises(RuntimeError):
            get_scroll_lock()


class TestResolveDrop:
    def test_drop_on_other_stage_appends_to_tail(self) -> None:
        assert resolve_drop(_board(), "T1", "doing") == MoveTask("T1", "doing", 1)

    def test_drop_on_own_stage_is_noop(self) -> None:
        assert resolve_drop(_board(), "T1", "todo") is None

    def test_drop_on_task_in_same_stage_reorders(self) -> None:
        assert resolve_drop(_board(), "T1", "T3") == ReorderStage("todo", ("T2", "T3", "T1"))
        assert resolve_drop(_board(), "T3", "T1") == ReorderStage("todo", ("T3", "T1", "T2"))
        assert resolve_drop(_board(), "T2", "T2") is None

    def test_drop_on_task_in_other_stage_inserts_at_its_index(self) -> None:
        assert resolve_drop(_board(), "T2", "T4") == MoveTask("T2", "doing", 0)

    def test_selection_drop_becomes_bulk_move(self) -> None:
        assert resolve_drop(_board(), "T3", "doing", ["T3", "T1"]) == BulkMove(("T3", "T1"), "doing")
        # Dragging an unselected task ignores the selection.
        assert resolve_drop(_board(), "T2", "doing", ["T3", "T1"]) == MoveTask("T2", "doing", 1)

    def test_unresolvable_target_cancels(self) -> None:
        assert resolve_drop(_board(), "T1", None) is None
        assert resolve_drop(_board(), "T1", "nowhere") is None
        assert resolve_drop(_board(), "ghost", "doing") is None


class TestDragController:
    def _controller(self, **kw):
        dispatched: list = []
        viewport = HeadlessViewport(scroll_y=100)
        lock = BodyScrollLock(viewport)
        controller = DragController(_board, dispatched.append, scroll_lock=lock, **kw)
        return controller, dispatched, lock

    def test_pointer_drag_dispatches_move(self) -> None:
        controller, dispatched, lock = self._controller()
        assert controller.press(pointer(0, 0, 0.0, task_id="T1"))
        assert not controller.move(pointer(0, 5, 0.05))
        assert not lock.locked
        assert controller.move(pointer(0, 20, 0.1))
        assert lock.locked

        intent = controller.release(pointer(0, 200, 0.2), over_id="doing")
        assert intent == MoveTask("T1", "doing", 1)
        assert dispatched == [intent]
        assert not lock.locked
        assert not controller.is_dragging

    def test_touch_scroll_gesture_never_drags(self) -> None:
        vibrations: list[int] = []
        controller, dispatched, lock = self._controller(vibrate=vibrations.append)
        controller.press(touch(0, 0, 0.0, task_id="T1"))
        assert not controller.move(touch(0, 12, 0.2))
        assert not controller.advance(0.5)
        assert controller.release(touch(0, 80, 0.6), over_id="doing") is None
        assert dispatched == []
        assert not lock.locked
        assert vibrations == []

    def test_touch_hold_vibrates_and_drags(self) -> None:
        vibrations: list[int] = []
        controller, dispatched, lock = self._controller(vibrate=vibrations.append)
        controller.press(touch(0, 0, 0.0, task_id="T1"))
        assert controller.advance(0.45)
        assert vibrations == [50]
        assert lock.locked
        controller.move(touch(0, 300, 0.6))
        assert controller.release(touch(0, 300, 0.7), over_id="T4") == MoveTask("T1", "doing", 0)

    def test_haptics_can_be_disabled(self) -> None:
        vibrations: list[int] = []
        controller, _, _ = self._controller(vibrate=vibrations.append, haptics=False)
        controller.press(touch(0, 0, 0.0, task_id="T1"))
        controller.advance(1.0)
        assert controller.is_dragging
        assert vibrations == []

    def test_release_without_target_cancels(self) -> None:
        controller, dispatched, lock = self._controller()
        controller.press(pointer(0, 0, task_id="T1"))
        controller.move(pointer(30, 0, 0.1))
        assert controller.release(pointer(30, 0, 0.2), over_id=None) is None
        assert dispatched == []
        assert not lock.locked

    def test_escape_cancels_drag_and_clears_selection(self) -> None:
        controller, dispatched, lock = self._controller()
        controller.click("T1", toggle=True)
        controller.press(pointer(0, 0, task_id="T1"))
        controller.move(pointer(30, 0, 0.1))
        controller.key("Escape")
        assert not controller.is_dragging
        assert controller.selection == ()
        assert not lock.locked
        assert controller.release(pointer(30, 0, 0.2), over_id="doing") is None

    def test_selection_toggle_and_bulk_actions(self) -> None:
        controller, dispatched, _ = self._controller()
        controller.click("T3", toggle=True)
        controller.click("T1", toggle=True)
        controller.click("T2", toggle=True)
        controller.click("T2", toggle=True)
        assert controller.selection == ("T3", "T1")

        controller.press(pointer(0, 0, task_id="T1"))
        controller.move(pointer(0, 30, 0.1))
        intent = controller.release(pointer(0, 30, 0.2), over_id="doing")
        assert intent == BulkMove(("T3", "T1"), "doing")
        assert controller.selection == ()

        controller.select(["T1", "T2"])
        assert controller.delete_selection() == BulkDelete(("T1", "T2"))
        assert controller.selection == ()
        assert dispatched == [intent, BulkDelete(("T1", "T2"))]

    def test_plain_click_clears_selection(self) -> None:
        controller, _, _ = self._controller()
        controller.select(["T1", "T2"])
        controller.click("T3")
        assert controller.selection == ()
        assert controller.move_selection("doing") is None
