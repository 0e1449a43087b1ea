"""Drag-and-drop controller: raw input in, board intents out."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Sequence

from loguru import logger

from ..board.intents import BulkDelete, BulkMove, Intent, MoveTask, ReorderStage
from ..board.state import BoardState
from ..constants import (
    DEFAULT_POINTER_DISTANCE,
    DEFAULT_TOUCH_DELAY,
    DEFAULT_TOUCH_TOLERANCE,
    HAPTIC_PULSE_MS,
)
from .scroll_lock import BodyScrollLock
from .sensors import ActivationSensor, InputEvent, PointerActivation, SensorState, TouchActivation

Dispatch = Callable[[Intent], Any]


def resolve_drop(
    state: BoardState,
    active_id: str,
    over_id: Optional[str],
    selection: Sequence[str] = (),
) -> Optional[Intent]:
    """Turn "task *active_id* dropped on *over_id*" into an intent.

    *over_id* names either a stage column or another task.  Returns ``None``
    when the drop has no effect or the target cannot be resolved.
    """
    if not over_id:
        return None
    dragged = state.get(active_id)
    if dragged is None:
        return None
    source_stage = state.locate(active_id)[0]  # type: ignore[index]
    selected = list(dict.fromkeys(selection))
    to_move = selected if active_id in selected and len(selected) > 1 else [active_id]

    if over_id in state.columns:
        if source_stage == over_id:
            return None
        if len(to_move) > 1:
            return BulkMove(tuple(to_move), over_id)
        return MoveTask(active_id, over_id, len(state.tasks(over_id)))

    target = state.locate(over_id)
    if target is None:
        return None
    target_stage, target_index = target

    if target_stage == source_stage:
        ids = state.task_ids(source_stage)
        current = ids.index(active_id)
        if current == target_index:
            return None
        ids.pop(current)
        ids.insert(target_index, active_id)
        return ReorderStage(source_stage, tuple(ids))

    if len(to_move) > 1:
        return BulkMove(tuple(to_move), target_stage)
    return MoveTask(active_id, target_stage, target_index)


class DragController:
    """Owns the sensors, the multi-selection and the scroll lock for one board.

    Usage::

        controller = DragController(lambda: store.state, coordinator.submit, scroll_lock=lock)
        controller.press(InputEvent("pointer", 0, 0, 0.0, task_id="t1"))
        controller.move(InputEvent("pointer", 0, 12, 0.1))
        controller.release(InputEvent("pointer", 0, 40, 0.2), over_id="doing")
    """

    def __init__(
        self,
        get_state: Callable[[], BoardState],
        dispatch: Dispatch,
        *,
        scroll_lock: Optional[BodyScrollLock] = None,
        pointer_distance: float = DEFAULT_POINTER_DISTANCE,
        touch_delay: float = DEFAULT_TOUCH_DELAY,
        touch_tolerance: float = DEFAULT_TOUCH_TOLERANCE,
        haptics: bool = True,
        vibrate: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._get_state = get_state
        self._dispatch = dispatch
        self.scroll_lock = scroll_lock
        self.haptics = haptics
        self.vibrate = vibrate
        self.sensors: dict[str, ActivationSensor] = {
            "pointer": PointerActivation(pointer_distance),
            "touch": TouchActivation(touch_delay, touch_tolerance),
        }
        self._sensor: Optional[ActivationSensor] = None
        self._selection: dict[str, None] = {}
        self.active_id: Optional[str] = None

    # -- selection ----------------------------------------------------------

    @property
    def selection(self) -> tuple[str, ...]:
        return tuple(self._selection)

    def click(self, task_id: str, *, toggle: bool = False) -> None:
        """Ctrl/cmd-click toggles *task_id* in the selection; a plain click clears it."""
        if not toggle:
            self.clear_selection()
            return
        if task_id in self._selection:
            del self._selection[task_id]
        else:
            self._selection[task_id] = None

    def select(self, task_ids: Iterable[str]) -> None:
        for task_id in task_ids:
            self._selection.setdefault(task_id, None)

    def clear_selection(self) -> None:
        self._selection.clear()

    def key(self, name: str) -> None:
        if name == "Escape":
            if self.is_dragging:
                self.cancel()
            self.clear_selection()

    def move_selection(self, stage_id: str) -> Optional[Intent]:
        """Bulk-move every selected task to *stage_id* (the "Move to" menu)."""
        if not self._selection:
            return None
        return self._emit(BulkMove(self.selection, stage_id))

    def delete_selection(self) -> Optional[Intent]:
        if not self._selection:
            return None
        return self._emit(BulkDelete(self.selection))

    # -- gesture ------------------------------------------------------------

    @property
    def is_dragging(self) -> bool:
        return self.active_id is not None

    def press(self, event: InputEvent) -> bool:
        if self._sensor is not None or not event.task_id:
            return False
        sensor = self.sensors.get(event.kind)
        if sensor is None or not sensor.press(event):
            return False
        self._sensor = sensor
        return True

    def move(self, event: InputEvent) -> bool:
        """Returns ``True`` while the gesture is (or just became) a drag."""
        sensor = self._sensor
        if sensor is None or sensor.kind != event.kind:
            return False
        if sensor.move(event):
            self._activate(sensor)
        elif sensor.state == SensorState.CANCELLED:
            logger.debug("Touch activation cancelled; gesture is a scroll")
            sensor.cancel()
            self._sensor = None
        return self.is_dragging

    def advance(self, now: float) -> bool:
        """Let time pass (touch hold timer); returns whether a drag is active."""
        sensor = self._sensor
        if sensor is not None and sensor.advance(now):
            self._activate(sensor)
        return self.is_dragging

    def release(self, event: Optional[InputEvent] = None, over_id: Optional[str] = None) -> Optional[Intent]:
        """Finish the gesture and dispatch the resulting intent, if any."""
        sensor = self._sensor
        if sensor is None:
            return None
        if not self.is_dragging and event is not None and sensor.advance(event.timestamp):
            self._activate(sensor)
        sensor.release(event)
        active_id = self.active_id
        self._end(sensor)
        if active_id is None:
            return None
        intent = resolve_drop(self._get_state(), active_id, over_id, self.selection)
        if intent is None:
            logger.debug("Drop of {} on {} resolved to nothing", active_id, over_id)
            return None
        return self._emit(intent)

    def cancel(self) -> None:
        sensor = self._sensor
        if sensor is None:
            return
        self._end(sensor)

    # -- internals ----------------------------------------------------------

    def _activate(self, sensor: ActivationSensor) -> None:
        self.active_id = sensor.task_id
        if self.scroll_lock is not None:
            self.scroll_lock.lock()
        if sensor.kind == "touch" and self.haptics and self.vibrate is not None:
            self.vibrate(HAPTIC_PULSE_MS)
        logger.debug("Drag started for {} ({})", self.active_id, sensor.kind)

    def _end(self, sensor: ActivationSensor) -> None:
        if self.is_dragging and self.scroll_lock is not None:
            self.scroll_lock.unlock()
        sensor.cancel()
        self._sensor = None
        self.active_id = None

    def _emit(self, intent: Intent) -> Intent:
        self._dispatch(intent)
        if isinstance(intent, (BulkMove, BulkDelete)):
            self.clear_selection()
        return intent
