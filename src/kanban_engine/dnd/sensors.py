"""Activation sensors for pointer and touch drags.

Sensors are plain state machines fed with timestamped input events, so the
host decides where events come from (a browser bridge, a test) and tests can
drive time explicitly through :meth:`ActivationSensor.advance`.

* Pointer (mouse, pen): the drag activates once the pointer has travelled at
  least ``distance`` pixels from where it was pressed.
* Touch: the finger must stay down for ``delay`` seconds without moving more
  than ``tolerance`` pixels.  Moving further cancels activation so the gesture
  stays a scroll.

Presses that start on an interactive element (button, input, link...) are
ignored.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional

from ..constants import (
    DEFAULT_POINTER_DISTANCE,
    DEFAULT_TOUCH_DELAY,
    DEFAULT_TOUCH_TOLERANCE,
    INTERACTIVE_TAGS,
)

InputKind = Literal["pointer", "touch"]


@dataclass(frozen=True)
class InputEvent:
    kind: InputKind
    x: float
    y: float
    timestamp: float  # seconds, monotonic
    target_tag: Optional[str] = None
    task_id: Optional[str] = None


class SensorState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"      # pressed, activation constraint not met yet
    ACTIVE = "active"        # dragging
    CANCELLED = "cancelled"  # constraint violated; the gesture belongs to the page


def is_interactive(tag: Optional[str]) -> bool:
    return bool(tag) and str(tag).lower() in INTERACTIVE_TAGS


def _distance(a: InputEvent, b: InputEvent) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


class ActivationSensor(ABC):
    """Common press/move/release bookkeeping."""

    kind: InputKind

    def __init__(self) -> None:
        self.state = SensorState.IDLE
        self.origin: Optional[InputEvent] = None
        self.last: Optional[InputEvent] = None

    @property
    def is_active(self) -> bool:
        return self.state == SensorState.ACTIVE

    @property
    def task_id(self) -> Optional[str]:
        return self.origin.task_id if self.origin else None

    def press(self, event: InputEvent) -> bool:
        """Start tracking a gesture; returns whether it may become a drag."""
        if event.kind != self.kind or is_interactive(event.target_tag):
            return False
        self.state = SensorState.PENDING
        self.origin = event
        self.last = event
        return True

    def move(self, event: InputEvent) -> bool:
        """Feed a move; returns ``True`` only on the move that activates."""
        if self.state not in (SensorState.PENDING, SensorState.ACTIVE):
            return False
        self.last = event
        if self.state == SensorState.ACTIVE:
            return False
        return self._on_pending_move(event)

    def advance(self, now: float) -> bool:
        """Let time pass; returns ``True`` if that activated the drag."""
        if self.state != SensorState.PENDING:
            return False
        return self._on_tick(now)

    def release(self, event: Optional[InputEvent] = None) -> bool:
        """End the gesture; returns whether a drag was active."""
        if event is not None and self.state == SensorState.PENDING:
            self.advance(event.timestamp)
        was_active = self.state == SensorState.ACTIVE
        if event is not None:
            self.last = event
        self.state = SensorState.IDLE
        return was_active

    def cancel(self) -> None:
        self.state = SensorState.IDLE
        self.origin = None
        self.last = None

    @abstractmethod
    def _on_pending_move(self, event: InputEvent) -> bool:
        raise NotImplementedError

    def _on_tick(self, now: float) -> bool:
        return False


class PointerActivation(ActivationSensor):
    kind: InputKind = "pointer"

    def __init__(self, distance: float = DEFAULT_POINTER_DISTANCE) -> None:
        super().__init__()
        self.distance = distance

    def _on_pending_move(self, event: InputEvent) -> bool:
        if self.origin is None:
            return False
        if _distance(self.origin, event) >= self.distance:
            self.state = SensorState.ACTIVE
            return True
        return False


class TouchActivation(ActivationSensor):
    kind: InputKind = "touch"

    def __init__(self, delay: float = DEFAULT_TOUCH_DELAY, tolerance: float = DEFAULT_TOUCH_TOLERANCE) -> None:
        super().__init__()
        self.delay = delay
        self.tolerance = tolerance

    def _on_pending_move(self, event: InputEvent) -> bool:
        origin = self.origin
        if origin is None:
            return False
        # A move stamped after the hold elapsed activates first, then counts.
        if self._on_tick(event.timestamp):
            return True
        if _distance(origin, event) > self.tolerance:
            self.state = SensorState.CANCELLED
        return False

    def _on_tick(self, now: float) -> bool:
        if self.origin is None:
            return False
        if now - self.origin.timestamp >= self.delay:
            self.state = SensorState.ACTIVE
            return True
        return False
