from .controller import DragController, resolve_drop
from .scroll_lock import BodyScrollLock, HeadlessViewport, get_scroll_lock, init_scroll_lock, teardown_scroll_lock
from .sensors import InputEvent, PointerActivation, SensorState, TouchActivation

__all__ = [
    "BodyScrollLock",
    "DragController",
    "HeadlessViewport",
    "InputEvent",
    "PointerActivation",
    "SensorState",
    "TouchActivation",
    "get_scroll_lock",
    "init_scroll_lock",
    "resolve_drop",
    "teardown_scroll_lock",
]
