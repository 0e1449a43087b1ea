"""Reference-counted lock over the page body's scroll.

While any drag is active the body is pinned in place so touch moves drive the
drag instead of the page.  The lock nests: only the first ``lock()`` saves
the scroll offset and only the matching last ``unlock()`` restores it.
"""

from __future__ import annotations

from typing import Optional, Protocol

from loguru import logger

LOCKED_STYLE_KEYS = ("overflow", "position", "top", "width", "touch_action")


class Viewport(Protocol):
    """The slice of a document the lock needs."""

    @property
    def scroll_y(self) -> float:
        ...

    def set_body_style(self, name: str, value: str) -> None:
        ...

    def scroll_to(self, x: float, y: float) -> None:
        ...


class HeadlessViewport:
    """In-memory viewport for tests and non-browser hosts."""

    def __init__(self, scroll_y: float = 0.0) -> None:
        self._scroll_y = scroll_y
        self.body_style: dict[str, str] = {}

    @property
    def scroll_y(self) -> float:
        return self._scroll_y

    def scroll_by(self, dy: float) -> None:
        self._scroll_y = max(0.0, self._scroll_y + dy)

    def set_body_style(self, name: str, value: str) -> None:
        if value:
            self.body_style[name] = value
        else:
            self.body_style.pop(name, None)

    def scroll_to(self, x: float, y: float) -> None:
        self._scroll_y = y


class BodyScrollLock:
    def __init__(self, viewport: Viewport) -> None:
        self.viewport = viewport
        self.count = 0
        self.saved_scroll_y = 0.0

    @property
    def locked(self) -> bool:
        return self.count > 0

    def lock(self) -> None:
        if self.count == 0:
            self.saved_scroll_y = self.viewport.scroll_y
            self.viewport.set_body_style("overflow", "hidden")
            self.viewport.set_body_style("position", "fixed")
            self.viewport.set_body_style("top", f"-{self.saved_scroll_y:g}px")
            self.viewport.set_body_style("width", "100%")
            self.viewport.set_body_style("touch_action", "none")
            logger.debug("Body scroll locked at {}", self.saved_scroll_y)
        self.count += 1

    def unlock(self) -> None:
        if self.count == 0:
            return
        self.count -= 1
        if self.count == 0:
            for key in LOCKED_STYLE_KEYS:
                self.viewport.set_body_style(key, "")
            self.viewport.scroll_to(0, self.saved_scroll_y)


_lock: Optional[BodyScrollLock] = None


def init_scroll_lock(viewport: Viewport) -> BodyScrollLock:
    """Install the process-wide lock for *viewport* (once per session)."""
    global _lock
    if _lock is None or _lock.viewport is not viewport:
        if _lock is not None and _lock.locked:
            logger.warning("Replacing a scroll lock that is still held ({} holders)", _lock.count)
        _lock = BodyScrollLock(viewport)
    return _lock


def get_scroll_lock() -> BodyScrollLock:
    if _lock is None:
        raise RuntimeError("Scroll lock not initialized; call init_scroll_lock() first")
    return _lock


def teardown_scroll_lock() -> None:
    """Release every holder and drop the process-wide lock."""
    global _lock
    if _lock is not None:
        while _lock.locked:
            _lock.unlock()
    _lock = None
