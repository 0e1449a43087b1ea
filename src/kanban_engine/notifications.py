"""User-visible notices ("toasts") raised by the board engine.

The engine never renders anything itself.  It hands each notice to a sink
supplied by the host (a toast component, a terminal printer, a test list).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal, Optional

from loguru import logger

NoticeLevel = Literal["success", "error", "info"]


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str


NoticeSink = Callable[[Notice], None]


class NotificationManager:
    """Route board notices to the host's sink and keep a short history."""

    def __init__(self, sink: Optional[NoticeSink] = None, enabled: bool = True, history_limit: int = 50):
        """Initialize notification manager.

        Args:
            sink: Callable receiving every :class:`Notice`.
            enabled: Whether notices are forwarded to the sink at all.
            history_limit: How many recent notices to keep in ``history``.
        """
        self.enabled = enabled
        self._sink = sink
        self._history_limit = history_limit
        self.history: list[Notice] = []

    @property
    def last(self) -> Optional[Notice]:
        return self.history[-1] if self.history else None

    def notify_success(self, message: str) -> None:
        self._send(Notice("success", message))

    def notify_error(self, message: str) -> None:
        """Send an error notice.

        Args:
            message: Text shown to the user, passed through verbatim.
        """
        self._send(Notice("error", message))

    def notify_info(self, message: str) -> None:
        self._send(Notice("info", message))

    def _send(self, notice: Notice) -> None:
        self.history.append(notice)
        del self.history[:-self._history_limit]
        if not self.enabled or not self._sink:
            return
        try:
            self._sink(notice)
            logger.debug("Notice sent: {} {}", notice.level, notice.message)
        except Exception as e:
            logger.warning("Failed to deliver notice: {}", e)


def desktop_sink(app_name: str = "Kanban Engine", timeout: int = 10) -> Optional[NoticeSink]:
    """Build a sink that shows notices as desktop notifications.

    Returns ``None`` when plyer is not installed.
    """
    try:
        from plyer import notification
    except ImportError:
        logger.warning(
            "plyer not installed - desktop notifications disabled. "
            "Install with: pip install plyer"
        )
        return None

    def _sink(notice: Notice) -> None:
        notification.notify(
            title=f"{app_name}: {notice.level}",
            message=notice.message,
            app_name=app_name,
            timeout=timeout,
        )

    return _sink
