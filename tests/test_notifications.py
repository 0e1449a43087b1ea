"""Tests for notifications module."""

from __future__ import annotations

import sys
from unittest.mock import MagicMock, patch

from kanban_engine.notifications import Notice, NotificationManager, desktop_sink


class TestNotificationManager:
    """Test NotificationManager class."""

    def test_notices_reach_sink_verbatim(self):
        """Error text from the server is shown unchanged."""
        seen: list[Notice] = []
        manager = NotificationManager(sink=seen.append)
        manager.notify_error("Conflict")
        manager.notify_success("Task created")
        assert seen == [Notice("error", "Conflict"), Notice("success", "Task created")]
        assert manager.last == Notice("success", "Task created")

    def test_disabled_manager_still_records_history(self):
        """Test that a disabled manager skips the sink but keeps history."""
        sink = MagicMock()
        manager = NotificationManager(sink=sink, enabled=False)
        manager.notify_info("Saved")
        sink.assert_not_called()
        assert manager.history == [Notice("info", "Saved")]

    def test_history_is_bounded(self):
        """Test that only the most recent notices are kept."""
        manager = NotificationManager(history_limit=3)
        for i in range(5):
            manager.notify_info(f"n{i}")
        assert [n.message for n in manager.history] == ["n2", "n3", "n4"]

    def test_sink_failure_is_logged_not_raised(self):
        """Test that a broken sink does not break the caller."""
        sink = MagicMock(side_effect=RuntimeError("toast crashed"))
        manager = NotificationManager(sink=sink)
        manager.notify_error("Failed to move task")
        sink.assert_called_once()
        assert manager.last.message == "Failed to move task"


class TestDesktopSink:
    """Test the plyer-backed desktop sink."""

    def test_sink_forwards_to_plyer(self):
        """Test that notices become desktop notifications."""
        plyer = MagicMock()
        with patch.dict(sys.modules, {"plyer": plyer}):
            sink = desktop_sink(app_name="Board", timeout=3)
        assert sink is not None

        sink(Notice("error", "Conflict"))

        plyer.notification.notify.assert_called_once()
        call_args = plyer.notification.notify.call_args[1]
        assert call_args["title"] == "Board: error"
        assert call_args["message"] == "Conflict"
        assert call_args["timeout"] == 3

    def test_missing_plyer_disables_sink(self):
        """Test that the sink is unavailable when plyer is not installed."""
        with patch.dict(sys.modules, {"plyer": None}):
            assert desktop_sink() is None
