"""Provide the public `kanban_engine` package exports."""

from __future__ import annotations

from .board.session import BoardSession
from .config import EngineSettings, load_settings
from .notifications import Notice, NotificationManager
from .remote import HttpRemoteStore, RemoteStore

__version__ = "0.1.0"

__all__ = [
    "BoardSession",
    "EngineSettings",
    "HttpRemoteStore",
    "Notice",
    "NotificationManager",
    "RemoteStore",
    "__version__",
    "load_settings",
]
