"""Reference remote store: in-memory backend, FastAPI app and realtime hub."""

from .app import create_app
from .backend import MemoryBackend, RequestRejected
from .hub import RealtimeHub
from .seed import DEMO_OWNER_ID, DEMO_PROJECT_ID, seed_demo

__all__ = [
    "DEMO_OWNER_ID",
    "DEMO_PROJECT_ID",
    "MemoryBackend",
    "RealtimeHub",
    "RequestRejected",
    "create_app",
    "seed_demo",
]
