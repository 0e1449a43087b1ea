from .base import RemoteStore
from .http import HttpRemoteStore

__all__ = ["HttpRemoteStore", "RemoteStore"]
