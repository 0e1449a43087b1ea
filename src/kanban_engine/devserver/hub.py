"""Realtime hub for the reference server.

Every committed write becomes a change event, fanned out to in-process
listeners (a :class:`~kanban_engine.realtime.manager.SubscriptionManager`
attached as a change source) and to WebSocket clients at ``/realtime``.

Socket messages, client to server::

    {"action": "subscribe", "channels": ["tasks", "projects"]}
    {"action": "unsubscribe", "channels": ["projects"]}
    {"action": "ping"}

Server to client: ``{"channel", "event", "data"}`` objects.  Table channels
carry the change payload under ``data``; the ``system`` channel carries
``connected``, ``subscribed``, ``unsubscribed``, ``pong`` and ``heartbeat``.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

from fastapi import WebSocket, WebSocketDisconnect
from loguru import logger

from ..constants import REALTIME_TABLES
from ..domain.models import ChangeEvent

SYSTEM_CHANNEL = "system"
VALID_CHANNELS = frozenset(REALTIME_TABLES) | {SYSTEM_CHANNEL}
HEARTBEAT_SECONDS = 30.0
HISTORY_LIMIT = 200

Listener = Callable[[dict[str, Any]], None]


class _Subscriber:
    """One connected socket and the table channels it asked for."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.tables: set[str] = set()
        self.since = time.time()

    def wants(self, channel: str) -> bool:
        return channel == SYSTEM_CHANNEL or channel in self.tables

    async def send(self, channel: str, event: str, data: Optional[dict[str, Any]] = None, **extra: Any) -> None:
        await self.websocket.send_json({"channel": channel, "event": event, "data": data or {}, **extra})


class RealtimeHub:
    """Publishes every store write as a change event.

    Usage::

        hub = RealtimeHub()
        detach = hub.add_listener(manager.deliver)
        hub.publish(ChangeEvent("insert", "tasks", new=row))

    Mount :meth:`handle_connection` on a FastAPI WebSocket route to serve
    remote clients.
    """

    def __init__(self) -> None:
        self._subscribers: list[_Subscriber] = []
        self._listeners: list[Listener] = []
        self._published = 0
        self.history: list[dict[str, Any]] = []

    @property
    def client_count(self) -> int:
        return len(self._subscribers)

    @property
    def event_count(self) -> int:
        return self._published

    # -- in-process listeners ----------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def publish(self, event: ChangeEvent) -> None:
        """Deliver *event* to listeners now and to sockets on the running loop."""
        self._published += 1
        payload = event.to_payload()
        self.history.append(payload)
        del self.history[:-HISTORY_LIMIT]
        for listener in list(self._listeners):
            try:
                listener(payload)
            except Exception:
                logger.exception("Realtime listener failed for {} {}", event.table, event.kind)
        if not self._subscribers:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; event {} not sent to sockets", self._published)
            return
        loop.create_task(self.broadcast(event.table, payload["eventType"], payload))

    # -- sockets ------------------------------------------------------------

    async def broadcast(self, channel: str, event: str, data: Optional[dict[str, Any]] = None) -> None:
        """Send one message to every socket subscribed to *channel*."""
        for sub in [s for s in self._subscribers if s.wants(channel)]:
            try:
                await sub.send(channel, event, data, event_id=self._published)
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.debug("Realtime hub: dropping socket after send failure: {}", exc)
                self._drop(sub)

    async def handle_connection(self, websocket: WebSocket) -> None:
        """Serve one socket until it disconnects."""
        await websocket.accept()
        sub = _Subscriber(websocket)
        self._subscribers.append(sub)
        logger.debug("Realtime hub: socket connected ({} open)", self.client_count)
        try:
            await sub.send(SYSTEM_CHANNEL, "connected", {"channels": sorted(VALID_CHANNELS)})
            while True:
                try:
                    message = await asyncio.wait_for(websocket.receive_json(), HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    await sub.send(SYSTEM_CHANNEL, "heartbeat", {"timestamp": time.time()})
                    continue
                except ValueError:
                    logger.debug("Realtime hub: ignoring non-JSON frame")
                    continue
                if isinstance(message, dict):
                    await self._handle_action(sub, message)
        except WebSocketDisconnect:
            logger.debug("Realtime hub: socket closed by client")
        finally:
            self._drop(sub)
            logger.debug("Realtime hub: socket gone ({} open)", self.client_count)

    async def _handle_action(self, sub: _Subscriber, message: dict[str, Any]) -> None:
        action = message.get("action")
        requested = {str(c) for c in message.get("channels") or []}
        if action == "subscribe":
            sub.tables |= requested & VALID_CHANNELS
            await sub.send(SYSTEM_CHANNEL, "subscribed", {"channels": sorted(sub.tables)})
        elif action == "unsubscribe":
            sub.tables -= requested
            await sub.send(SYSTEM_CHANNEL, "unsubscribed", {"channels": sorted(sub.tables)})
        elif action == "ping":
            await sub.send(SYSTEM_CHANNEL, "pong")

    def _drop(self, sub: _Subscriber) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)
