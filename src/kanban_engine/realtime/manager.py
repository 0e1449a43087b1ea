"""Process-wide realtime subscription manager.

One multiplexed channel per authenticated session carries change events for
every table the engine cares about.  Views register ``(table, filter,
handler)`` triples and get back an unregister function; registering and
unregistering never touch the channel itself, which is only opened by
:meth:`SubscriptionManager.open_session` and closed by
:meth:`SubscriptionManager.close_session` (sign-out).

Filters use the ``column=eq.value`` form.  Only ``eq`` narrows delivery; any
other operator matches every event of the table.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, Union

from loguru import logger

from ..constants import REALTIME_TABLES
from ..domain.models import ChangeEvent
from ..logging_utils import summarize_event

ChangeHandler = Callable[[ChangeEvent], None]
Unsubscribe = Callable[[], None]


class ChangeSource(Protocol):
    """Anything that pushes raw change payloads, e.g. the devserver hub."""

    def add_listener(self, listener: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        ...


def handler_key(table: str, filter: Optional[str] = None) -> str:
    return f"{table}:{filter}" if filter else table


def matches_filter(event: ChangeEvent, filter: Optional[str]) -> bool:
    """Does *event* satisfy a ``column=eq.value`` filter?"""
    if not filter:
        return True
    column, sep, rest = filter.partition("=")
    if not sep or not rest:
        return True
    op, _, value = rest.partition(".")
    if op != "eq":
        return True
    record = event.record
    if not record or column not in record:
        return False
    return str(record[column]) == value


class SubscriptionManager:
    """Routes change events from a single channel to registered handlers."""

    def __init__(self, tables: tuple[str, ...] = REALTIME_TABLES) -> None:
        self.tables = tables
        self._handlers: dict[str, list[ChangeHandler]] = {}
        self._detach: Optional[Callable[[], None]] = None
        self._session_id: Optional[str] = None
        self._connected = False
        self.delivered = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def handler_count(self) -> int:
        return sum(len(hs) for hs in self._handlers.values())

    # -- channel lifecycle --------------------------------------------------

    def open_session(self, session_id: str, source: Optional[ChangeSource] = None) -> None:
        """Open the channel for *session_id*; a no-op if already open for it."""
        if self._connected and self._session_id == session_id:
            return
        if self._connected:
            self.close_session()
        self._session_id = session_id
        if source is not None:
            self._detach = source.add_listener(self.deliver)
        self._connected = True
        logger.info("Realtime channel open for session {}", session_id)

    def close_session(self) -> None:
        """Tear the channel down.  Registered handlers survive for the next session."""
        if self._detach is not None:
            self._detach()
            self._detach = None
        if self._connected:
            logger.info("Realtime channel closed for session {}", self._session_id)
        self._connected = False
        self._session_id = None

    # -- handler registry ---------------------------------------------------

    def subscribe(self, table: str, handler: ChangeHandler, filter: Optional[str] = None) -> Unsubscribe:
        if table not in self.tables:
            raise ValueError(f"Unsupported realtime table: {table!r}")
        key = handler_key(table, filter)
        self._handlers.setdefault(key, []).append(handler)
        logger.debug("Realtime handler registered for {}", key)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(key)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[key]
                logger.debug("Realtime handler removed for {}", key)

        return _unsubscribe

    # -- delivery -----------------------------------------------------------

    def deliver(self, payload: Union[ChangeEvent, dict[str, Any]]) -> int:
        """Route one event to matching handlers; returns how many ran."""
        if not self._connected:
            logger.debug("Realtime event ignored: channel closed")
            return 0
        if isinstance(payload, ChangeEvent):
            event = payload
        else:
            try:
                event = ChangeEvent.from_payload(payload)
            except ValueError as exc:
                logger.warning("Dropping malformed realtime payload: {}", exc)
                return 0
        if event.table not in self.tables:
            return 0

        ran = 0
        prefix = f"{event.table}:"
        for key, handlers in list(self._handlers.items()):
            if key == event.table:
                pass
            elif key.startswith(prefix):
                if not matches_filter(event, key[len(prefix):]):
                    continue
            else:
                continue
            for handler in list(handlers):
                try:
                    handler(event)
                except Exception:
                    logger.exception("Realtime handler error for {} {}", key, summarize_event(event))
                ran += 1
        self.delivered += 1
        return ran


_manager: Optional[SubscriptionManager] = None


def init_subscription_manager(tables: tuple[str, ...] = REALTIME_TABLES) -> SubscriptionManager:
    """Create the process-wide manager; call once at session establishment."""
    global _manager
    if _manager is None:
        _manager = SubscriptionManager(tables)
    return _manager


def get_subscription_manager() -> SubscriptionManager:
    if _manager is None:
        raise RuntimeError("Subscription manager not initialized; call init_subscription_manager() first")
    return _manager


def teardown_subscription_manager() -> None:
    """Close the channel and drop the process-wide manager (sign-out)."""
    global _manager
    if _manager is not None:
        _manager.close_session()
    _manager = None
