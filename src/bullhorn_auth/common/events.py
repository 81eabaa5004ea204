"""
Named-event notification for session clients.

A registry of callbacks per event name. Callbacks run synchronously in
subscription order; a callback that raises is logged and the remaining
callbacks still receive the event.
"""

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

from bullhorn_auth.common.logging import get_logger, log_exception

logger = get_logger(__name__)

# Event names emitted by ManagedSessionClient
LOGIN = "login"
LOGIN_FAILED = "login_failed"

Listener = Callable[..., Any]


class EventEmitter:
    """
    Minimal observer registry.

    Example:
        >>> events = EventEmitter()
        >>> events.on("login", lambda session: print(session.base_url))
        >>> events.emit("login", session)
    """

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> Listener:
        """Subscribe listener to event. Returns the listener so it can be used as a decorator."""
        self._listeners[event].append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> None:
        """Unsubscribe listener; unknown listeners are ignored."""
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> int:
        """
        Deliver event to every listener in subscription order.

        Args:
            event: Event name
            *args: Payload passed to each listener

        Returns:
            Number of listeners that completed without raising
        """
        delivered = 0
        # Copy so listeners may unsubscribe themselves while being called
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(*args)
                delivered += 1
            except Exception as e:
                log_exception(
                    logger,
                    e,
                    "Event listener failed",
                    level=logging.WARNING,
                    event=event,
                )
        return delivered
