"""Listener bookkeeping and event fan-out."""

import logging
import threading
from typing import Any, Callable, Dict, List, Union

from ..errors import ListenerError
from .cache import AddressCache
from .events import Event

logger = logging.getLogger(__name__)

# A listener is either a plain callable or an object with ``on_event(message)``.
Listener = Union[Callable[[str], Any], Any]


def _invoke(listener: Listener, message: str) -> None:
    handler = getattr(listener, "on_event", None)
    if callable(handler):
        handler(message)
    else:
        listener(message)


class ListenerRegistry:
    """Ordered listeners per cluster."""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: Dict[str, List[Listener]] = {}

    def add(self, cluster: str, listener: Listener) -> None:
        with self._lock:
            self._listeners.setdefault(cluster, []).append(listener)

    def remove(self, cluster: str, listener: Listener) -> int:
        """Remove one registration of *listener* and return how many remain."""
        with self._lock:
            listeners = self._listeners.get(cluster)
            if not listeners:
                return 0
            try:
                listeners.remove(listener)
            except ValueError:
                pass
            if not listeners:
                del self._listeners[cluster]
                return 0
            return len(listeners)

    def get(self, cluster: str) -> List[Listener]:
        """Return a copy, so dispatch is unaffected by concurrent add/remove."""
        with self._lock:
            return list(self._listeners.get(cluster, ()))

    def count(self, cluster: str) -> int:
        with self._lock:
            return len(self._listeners.get(cluster, ()))


class NotificationDispatcher:
    """Applies channel messages to the cache, then notifies listeners."""

    def __init__(self, cache: AddressCache, listeners: ListenerRegistry):
        self._cache = cache
        self._listeners = listeners

    def dispatch(self, cluster: str, message) -> Event:
        """Handle one raw channel message for *cluster*.

        Decoding happens before anything is mutated, so a
        :class:`~herald.errors.ProtocolViolationError` leaves the cache as it
        was. Listener failures are logged and never undo the cache update.
        """
        event = Event.decode(message)
        raw = message.decode("utf-8") if isinstance(message, bytes) else message
        self._cache.apply_event(cluster, event)
        logger.debug("Applied %s for %s on cluster '%s'", event.type.value, event.address, cluster)

        for listener in self._listeners.get(cluster):
            try:
                _invoke(listener, raw)
            except Exception as exc:
                err = ListenerError(cluster, listener, exc)
                logger.error(str(err), exc_info=exc)
        return event
