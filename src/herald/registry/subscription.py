"""Self-healing subscription loop, one per watched cluster.

The loop cycles through SYNCING -> WATCHING -> BACKOFF -> SYNCING until it
is stopped. Every (re)connect subscribes to the cluster channel and then
replaces the cached addresses with a full snapshot, so events missed while
disconnected cannot leave the cache stale for longer than one backoff.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from ..errors import ProtocolViolationError, RegistryConnectionError
from .backoff import Backoff, BackoffConfig
from .cache import AddressCache
from .dispatcher import NotificationDispatcher
from .store import RedisStore

logger = logging.getLogger(__name__)


class SubscriptionState(Enum):
    """Subscription loop states"""
    IDLE = "idle"
    SYNCING = "syncing"
    WATCHING = "watching"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class SubscriptionManager:
    """Keeps one cluster's cache entry in step with the store."""

    def __init__(
        self,
        cluster: str,
        store: RedisStore,
        cache: AddressCache,
        dispatcher: NotificationDispatcher,
        backoff: Optional[BackoffConfig] = None,
        poll_interval: float = 1.0,
        on_exit: Optional[Callable[['SubscriptionManager'], None]] = None,
    ):
        self.cluster = cluster
        self._store = store
        self._cache = cache
        self._dispatcher = dispatcher
        self._backoff = Backoff(backoff)
        self._poll_interval = poll_interval
        self._on_exit = on_exit

        self._state = SubscriptionState.IDLE
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._synced = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.sync_count = 0

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._thread is not None and self._state is not SubscriptionState.STOPPED

    def start(self) -> None:
        """Start the background thread. Calling it again is a no-op."""
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run,
                name=f"herald-subscription-{self.cluster}",
                daemon=True,
            )
            self._set_state(SubscriptionState.SYNCING)
            self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the loop to exit and wait for it, unless called from the loop itself."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def wait_synced(self, timeout: Optional[float] = None) -> bool:
        """Block until the first successful snapshot, or *timeout* expires."""
        return self._synced.wait(timeout)

    def _set_state(self, state: SubscriptionState) -> None:
        if state is not self._state:
            logger.debug("Cluster '%s': %s -> %s", self.cluster, self._state.value, state.value)
            self._state = state

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                self._set_state(SubscriptionState.SYNCING)
                try:
                    self._sync_and_watch()
                except ProtocolViolationError as exc:
                    logger.error(
                        "Protocol violation on cluster '%s', resynchronizing: %s",
                        self.cluster, exc, exc_info=True,
                    )
                except RegistryConnectionError as exc:
                    logger.warning("Cluster '%s': %s", self.cluster, exc)
                except Exception:
                    logger.exception("Subscription loop for cluster '%s' failed", self.cluster)

                if self._stop.is_set():
                    break
                if self._backoff.exhausted:
                    logger.error(
                        "Giving up on cluster '%s' after %d consecutive failures",
                        self.cluster, self._backoff.attempts,
                    )
                    break
                delay = self._backoff.next_delay()
                self._set_state(SubscriptionState.BACKOFF)
                logger.info("Cluster '%s': reconnecting in %.2fs", self.cluster, delay)
                self._stop.wait(delay)
        finally:
            self._set_state(SubscriptionState.STOPPED)
            if self._on_exit is not None:
                self._on_exit(self)

    def _sync_and_watch(self) -> None:
        cluster = self.cluster
        with self._store.subscription(cluster) as pubsub:
            self._cache.replace_snapshot(cluster, self._store.snapshot(cluster))
            self._backoff.reset()
            self.sync_count += 1
            self._synced.set()
            self._set_state(SubscriptionState.WATCHING)

            while not self._stop.is_set():
                message = self._store.receive(pubsub, self._poll_interval)
                if message is None:
                    continue
                kind = message.get("type")
                if kind == "message":
                    self._dispatcher.dispatch(cluster, message["data"])
                elif kind == "unsubscribe" and not message.get("data"):
                    logger.info("Cluster '%s': channel unsubscribed by the server", cluster)
                    return
