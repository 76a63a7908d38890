#!/usr/bin/env python3
"""
Redis-backed Service Registry

This module provides RedisRegistry, the public entry point:
- register / unregister: announce or withdraw this process's address
- subscribe / unsubscribe: receive raw membership events for a cluster
- lookup: resolve a key to the live addresses of its cluster
- close: stop background work and release the connection pool
"""

import logging
import os
import socket
import threading
from typing import Dict, List, Optional, Set

from ..config import RegistryConfig
from ..errors import RegistryConnectionError, RegistryError
from ..heartbeat import HeartbeatScheduler
from .address import ServiceAddress, validate_address
from .backoff import BackoffConfig
from .cache import AddressCache
from .dispatcher import Listener, ListenerRegistry, NotificationDispatcher
from .store import RedisStore
from .subscription import SubscriptionManager

logger = logging.getLogger(__name__)

REGISTRY_TYPE = "redis"


def _origin_tag() -> str:
    return f"{os.getpid()}@{socket.gethostname()}"


class RedisRegistry:
    """Registry context owning its cache, listeners and subscription loops."""

    def __init__(
        self,
        config: Optional[RegistryConfig] = None,
        store: Optional[RedisStore] = None,
        heartbeats: Optional[HeartbeatScheduler] = None,
    ):
        self._config = config or RegistryConfig()
        self._store = store or RedisStore(self._config)
        self._heartbeats = heartbeats or HeartbeatScheduler(
            period=self._config.heartbeat_period,
            enabled=self._config.heartbeat_enabled,
        )
        self._backoff = BackoffConfig(
            base_delay=self._config.backoff_base,
            max_delay=self._config.backoff_max,
            max_retries=self._config.backoff_max_retries,
        )
        self._origin = _origin_tag()

        self._cache = AddressCache()
        self._listeners = ListenerRegistry()
        self._dispatcher = NotificationDispatcher(self._cache, self._listeners)

        self._lock = threading.Lock()
        self._subscriptions: Dict[str, SubscriptionManager] = {}
        # Clusters kept warm because lookup() was called for them
        self._watched: Set[str] = set()
        self._closed = False

    @property
    def config(self) -> RegistryConfig:
        return self._config

    @property
    def cache(self) -> AddressCache:
        return self._cache

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, address) -> ServiceAddress:
        """Announce *address* in the configured cluster and keep it alive."""
        addr = validate_address(address)
        self._register_write(addr)
        self._heartbeats.schedule(REGISTRY_TYPE, addr, self._register_write)
        logger.info("Registered %s in cluster '%s'", addr, self._config.cluster)
        return addr

    def _register_write(self, address: ServiceAddress) -> None:
        # Also the heartbeat callback, so it must not re-arm anything.
        self._store.write_registration(self._config.cluster, address, self._origin)

    def unregister(self, address) -> ServiceAddress:
        """Withdraw *address* and cancel its heartbeat."""
        addr = validate_address(address)
        self._heartbeats.cancel(REGISTRY_TYPE, addr)
        self._store.remove_registration(self._config.cluster, addr)
        logger.info("Unregistered %s from cluster '%s'", addr, self._config.cluster)
        return addr

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, cluster: str, listener: Listener) -> None:
        """Add *listener* for *cluster* and make sure its loop is running."""
        with self._lock:
            self._check_open()
            self._listeners.add(cluster, listener)
            self._ensure_subscription(cluster)

    def unsubscribe(self, cluster: str, listener: Listener) -> None:
        """Remove *listener*; stop the loop once nothing needs the cluster.

        Clusters that have been looked up stay subscribed so their cached
        addresses keep converging.
        """
        with self._lock:
            remaining = self._listeners.remove(cluster, listener)
            if remaining or cluster in self._watched:
                return
            manager = self._subscriptions.pop(cluster, None)
        if manager is not None:
            logger.info("No listeners left for cluster '%s', stopping its subscription", cluster)
            manager.stop(timeout=self._config.poll_interval + 1)

    def subscription(self, cluster: str) -> Optional[SubscriptionManager]:
        with self._lock:
            return self._subscriptions.get(cluster)

    def listener_count(self, cluster: str) -> int:
        return self._listeners.count(cluster)

    def _ensure_subscription(self, cluster: str) -> SubscriptionManager:
        # Caller holds self._lock
        self._check_open()
        manager = self._subscriptions.get(cluster)
        if manager is None or not manager.active:
            manager = SubscriptionManager(
                cluster,
                self._store,
                self._cache,
                self._dispatcher,
                backoff=self._backoff,
                poll_interval=self._config.poll_interval,
                on_exit=self._on_subscription_exit,
            )
            self._subscriptions[cluster] = manager
            manager.start()
            logger.debug("Started subscription for cluster '%s'", cluster)
        return manager

    def _on_subscription_exit(self, manager: SubscriptionManager) -> None:
        with self._lock:
            if self._subscriptions.get(manager.cluster) is manager:
                del self._subscriptions[manager.cluster]

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve_cluster(self, key: str) -> Optional[str]:
        """Map a lookup key to a cluster name; unmapped keys name the cluster directly."""
        if not key:
            return None
        return self._config.vgroup_mapping.get(key, key)

    def lookup(self, key: str) -> List[ServiceAddress]:
        cluster = self.resolve_cluster(key)
        if cluster is None:
            return []
        return self.lookup_by_cluster(cluster)

    def lookup_by_cluster(self, cluster: str) -> List[ServiceAddress]:
        """Return the cached addresses, subscribing to the cluster on first use.

        Only the cluster's loop writes the cache. Until that loop has synced
        once, the call waits up to ``lookup_timeout`` seconds and raises
        RegistryConnectionError if it still has not.
        """
        with self._lock:
            self._check_open()
            self._watched.add(cluster)
            manager = self._ensure_subscription(cluster)
        timeout = self._config.lookup_timeout
        if not manager.wait_synced(timeout):
            raise RegistryConnectionError(
                f"cluster '{cluster}' did not sync within {timeout}s"
            )
        return self._cache.get(cluster)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise RegistryError("registry is closed")

    def close(self) -> None:
        """Stop every loop and heartbeat, then disconnect the pool."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            managers = list(self._subscriptions.values())
            self._subscriptions.clear()
        for manager in managers:
            manager.stop(timeout=self._config.poll_interval + 1)
        self._heartbeats.cancel_all()
        self._store.close()
        logger.debug("Registry closed")

    def __enter__(self) -> 'RedisRegistry':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
