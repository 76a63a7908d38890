"""Shared fixtures: an in-memory stand-in for RedisStore and fast configs."""

from __future__ import annotations

import queue
import threading
import time
from collections import Counter, defaultdict
from contextlib import contextmanager

import pytest

from herald.config import RegistryConfig
from herald.errors import RegistryConnectionError
from herald.heartbeat import HeartbeatScheduler
from herald.registry import (
    AddressCache,
    Event,
    ListenerRegistry,
    NotificationDispatcher,
    RedisRegistry,
    ServiceAddress,
)

_DROP = object()


class FakeChannel:
    """Message queue handed out by FakeStore.subscription()."""

    def __init__(self, key: str):
        self.key = key
        self.messages: queue.Queue = queue.Queue()


class FakeStore:
    """Hash + pub/sub held in memory, with hooks for injecting failures."""

    def __init__(self, key_prefix: str = "registry.redis."):
        self.key_prefix = key_prefix
        self.hashes: dict[str, dict[str, str]] = defaultdict(dict)
        self.snapshot_failures = 0
        self.snapshot_calls: Counter = Counter()
        self.subscribe_calls: Counter = Counter()
        self.writes: Counter = Counter()
        self.closed = False
        self._lock = threading.Lock()
        self._channels: dict[str, list[FakeChannel]] = defaultdict(list)

    def key(self, cluster: str) -> str:
        return f"{self.key_prefix}{cluster}"

    def write_registration(self, cluster, address, origin):
        key = self.key(cluster)
        with self._lock:
            self.hashes[key][str(address)] = origin
            self.writes[str(address)] += 1
        self.publish(cluster, Event.registered(address).encode())

    def remove_registration(self, cluster, address):
        key = self.key(cluster)
        with self._lock:
            self.hashes[key].pop(str(address), None)
        self.publish(cluster, Event.unregistered(address).encode())

    def snapshot(self, cluster):
        with self._lock:
            self.snapshot_calls[cluster] += 1
            if self.snapshot_failures:
                self.snapshot_failures -= 1
                raise RegistryConnectionError("snapshot refused")
            return [ServiceAddress.parse(f) for f in self.hashes[self.key(cluster)]]

    @contextmanager
    def subscription(self, cluster):
        channel = FakeChannel(self.key(cluster))
        with self._lock:
            self._channels[channel.key].append(channel)
            self.subscribe_calls[cluster] += 1
        try:
            yield channel
        finally:
            with self._lock:
                self._channels[channel.key].remove(channel)

    def receive(self, channel, timeout):
        try:
            item = channel.messages.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _DROP:
            raise RegistryConnectionError("connection dropped")
        return item

    def close(self):
        self.closed = True

    # -- test hooks -------------------------------------------------------

    def publish(self, cluster, message):
        key = self.key(cluster)
        with self._lock:
            channels = list(self._channels[key])
        for channel in channels:
            channel.messages.put({"type": "message", "channel": key, "data": message})

    def put_field(self, cluster, address):
        """Write to the hash without publishing, i.e. an event nobody saw."""
        with self._lock:
            self.hashes[self.key(cluster)][str(address)] = "test"

    def drop_connections(self, cluster):
        with self._lock:
            channels = list(self._channels[self.key(cluster)])
        for channel in channels:
            channel.messages.put(_DROP)

    def server_unsubscribe(self, cluster):
        """Deliver the final unsubscribe confirmation a server sends on kick."""
        key = self.key(cluster)
        with self._lock:
            channels = list(self._channels[key])
        for channel in channels:
            channel.messages.put({"type": "unsubscribe", "channel": key, "data": 0})

    def subscriber_count(self, cluster) -> int:
        with self._lock:
            return len(self._channels[self.key(cluster)])


def wait_for(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll *predicate* until it is truthy or *timeout* seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fast_config() -> RegistryConfig:
    """Config with short poll and backoff intervals and heartbeats off."""
    return RegistryConfig(
        poll_interval=0.02,
        backoff_base=0.01,
        backoff_max=0.05,
        heartbeat_enabled=False,
    )


@pytest.fixture
def cache() -> AddressCache:
    return AddressCache()


@pytest.fixture
def listeners() -> ListenerRegistry:
    return ListenerRegistry()


@pytest.fixture
def dispatcher(cache, listeners) -> NotificationDispatcher:
    return NotificationDispatcher(cache, listeners)


@pytest.fixture
def registry(fast_config, fake_store):
    """RedisRegistry over the in-memory store, closed after the test."""
    heartbeats = HeartbeatScheduler(period=0.05, enabled=True)
    reg = RedisRegistry(fast_config, store=fake_store, heartbeats=heartbeats)
    yield reg
    reg.close()
