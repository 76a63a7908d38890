"""Tests for the per-cluster subscription loop.

Covers:
- initial snapshot and incremental events
- resync after a dropped connection, including events missed meanwhile
- protocol violations forcing a resync instead of killing the loop
- giving up after the retry ceiling
- stop()
"""

from __future__ import annotations

import logging

import pytest

from herald.registry import (
    BackoffConfig,
    ServiceAddress,
    SubscriptionManager,
    SubscriptionState,
)

from conftest import wait_for

A = ServiceAddress("10.0.0.1", 8091)
B = ServiceAddress("10.0.0.2", 8091)

FAST_BACKOFF = BackoffConfig(base_delay=0.01, max_delay=0.05)


@pytest.fixture
def make_manager(fake_store, cache, dispatcher):
    managers = []

    def _make(cluster="default", backoff=FAST_BACKOFF, on_exit=None):
        manager = SubscriptionManager(
            cluster,
            fake_store,
            cache,
            dispatcher,
            backoff=backoff,
            poll_interval=0.02,
            on_exit=on_exit,
        )
        managers.append(manager)
        return manager

    yield _make
    for manager in managers:
        manager.stop(timeout=2)


@pytest.mark.unit
class TestSubscriptionManager:
    def test_starts_idle(self, make_manager):
        manager = make_manager()
        assert manager.state is SubscriptionState.IDLE
        assert not manager.active

    def test_initial_snapshot_seeds_cache(self, make_manager, fake_store, cache):
        fake_store.put_field("default", A)
        manager = make_manager()
        manager.start()
        assert manager.wait_synced(2)
        assert cache.get("default") == [A]
        assert wait_for(lambda: manager.state is SubscriptionState.WATCHING)

    def test_start_twice_runs_one_loop(self, make_manager, fake_store):
        manager = make_manager()
        manager.start()
        manager.start()
        assert manager.wait_synced(2)
        assert fake_store.subscriber_count("default") == 1

    def test_events_are_applied_and_forwarded(self, make_manager, fake_store, cache, listeners):
        received = []
        listeners.add("default", received.append)
        manager = make_manager()
        manager.start()
        assert manager.wait_synced(2)

        fake_store.write_registration("default", A, "origin")
        fake_store.write_registration("default", B, "origin")
        fake_store.remove_registration("default", A)

        assert wait_for(lambda: len(received) == 3)
        assert received == [
            "10.0.0.1:8091-REGISTER",
            "10.0.0.2:8091-REGISTER",
            "10.0.0.1:8091-UNREGISTER",
        ]
        assert cache.get("default") == [B]

    def test_resync_after_drop_recovers_missed_events(self, make_manager, fake_store, cache):
        manager = make_manager()
        manager.start()
        assert manager.wait_synced(2)

        # B lands in the hash while nobody hears about it
        fake_store.put_field("default", B)
        fake_store.drop_connections("default")

        assert wait_for(lambda: manager.sync_count >= 2)
        assert cache.get("default") == [B]
        assert wait_for(lambda: manager.state is SubscriptionState.WATCHING)

    def test_snapshot_failure_backs_off_and_retries(self, make_manager, fake_store, cache):
        fake_store.put_field("default", A)
        fake_store.snapshot_failures = 2
        manager = make_manager()
        manager.start()
        assert manager.wait_synced(2)
        assert fake_store.snapshot_calls["default"] == 3
        assert cache.get("default") == [A]

    def test_protocol_violation_forces_resync(self, make_manager, fake_store, cache, caplog):
        manager = make_manager()
        manager.start()
        assert manager.wait_synced(2)
        fake_store.put_field("default", A)

        with caplog.at_level(logging.ERROR, logger="herald.registry.subscription"):
            fake_store.publish("default", "host:1234-BOGUS")
            assert wait_for(lambda: manager.sync_count >= 2)

        assert "Protocol violation" in caplog.text
        assert cache.get("default") == [A]
        assert manager.active

    def test_gives_up_after_retry_ceiling(self, make_manager, fake_store):
        exited = []
        fake_store.snapshot_failures = 100
        manager = make_manager(
            backoff=BackoffConfig(base_delay=0.01, max_delay=0.02, max_retries=2),
            on_exit=exited.append,
        )
        manager.start()
        assert wait_for(lambda: manager.state is SubscriptionState.STOPPED)
        assert fake_store.snapshot_calls["default"] == 3
        assert wait_for(lambda: exited == [manager])
        assert not manager.active

    def test_server_side_unsubscribe_triggers_resync(self, make_manager, fake_store):
        manager = make_manager()
        manager.start()
        assert manager.wait_synced(2)
        fake_store.server_unsubscribe("default")
        assert wait_for(lambda: manager.sync_count >= 2)

    def test_stop_ends_the_loop(self, make_manager, fake_store):
        exited = []
        manager = make_manager(on_exit=exited.append)
        manager.start()
        assert manager.wait_synced(2)
        manager.stop(timeout=2)
        assert manager.state is SubscriptionState.STOPPED
        assert exited == [manager]
        assert fake_store.subscriber_count("default") == 0
