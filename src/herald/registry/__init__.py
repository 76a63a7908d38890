"""
Redis-backed Service Registry

This package provides:
1. RedisRegistry — register/unregister/subscribe/lookup facade
2. AddressCache — per-cluster address sets served to lookups
3. SubscriptionManager — self-healing per-cluster sync loop
4. NotificationDispatcher — applies channel events and notifies listeners
"""

from .address import ServiceAddress, validate_address
from .backoff import Backoff, BackoffConfig
from .cache import AddressCache
from .dispatcher import ListenerRegistry, NotificationDispatcher
from .events import Event, EventType
from .redis_registry import RedisRegistry
from .store import RedisStore
from .subscription import SubscriptionManager, SubscriptionState

__all__ = [
    'AddressCache',
    'Backoff',
    'BackoffConfig',
    'Event',
    'EventType',
    'ListenerRegistry',
    'NotificationDispatcher',
    'RedisRegistry',
    'RedisStore',
    'ServiceAddress',
    'SubscriptionManager',
    'SubscriptionState',
    'validate_address',
]
