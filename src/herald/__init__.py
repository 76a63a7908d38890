"""herald: service discovery over a Redis hash and pub/sub channel."""

from .config import PoolConfig, RegistryConfig, load_config
from .errors import (
    InvalidAddressError,
    ListenerError,
    ProtocolViolationError,
    RegistryConnectionError,
    RegistryError,
)
from .heartbeat import HeartbeatScheduler
from .registry import RedisRegistry, ServiceAddress

__version__ = '0.1.0'
__all__ = [
    'HeartbeatScheduler',
    'InvalidAddressError',
    'ListenerError',
    'PoolConfig',
    'ProtocolViolationError',
    'RedisRegistry',
    'RegistryConfig',
    'RegistryConnectionError',
    'RegistryError',
    'ServiceAddress',
    'load_config',
]
