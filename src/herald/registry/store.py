"""Redis access for the registry: one hash plus one channel per cluster."""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..config import RegistryConfig
from ..errors import RegistryConnectionError
from .address import ServiceAddress
from .events import Event

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


def build_pool(config: RegistryConfig) -> redis.BlockingConnectionPool:
    """Create the connection pool described by *config*."""
    return redis.BlockingConnectionPool(
        host=config.host,
        port=config.port,
        db=config.db,
        password=config.password or None,
        socket_timeout=config.socket_timeout,
        decode_responses=True,
        **config.pool.pool_kwargs(),
    )


class RedisStore:
    """Hash writes, snapshots and pub/sub for registry keys.

    Every call borrows a connection from the pool and returns it before
    the call ends; connection failures are re-raised as
    :class:`RegistryConnectionError`.
    """

    def __init__(self, config: RegistryConfig, client: Optional[redis.Redis] = None):
        self._config = config
        if client is None:
            client = redis.Redis(connection_pool=build_pool(config))
        self._client = client

    def key(self, cluster: str) -> str:
        return self._config.registry_key(cluster)

    def write_registration(self, cluster: str, address: ServiceAddress, origin: str) -> None:
        """HSET the address and publish a REGISTER event in one pipeline."""
        key = self.key(cluster)
        try:
            with self._client.pipeline(transaction=False) as pipe:
                pipe.hset(key, str(address), origin)
                pipe.publish(key, Event.registered(address).encode())
                pipe.execute()
        except _TRANSIENT_ERRORS as exc:
            raise RegistryConnectionError(f"failed to register {address} in '{key}': {exc}") from exc

    def remove_registration(self, cluster: str, address: ServiceAddress) -> None:
        """HDEL the address and publish an UNREGISTER event in one pipeline."""
        key = self.key(cluster)
        try:
            with self._client.pipeline(transaction=False) as pipe:
                pipe.hdel(key, str(address))
                pipe.publish(key, Event.unregistered(address).encode())
                pipe.execute()
        except _TRANSIENT_ERRORS as exc:
            raise RegistryConnectionError(f"failed to unregister {address} from '{key}': {exc}") from exc

    def snapshot(self, cluster: str) -> List[ServiceAddress]:
        """Return every address currently recorded in the cluster hash.

        Fields that do not parse as addresses are skipped with a warning.
        """
        key = self.key(cluster)
        try:
            fields = self._client.hkeys(key)
        except _TRANSIENT_ERRORS as exc:
            raise RegistryConnectionError(f"failed to read '{key}': {exc}") from exc

        addresses = []
        for field_name in fields:
            if isinstance(field_name, bytes):
                field_name = field_name.decode("utf-8", errors="replace")
            try:
                addresses.append(ServiceAddress.parse(field_name))
            except ValueError as exc:
                logger.warning("Ignoring malformed field '%s' in '%s': %s", field_name, key, exc)
        return addresses

    @contextmanager
    def subscription(self, cluster: str) -> Iterator[redis.client.PubSub]:
        """Yield a PubSub subscribed to the cluster channel, closed on exit."""
        key = self.key(cluster)
        pubsub = self._client.pubsub()
        try:
            try:
                pubsub.subscribe(key)
            except _TRANSIENT_ERRORS as exc:
                raise RegistryConnectionError(f"failed to subscribe to '{key}': {exc}") from exc
            yield pubsub
        finally:
            pubsub.close()

    def receive(self, pubsub: redis.client.PubSub, timeout: float) -> Optional[dict]:
        """Wait up to *timeout* seconds for the next pub/sub message."""
        try:
            return pubsub.get_message(timeout=timeout)
        except _TRANSIENT_ERRORS as exc:
            raise RegistryConnectionError(f"channel connection lost: {exc}") from exc

    def close(self) -> None:
        """Disconnect every pooled connection."""
        self._client.connection_pool.disconnect()
