"""Service addresses and their validation."""

from dataclasses import dataclass

from ..errors import InvalidAddressError

# Separates the address from the event type on the wire.
EVENT_DELIMITER = "-"

_WILDCARD_HOSTS = {"0.0.0.0", "::", ""}


@dataclass(frozen=True, order=True)
class ServiceAddress:
    """A ``host:port`` pair that can be written to the registry."""
    host: str
    port: int

    def __post_init__(self):
        validate_address(self)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def parse(cls, value: str) -> 'ServiceAddress':
        """Parse ``host:port``, raising :class:`InvalidAddressError` when malformed."""
        if not isinstance(value, str) or not value.strip():
            raise InvalidAddressError(f"empty address: {value!r}")
        host, sep, port_str = value.strip().rpartition(":")
        if not sep:
            raise InvalidAddressError(f"address '{value}' is missing a port")
        try:
            port = int(port_str)
        except ValueError:
            raise InvalidAddressError(f"address '{value}' has a non-numeric port") from None
        return cls(host=host, port=port)


def validate_address(address) -> ServiceAddress:
    """Check that *address* can be registered and return it as a ServiceAddress.

    Accepts a ServiceAddress, a ``host:port`` string or a ``(host, port)``
    tuple.
    """
    if address is None:
        raise InvalidAddressError("address must not be None")
    if isinstance(address, str):
        return ServiceAddress.parse(address)
    if isinstance(address, tuple) and len(address) == 2:
        return ServiceAddress(host=address[0], port=address[1])
    if not isinstance(address, ServiceAddress):
        raise InvalidAddressError(f"unsupported address type: {type(address).__name__}")

    host, port = address.host, address.port
    if not isinstance(host, str) or host.strip() in _WILDCARD_HOSTS:
        raise InvalidAddressError(f"invalid host: {host!r}")
    if EVENT_DELIMITER in host:
        raise InvalidAddressError(
            f"host '{host}' contains '{EVENT_DELIMITER}', which is reserved by the event format"
        )
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise InvalidAddressError(f"invalid port: {port!r}")
    return address
