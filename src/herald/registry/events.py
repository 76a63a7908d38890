"""Membership events exchanged over the registry channel."""

from dataclasses import dataclass
from enum import Enum

from ..errors import InvalidAddressError, ProtocolViolationError
from .address import EVENT_DELIMITER, ServiceAddress


class EventType(Enum):
    """Kinds of membership change"""
    REGISTER = "REGISTER"
    UNREGISTER = "UNREGISTER"


@dataclass(frozen=True)
class Event:
    """A decoded ``<host:port>-<REGISTER|UNREGISTER>`` message."""
    address: ServiceAddress
    type: EventType

    @classmethod
    def registered(cls, address: ServiceAddress) -> 'Event':
        return cls(address, EventType.REGISTER)

    @classmethod
    def unregistered(cls, address: ServiceAddress) -> 'Event':
        return cls(address, EventType.UNREGISTER)

    def encode(self) -> str:
        return f"{self.address}{EVENT_DELIMITER}{self.type.value}"

    @classmethod
    def decode(cls, raw) -> 'Event':
        """Decode a channel payload.

        Raises :class:`ProtocolViolationError` for anything that is not exactly
        an address and a known event type joined by the last ``-``.
        """
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                raise ProtocolViolationError("event payload is not valid UTF-8", repr(raw)) from None
        if not isinstance(raw, str):
            raise ProtocolViolationError(f"unexpected event payload type {type(raw).__name__}", repr(raw))

        addr_part, sep, type_part = raw.rpartition(EVENT_DELIMITER)
        if not sep or not addr_part:
            raise ProtocolViolationError(f"malformed event: {raw!r}", raw)
        try:
            event_type = EventType(type_part)
        except ValueError:
            raise ProtocolViolationError(f"unknown event type '{type_part}' in {raw!r}", raw) from None
        try:
            address = ServiceAddress.parse(addr_part)
        except InvalidAddressError as exc:
            raise ProtocolViolationError(f"invalid address in event {raw!r}: {exc}", raw) from exc
        return cls(address, event_type)
