"""Exception hierarchy for the registry."""


class RegistryError(Exception):
    """Base class for every error raised by herald."""


class InvalidAddressError(RegistryError, ValueError):
    """An address is malformed or cannot be used as a registry field."""


class RegistryConnectionError(RegistryError, ConnectionError):
    """The shared store or its channel could not be reached."""


class ProtocolViolationError(RegistryError):
    """A channel message does not follow the ``<host:port>-<TYPE>`` format.

    This means a producer and a consumer disagree on the wire contract, so it
    is reported loudly instead of being treated as a transient failure.
    """

    def __init__(self, message: str, payload: str | None = None):
        super().__init__(message)
        self.payload = payload


class ListenerError(RegistryError):
    """A listener callback raised while handling an event."""

    def __init__(self, cluster: str, listener, cause: BaseException):
        super().__init__(f"listener {listener!r} failed on cluster '{cluster}': {cause}")
        self.cluster = cluster
        self.listener = listener
        self.__cause__ = cause
