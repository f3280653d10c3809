"""Exceptions raised while resolving and waiting for port bindings of
containers.

All of them inherit from :py:class:`BackingServiceError` and additionally from
the builtin exception that describes the failure best, so that callers can
either catch everything from this package at once or just e.g. a
:py:class:`LookupError`.

"""
from typing import Optional


class BackingServiceError(Exception):
    """Base class of all errors raised by :py:mod:`pytest_backing_services`."""


class InvalidPortSpec(BackingServiceError, ValueError):
    """A port declaration could not be parsed into a container port and a
    protocol.

    """


class BindingNotFound(BackingServiceError, LookupError):
    """No host port is bound for the requested container port and protocol."""

    def __init__(self, key: str) -> None:
        super().__init__(f"No port binding found for :{key}")
        #: the ``port/protocol`` key that was looked up
        self.key = key


class NoBindingsPresent(BackingServiceError, LookupError):
    """The registry contains no port bindings at all."""

    def __init__(self) -> None:
        super().__init__("No port bindings found")


class NoHostPortForFamily(BackingServiceError, LookupError):
    """None of the raw host bindings of a container port belongs to one of the
    requested IP families.

    """


class PortExposureTimeout(BackingServiceError, RuntimeError):
    """The container did not expose all requested ports before the timeout
    expired.

    """

    def __init__(
        self, container_id: str, message: Optional[str] = None
    ) -> None:
        super().__init__(
            message or "Container did not expose all ports after starting"
        )
        #: id of the container that was inspected
        self.container_id = container_id
