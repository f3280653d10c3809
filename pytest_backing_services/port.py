"""This module contains the declarations of container ports and the functions
that turn the different ways to declare a port into a canonical
:py:class:`PortSpec`.

A port can be declared as:

- a bare integer, e.g. ``8080`` (the protocol defaults to ``tcp``),
- a string of the form ``"$port/$protocol"``, e.g. ``"53/udp"``,
- an instance of :py:class:`PortForwarding`.

"""
import enum
from dataclasses import dataclass
from typing import List
from typing import Union

from pytest_backing_services.errors import InvalidPortSpec


_DEFAULT_PROTOCOL = "tcp"

#: Highest valid port number
MAX_PORT = 65535


@enum.unique
class NetworkProtocol(enum.Enum):
    """Network protocols supporting port forwarding.

    Other protocols can be passed as plain lowercase strings.
    """

    #: Transmission Control Protocol
    TCP = "tcp"
    #: User Datagram Protocol
    UDP = "udp"
    #: Stream Control Transmission Protocol
    SCTP = "sctp"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PortForwarding:
    """Representation of a port forward from a container to the host.

    To expose a port of a container, create an instance of this class, set
    the attribute :py:attr:`container_port` and optionally :py:attr:`protocol`
    and :py:attr:`host_port` and pass it via
    :py:attr:`~pytest_backing_services.container.Container.forwarded_ports`:

    >>> Container(url="my-webserver", forwarded_ports=[PortForwarding(container_port=8000)])

    """

    #: The port which shall be exposed by the container.
    container_port: int

    #: The protocol which the exposed port is using. Defaults to TCP.
    protocol: Union[NetworkProtocol, str] = NetworkProtocol.TCP

    #: The port on the host to which :py:attr:`container_port` is bound. If it
    #: is left at ``-1``, then the container runtime picks a free ephemeral
    #: port.
    host_port: int = -1

    #: The IP address to which to bind. By default, all addresses are used.
    bind_ip: str = ""

    @property
    def forward_cli_args(self) -> List[str]:
        """Returns a list of command line arguments for the container launch
        command to expose this port.

        """
        host_port = "" if self.host_port == -1 else str(self.host_port)

        if self.bind_ip:
            # IPv6 addresses must be wrapped in brackets
            if ":" in self.bind_ip:
                prefix = f"[{self.bind_ip}]:{host_port}:"
            else:
                prefix = f"{self.bind_ip}:{host_port}:"
        else:
            prefix = f"{host_port}:" if host_port else ""

        return ["-p", prefix + normalize_port(self).key]

    def __str__(self) -> str:
        return str(self.forward_cli_args)


@dataclass(frozen=True)
class PortSpec:
    """A container port together with its (lowercase) protocol."""

    container_port: int
    protocol: str = _DEFAULT_PROTOCOL

    @property
    def key(self) -> str:
        """The ``$port/$protocol`` key under which container runtimes report
        the bindings of this port.

        """
        return f"{self.container_port}/{self.protocol}"

    def __str__(self) -> str:
        return self.key


#: All supported ways to declare a container port
PortWithOptionalBinding = Union[int, str, PortForwarding, PortSpec]


def _check_port(port: object, origin: object) -> int:
    # bool is a subclass of int, but True is certainly not port 1
    if isinstance(port, bool) or not isinstance(port, int):
        raise InvalidPortSpec(f"Invalid container port in {origin!r}")
    if not 0 < port <= MAX_PORT:
        raise InvalidPortSpec(
            f"Container port {port} from {origin!r} is out of range"
        )
    return port


def _check_protocol(protocol: object, origin: object) -> str:
    proto = str(protocol).strip().lower()
    if not proto:
        raise InvalidPortSpec(f"Missing protocol in {origin!r}")
    return proto


def normalize_port(port: PortWithOptionalBinding) -> PortSpec:
    """Convert any supported port declaration into a :py:class:`PortSpec`.

    >>> normalize_port(8080)
    PortSpec(container_port=8080, protocol='tcp')
    >>> normalize_port("53/UDP")
    PortSpec(container_port=53, protocol='udp')

    A string without a protocol is treated as a bare port number:

    >>> normalize_port("8080")
    PortSpec(container_port=8080, protocol='tcp')

    Raises:
        InvalidPortSpec: if the container port is not an integer between 1
            and 65535 or if the protocol is empty.
    """
    if isinstance(port, PortSpec):
        return PortSpec(
            container_port=_check_port(port.container_port, port),
            protocol=_check_protocol(port.protocol, port),
        )

    if isinstance(port, PortForwarding):
        return PortSpec(
            container_port=_check_port(port.container_port, port),
            protocol=_check_protocol(port.protocol, port),
        )

    if isinstance(port, str):
        port_str, sep, proto = port.partition("/")
        try:
            port_num = int(port_str.strip())
        except ValueError as val_err:
            raise InvalidPortSpec(
                f"Invalid container port in {port!r}"
            ) from val_err
        return PortSpec(
            container_port=_check_port(port_num, port),
            protocol=_check_protocol(proto, port)
            if sep
            else _DEFAULT_PROTOCOL,
        )

    return PortSpec(container_port=_check_port(port, port))


def get_container_port(port: PortWithOptionalBinding) -> int:
    """Returns the container port of any supported port declaration."""
    return normalize_port(port).container_port


def get_protocol(port: PortWithOptionalBinding) -> str:
    """Returns the lowercase protocol of any supported port declaration."""
    return normalize_port(port).protocol
