"""The bound_ports module maps the ports of a container to the host ports that
the container runtime assigned to them.

The container runtime reports a list of host bindings per container port,
e.g. one for IPv4 and one for IPv6. :py:func:`resolve_host_port_binding` picks
the one binding that is reachable from the host and :py:class:`BoundPorts`
stores the result for each container port.

"""
import enum
import ipaddress
from dataclasses import dataclass
from typing import Dict
from typing import Iterable
from typing import Iterator
from typing import List
from typing import Optional
from typing import Tuple
from typing import Union

from pytest_backing_services.errors import BindingNotFound
from pytest_backing_services.errors import InvalidPortSpec
from pytest_backing_services.errors import NoBindingsPresent
from pytest_backing_services.errors import NoHostPortForFamily
from pytest_backing_services.inspect import ContainerInspect
from pytest_backing_services.inspect import HostPortBinding
from pytest_backing_services.port import MAX_PORT
from pytest_backing_services.port import PortForwarding
from pytest_backing_services.port import PortSpec
from pytest_backing_services.port import PortWithOptionalBinding
from pytest_backing_services.port import normalize_port


@enum.unique
class IpFamily(enum.Enum):
    """IP address families of the host."""

    IPV4 = 4
    IPV6 = 6

    @staticmethod
    def of_address(address: str) -> "Optional[IpFamily]":
        """Returns the family of ``address`` or ``None`` if ``address`` is not
        a valid IP address.

        """
        try:
            return IpFamily(ipaddress.ip_address(address).version)
        except ValueError:
            return None


@dataclass(frozen=True)
class HostIp:
    """An address via which the host running the containers can be reached."""

    address: str
    family: IpFamily


def _is_dual_stack(bindings: List[HostPortBinding]) -> bool:
    return len(bindings) == 1 and bindings[0].host_ip == ""


def resolve_host_port_binding(
    host_ips: Iterable[HostIp], bindings: List[HostPortBinding]
) -> int:
    """Pick the host port from the raw ``bindings`` of a single container port.

    A single binding without a host IP serves IPv4 and IPv6 alike and is
    returned directly. Otherwise the families of ``host_ips`` are tried in
    order and the first binding whose host IP belongs to the family wins, so
    the order of ``host_ips`` decides between an IPv4 and an IPv6 binding.

    Raises:
        NoHostPortForFamily: if no binding matches any of the families
    """
    if _is_dual_stack(bindings):
        return bindings[0].host_port

    for host_ip in host_ips:
        for binding in bindings:
            if IpFamily.of_address(binding.host_ip) == host_ip.family:
                return binding.host_port

    raise NoHostPortForFamily(
        f"No host port found for host IP in {bindings}"
    )


def _split_key(key: str) -> Tuple[str, str]:
    port, _, proto = key.partition("/")
    return port, proto.lower()


class BoundPorts:
    """Host ports bound to the ports of a container, keyed by
    ``$container_port/$protocol``.

    Bindings are kept in the order in which they were added.
    """

    def __init__(self) -> None:
        self._ports: Dict[str, int] = {}

    def get_binding(
        self,
        port: Union[int, str, PortSpec, PortForwarding],
        protocol: str = "tcp",
    ) -> int:
        """Returns the host port bound to ``port``.

        ``port`` can either be a container port number (then ``protocol`` is
        used), a ``$port/$protocol`` string or a
        :py:class:`~pytest_backing_services.port.PortSpec` /
        :py:class:`~pytest_backing_services.port.PortForwarding`.

        Raises:
            BindingNotFound: if no host port is bound to ``port``
        """
        if isinstance(port, (PortSpec, PortForwarding)):
            key = normalize_port(port).key
        elif isinstance(port, str) and "/" in port:
            key = port
        else:
            key = f"{port}/{protocol.lower()}"

        binding = self._ports.get(key)

        # the protocol might have been passed in a different case
        if binding is None and isinstance(port, str) and "/" in port:
            binding = self._ports.get("/".join(_split_key(port)))

        if binding is None:
            raise BindingNotFound(key)

        return binding

    def get_first_binding(self) -> int:
        """Returns the host port of the first binding that was added.

        Raises:
            NoBindingsPresent: if there are no bindings
        """
        for host_port in self._ports.values():
            return host_port
        raise NoBindingsPresent()

    def set_binding(
        self, key: Union[int, str], host_port: int, protocol: str = "tcp"
    ) -> None:
        """Bind the container port ``key`` to ``host_port``.

        If ``key`` is a ``$port/$protocol`` string, then the protocol in the
        key is used and ``protocol`` is ignored.
        """
        if isinstance(host_port, bool) or not 0 < host_port <= MAX_PORT:
            raise InvalidPortSpec(
                f"Invalid host port {host_port} for {key}"
            )

        if isinstance(key, str) and "/" in key:
            self._ports["/".join(_split_key(key))] = host_port
        else:
            self._ports[f"{key}/{protocol.lower()}"] = host_port

    def filter(
        self, ports: Iterable[PortWithOptionalBinding]
    ) -> "BoundPorts":
        """Returns a new :py:class:`BoundPorts` containing only the bindings
        of ``ports``.

        """
        wanted = {normalize_port(port) for port in ports}
        bound_ports = BoundPorts()

        for key, host_port in self:
            port, proto = _split_key(key)
            try:
                spec = PortSpec(container_port=int(port), protocol=proto)
            except ValueError:
                continue
            if spec in wanted:
                bound_ports.set_binding(key, host_port)

        return bound_ports

    @staticmethod
    def from_inspect_result(
        host_ips: Iterable[HostIp], inspect_result: ContainerInspect
    ) -> "BoundPorts":
        """Create a :py:class:`BoundPorts` from the port bindings of
        ``inspect_result``. Ports without any host binding are omitted.

        """
        host_ips = list(host_ips)
        bound_ports = BoundPorts()

        for key, bindings in inspect_result.ports.items():
            if not bindings:
                continue
            bound_ports.set_binding(
                key, resolve_host_port_binding(host_ips, bindings)
            )

        return bound_ports

    def __iter__(self) -> Iterator[Tuple[str, int]]:
        return iter(list(self._ports.items()))

    def __len__(self) -> int:
        return len(self._ports)

    def __contains__(self, port: object) -> bool:
        try:
            self.get_binding(port)  # type: ignore[arg-type]
        except (BindingNotFound, InvalidPortSpec):
            return False
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BoundPorts):
            return NotImplemented
        return self._ports == other._ports

    def __repr__(self) -> str:
        return f"BoundPorts({self._ports!r})"
