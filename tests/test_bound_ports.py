"""Tests of the registry of host ports bound to container ports and of the
selection of the host port from the bindings reported by the runtime."""

# pylint: disable=missing-function-docstring
from typing import List
from typing import Tuple

import pytest

from pytest_backing_services.bound_ports import BoundPorts
from pytest_backing_services.bound_ports import HostIp
from pytest_backing_services.bound_ports import IpFamily
from pytest_backing_services.bound_ports import resolve_host_port_binding
from pytest_backing_services.errors import BindingNotFound
from pytest_backing_services.errors import InvalidPortSpec
from pytest_backing_services.errors import NoBindingsPresent
from pytest_backing_services.errors import NoHostPortForFamily
from pytest_backing_services.inspect import ContainerInspect
from pytest_backing_services.inspect import HostPortBinding
from pytest_backing_services.port import NetworkProtocol
from pytest_backing_services.port import PortForwarding
from pytest_backing_services.port import PortSpec

from .fakes import binding
from .fakes import raw_inspect

IPV4 = HostIp(address="127.0.0.1", family=IpFamily.IPV4)
IPV6 = HostIp(address="::1", family=IpFamily.IPV6)


def _bound_ports(*bindings: Tuple[str, int]) -> BoundPorts:
    bound_ports = BoundPorts()
    for key, host_port in bindings:
        bound_ports.set_binding(key, host_port)
    return bound_ports


def test_get_binding_by_port_number() -> None:
    bound_ports = _bound_ports(("8080/tcp", 45000))

    assert bound_ports.get_binding(8080) == 45000
    assert bound_ports.get_binding(8080, "tcp") == 45000
    assert bound_ports.get_binding(8080, "TCP") == 45000


def test_protocol_case_is_ignored() -> None:
    bound_ports = BoundPorts()
    bound_ports.set_binding("8080/TCP", 45000)

    assert bound_ports.get_binding("8080/tcp") == 45000
    assert bound_ports.get_binding("8080/Tcp") == 45000
    assert bound_ports.get_binding(8080, "tcp") == 45000
    assert list(bound_ports) == [("8080/tcp", 45000)]


def test_get_binding_of_port_declarations() -> None:
    bound_ports = _bound_ports(("53/udp", 45053))

    assert bound_ports.get_binding(PortSpec(53, "udp")) == 45053
    assert (
        bound_ports.get_binding(
            PortForwarding(container_port=53, protocol=NetworkProtocol.UDP)
        )
        == 45053
    )
    # a string without a protocol is combined with the protocol parameter
    assert bound_ports.get_binding("53", "udp") == 45053


def test_get_binding_respects_protocol() -> None:
    bound_ports = _bound_ports(("8080/tcp", 45000), ("8080/udp", 46000))

    assert bound_ports.get_binding(8080) == 45000
    assert bound_ports.get_binding(8080, "udp") == 46000
    assert bound_ports.get_binding("8080/UDP") == 46000


def test_set_binding_protocol_in_key_wins() -> None:
    bound_ports = BoundPorts()
    bound_ports.set_binding("8080/UDP", 1, protocol="tcp")
    bound_ports.set_binding(9090, 2, protocol="UDP")
    bound_ports.set_binding("7070", 3)

    assert list(bound_ports) == [
        ("8080/udp", 1),
        ("9090/udp", 2),
        ("7070/tcp", 3),
    ]


def test_set_binding_overwrites() -> None:
    bound_ports = _bound_ports(("8080/tcp", 1), ("8080/TCP", 2))

    assert len(bound_ports) == 1
    assert bound_ports.get_binding(8080) == 2


@pytest.mark.parametrize("host_port", [0, -1, 65536])
def test_set_binding_rejects_invalid_host_ports(host_port: int) -> None:
    with pytest.raises(InvalidPortSpec):
        BoundPorts().set_binding(8080, host_port)


def test_lookup_miss() -> None:
    bound_ports = _bound_ports(("8080/tcp", 45000))

    with pytest.raises(BindingNotFound) as not_found_ctx:
        bound_ports.get_binding(9999)

    assert not_found_ctx.value.key == "9999/tcp"
    assert "No port binding found for :9999/tcp" in str(not_found_ctx.value)


def test_lookup_miss_is_a_lookup_error() -> None:
    with pytest.raises(LookupError):
        _bound_ports(("8080/tcp", 45000)).get_binding("8080/udp")


def test_contains() -> None:
    bound_ports = _bound_ports(("8080/tcp", 45000))

    assert 8080 in bound_ports
    assert "8080/TCP" in bound_ports
    assert "8080/udp" not in bound_ports
    assert "foo/bar" not in bound_ports


def test_first_binding_is_the_first_inserted_one() -> None:
    bound_ports = _bound_ports(("9090/udp", 2), ("8080/tcp", 1))

    assert bound_ports.get_first_binding() == 2


def test_first_binding_of_empty_registry() -> None:
    with pytest.raises(NoBindingsPresent) as no_bindings_ctx:
        BoundPorts().get_first_binding()

    assert "No port bindings found" in str(no_bindings_ctx.value)
    assert not isinstance(no_bindings_ctx.value, BindingNotFound)


def test_filter() -> None:
    bound_ports = _bound_ports(("8080/tcp", 1), ("9090/udp", 2))

    assert bound_ports.filter([8080]) == _bound_ports(("8080/tcp", 1))
    assert bound_ports.filter(["9090/UDP"]) == _bound_ports(("9090/udp", 2))
    assert len(bound_ports.filter([9090])) == 0
    assert len(bound_ports.filter([])) == 0
    # the original registry is untouched
    assert len(bound_ports) == 2


def test_filter_same_port_with_different_protocols() -> None:
    bound_ports = _bound_ports(
        ("8080/tcp", 1), ("8080/udp", 2), ("9090/tcp", 3)
    )

    filtered = bound_ports.filter(
        [
            PortForwarding(container_port=8080),
            PortForwarding(container_port=8080, protocol=NetworkProtocol.UDP),
        ]
    )

    assert filtered == _bound_ports(("8080/tcp", 1), ("8080/udp", 2))


def test_dual_stack_binding() -> None:
    bindings = [HostPortBinding(host_ip="", host_port=45000)]

    assert resolve_host_port_binding([IPV4], bindings) == 45000
    assert resolve_host_port_binding([IPV6], bindings) == 45000
    assert resolve_host_port_binding([IPV6, IPV4], bindings) == 45000
    assert resolve_host_port_binding([], bindings) == 45000


@pytest.mark.parametrize(
    "host_ips,expected_port",
    [
        ([IPV4], 100),
        ([IPV6], 200),
        ([IPV4, IPV6], 100),
        ([IPV6, IPV4], 200),
    ],
)
def test_host_ip_family_preference(
    host_ips: List[HostIp], expected_port: int
) -> None:
    bindings = [
        HostPortBinding(host_ip="10.0.0.1", host_port=100),
        HostPortBinding(host_ip="::1", host_port=200),
    ]

    assert resolve_host_port_binding(host_ips, bindings) == expected_port


def test_no_host_port_for_family() -> None:
    with pytest.raises(NoHostPortForFamily):
        resolve_host_port_binding(
            [IPV6], [HostPortBinding(host_ip="0.0.0.0", host_port=100)]
        )

    with pytest.raises(NoHostPortForFamily):
        resolve_host_port_binding([IPV4, IPV6], [])


def test_wildcard_among_multiple_bindings_is_not_dual_stack() -> None:
    bindings = [
        HostPortBinding(host_ip="", host_port=100),
        HostPortBinding(host_ip="::", host_port=200),
    ]

    assert resolve_host_port_binding([IPV4, IPV6], bindings) == 200
    with pytest.raises(NoHostPortForFamily):
        resolve_host_port_binding([IPV4], bindings)


def test_ip_family_of_address() -> None:
    assert IpFamily.of_address("0.0.0.0") == IpFamily.IPV4
    assert IpFamily.of_address("::") == IpFamily.IPV6
    assert IpFamily.of_address("") is None
    assert IpFamily.of_address("localhost") is None


def test_from_inspect_result() -> None:
    inspect = ContainerInspect.from_container_inspect(
        raw_inspect(
            {
                "8080/tcp": [binding(45000), binding(45001, "::")],
                "9090/UDP": [binding(46000, "")],
                "7070/tcp": None,
                "6060/tcp": [],
            }
        )
    )

    assert BoundPorts.from_inspect_result(
        [IPV4, IPV6], inspect
    ) == _bound_ports(("8080/tcp", 45000), ("9090/udp", 46000))
    assert BoundPorts.from_inspect_result(
        [IPV6, IPV4], inspect
    ) == _bound_ports(("8080/tcp", 45001), ("9090/udp", 46000))


def test_from_inspect_result_is_not_merged() -> None:
    first = BoundPorts.from_inspect_result(
        [IPV4],
        ContainerInspect.from_container_inspect(
            raw_inspect({"8080/tcp": [binding(1)]})
        ),
    )
    second = BoundPorts.from_inspect_result(
        [IPV4],
        ContainerInspect.from_container_inspect(
            raw_inspect({"9090/tcp": [binding(2)]})
        ),
    )

    assert list(first) == [("8080/tcp", 1)]
    assert list(second) == [("9090/tcp", 2)]
