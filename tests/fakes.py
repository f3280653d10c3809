"""Fakes of the container runtime and of the clock used by the unit tests."""
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from pytest_backing_services.bound_ports import HostIp
from pytest_backing_services.bound_ports import IpFamily
from pytest_backing_services.runtime import OciRuntimeBase


class FakeClock:
    """Clock whose time only advances when :py:meth:`sleep` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def raw_inspect(
    ports: Optional[Dict[str, Any]], container_id: str = "container-id"
) -> Dict[str, Any]:
    """Create a minimal json-loaded :command:`docker inspect` entry with the
    supplied ``NetworkSettings.Ports``.

    """
    return {
        "Id": container_id,
        "Name": f"/{container_id}",
        "Config": {"Hostname": "hostname", "Labels": {}},
        "State": {
            "Health": {"Status": "healthy"},
            "Status": "running",
            "Running": True,
        },
        "NetworkSettings": {"Ports": ports, "Networks": {}},
    }


def binding(host_port: int, host_ip: str = "0.0.0.0") -> Dict[str, str]:
    """A single raw host binding as reported by :command:`docker inspect`."""
    return {"HostIp": host_ip, "HostPort": str(host_port)}


#: output of :command:`logs` in the ``commands`` fixture
CONTAINER_LOGS = "database system is ready to accept connections\n"

#: ID of the container "launched" through :py:class:`FakeRuntime`
CTR_ID = "b6e0d8f1c2a3"


class FakeRuntime(OciRuntimeBase):
    """Container runtime that replays prepared inspections, the last one
    indefinitely.

    """

    def __init__(self, *inspections: Any) -> None:
        super().__init__(runner_binary="docker")
        self._inspections = list(inspections)
        self.inspect_calls = 0

    def get_raw_inspect(self, container_id: str) -> Any:
        assert container_id == CTR_ID
        self.inspect_calls += 1
        if len(self._inspections) > 1:
            return self._inspections.pop(0)
        return self._inspections[0]

    @property
    def host_ips(self) -> List[HostIp]:
        return [
            HostIp(address="127.0.0.1", family=IpFamily.IPV4),
            HostIp(address="::1", family=IpFamily.IPV6),
        ]
