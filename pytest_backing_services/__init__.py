"""``pytest_backing_services`` is a pytest plugin that launches the services a
test depends on (databases, brokers, emulators, …) in containers, waits until
their ports are exposed and tells the test on which host ports it can reach
them.

"""

from .bound_ports import BoundPorts
from .bound_ports import HostIp
from .bound_ports import IpFamily
from .bound_ports import resolve_host_port_binding
from .container import Container
from .container import ContainerData
from .container import ContainerLauncher
from .container import container_and_marks_from_pytest_param
from .container import container_to_pytest_param
from .errors import BackingServiceError
from .errors import BindingNotFound
from .errors import InvalidPortSpec
from .errors import NoBindingsPresent
from .errors import NoHostPortForFamily
from .errors import PortExposureTimeout
from .helpers import add_extra_run_args_options
from .helpers import add_logging_level_options
from .helpers import auto_container_parametrize
from .helpers import get_extra_run_args
from .helpers import set_logging_level_from_cli_args
from .port import NetworkProtocol
from .port import PortForwarding
from .port import PortSpec
from .port import normalize_port
from .readiness import InspectResult
from .readiness import wait_until_ports_exposed
from .runtime import DockerRuntime
from .runtime import OciRuntimeBase
from .runtime import PodmanRuntime
from .runtime import get_selected_runtime

__all__ = [
    "BoundPorts",
    "HostIp",
    "IpFamily",
    "resolve_host_port_binding",
    "Container",
    "ContainerData",
    "ContainerLauncher",
    "container_and_marks_from_pytest_param",
    "container_to_pytest_param",
    "BackingServiceError",
    "BindingNotFound",
    "InvalidPortSpec",
    "NoBindingsPresent",
    "NoHostPortForFamily",
    "PortExposureTimeout",
    "add_extra_run_args_options",
    "add_logging_level_options",
    "auto_container_parametrize",
    "get_extra_run_args",
    "set_logging_level_from_cli_args",
    "NetworkProtocol",
    "PortForwarding",
    "PortSpec",
    "normalize_port",
    "InspectResult",
    "wait_until_ports_exposed",
    "DockerRuntime",
    "OciRuntimeBase",
    "PodmanRuntime",
    "get_selected_runtime",
]
