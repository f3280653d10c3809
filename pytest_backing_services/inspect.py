"""This module contains the class definitions that represent the output of
:command:`$runtime inspect $ctr_id`.

"""
import enum
from dataclasses import dataclass
from dataclasses import field
from datetime import timedelta
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import TypedDict
from typing import Union


@dataclass(frozen=True)
class HostPortBinding:
    """A single binding of a container port to a port on the host as reported
    by the container runtime.

    """

    #: IP address on the host, an empty string if the binding serves all
    #: addresses of both IPv4 and IPv6
    host_ip: str

    #: the port on the host
    host_port: int


class ContainerInspectHealthCheck(TypedDict, total=False):
    """Dictionary created by loading the json output of :command:`podman inspect
    $img_id | jq '.[0]["Healthcheck]` or :command:`docker inspect $img_id | jq
    '.[0]["Config"]["Healthcheck]`.

    """

    Test: List[str]
    Interval: int
    Timeout: int
    StartPeriod: int
    Retries: int


@enum.unique
class ContainerHealth(enum.Enum):
    """Possible states of a container's health using the `HEALTHCHECK
    <https://docs.docker.com/engine/reference/builder/#healthcheck>`_ property
    of a container image.

    """

    #: the container has no health check defined
    NO_HEALTH_CHECK = ""
    #: the container is healthy
    HEALTHY = "healthy"
    #: the health check did not complete yet or did not fail often enough
    STARTING = "starting"
    #: the healthcheck failed
    UNHEALTHY = "unhealthy"


_DEFAULT_START_PERIOD = timedelta(seconds=0)
_DEFAULT_INTERVAL = timedelta(seconds=30)
_DEFAULT_TIMEOUT = timedelta(seconds=30)
_DEFAULT_RETRIES = 3


def _nanoseconds_to_timedelta(value: Optional[int]) -> Optional[timedelta]:
    # the runtimes report durations in nanoseconds and 0 means "unset"
    if not value:
        return None
    return timedelta(microseconds=value / 1000)


@dataclass(frozen=True)
class HealthCheck:
    """The HEALTHCHECK of a container image."""

    #: startup period of the container during which healthcheck failures will
    #: not count towards the failure count
    start_period: timedelta = field(default=_DEFAULT_START_PERIOD)

    #: healthcheck command is run every interval
    interval: timedelta = field(default=_DEFAULT_INTERVAL)

    #: timeout of the healthcheck command after which it is considered unsuccessful
    timeout: timedelta = field(default=_DEFAULT_TIMEOUT)

    #: how often the healthcheck command is retried
    retries: int = _DEFAULT_RETRIES

    @property
    def max_wait_time(self) -> timedelta:
        """The maximum time to wait until a container can become healthy"""
        return self.start_period + self.retries * self.interval + self.timeout

    @staticmethod
    def from_container_inspect(
        inspect_json: ContainerInspectHealthCheck,
    ) -> "HealthCheck":
        """Convert the healthcheck part of the json-loaded output of
        :command:`podman inspect $ctr` or :command:`docker inspect $ctr` into a
        :py:class:`HealthCheck`.

        """
        return HealthCheck(
            start_period=_nanoseconds_to_timedelta(
                inspect_json.get("StartPeriod")
            )
            or _DEFAULT_START_PERIOD,
            interval=_nanoseconds_to_timedelta(inspect_json.get("Interval"))
            or _DEFAULT_INTERVAL,
            timeout=_nanoseconds_to_timedelta(inspect_json.get("Timeout"))
            or _DEFAULT_TIMEOUT,
            retries=inspect_json.get("Retries") or _DEFAULT_RETRIES,
        )


@dataclass(frozen=True)
class ContainerState:
    #: status of the container, e.g. ``running``, ``exited``, etc.
    status: str
    #: True if the container is running
    running: bool
    #: status of the last health check run for this container image
    health: ContainerHealth = ContainerHealth.NO_HEALTH_CHECK


@dataclass(frozen=True)
class Config:
    #: name of image used to launch this container
    image: str = ""

    #: labels of the container
    labels: Dict[str, str] = field(default_factory=dict)

    #: environment variables set in the container
    env: Dict[str, str] = field(default_factory=dict)

    #: the entrypoint of this container
    entrypoint: List[str] = field(default_factory=list)

    #: optional healthcheck defined for the underlying container image
    healthcheck: Optional[HealthCheck] = None


@dataclass(frozen=True)
class ContainerNetworkSettings:
    """Network specific settings of a container."""

    #: raw host bindings of each exposed container port, keyed by
    #: ``$port/$protocol``. Ports that are exposed but not (yet) bound map to
    #: an empty list.
    ports: Dict[str, List[HostPortBinding]] = field(default_factory=dict)

    #: IP Address of the container, if it has one
    ip_address: Optional[str] = None


def _port_key(container_port: Union[int, str]) -> str:
    port, sep, proto = str(container_port).partition("/")
    return f"{port}/{proto.lower() if sep else 'tcp'}"


def _ports_from_inspect(raw_ports: Any) -> Dict[str, List[HostPortBinding]]:
    ports: Dict[str, List[HostPortBinding]] = {}
    if not raw_ports:
        return ports

    # old podman versions report a flat list of port mappings instead of a
    # dictionary of bindings per container port
    if isinstance(raw_ports, list):
        for mapping in raw_ports:
            key = _port_key(
                f"{mapping['containerPort']}/{mapping.get('protocol', 'tcp')}"
            )
            ports.setdefault(key, []).append(
                HostPortBinding(
                    host_ip=mapping.get("hostIP") or "",
                    host_port=int(mapping["hostPort"]),
                )
            )
        return ports

    for container_port, bindings in raw_ports.items():
        ports[_port_key(container_port)] = [
            HostPortBinding(
                host_ip=binding.get("HostIp") or "",
                host_port=int(binding["HostPort"]),
            )
            for binding in (bindings or [])
        ]
    return ports


@dataclass(frozen=True)
class ContainerInspect:
    """Common subset of the information exposed via :command:`podman inspect`
    and :command:`docker inspect`.

    """

    #: The container's ID
    id: str

    #: the container's name
    name: str

    #: current state of the container
    state: ContainerState

    #: general configuration of the container
    config: Config

    #: Current network settings of this container
    network: ContainerNetworkSettings

    @property
    def ports(self) -> Dict[str, List[HostPortBinding]]:
        """Shortcut to the raw host bindings in :py:attr:`network`."""
        return self.network.ports

    @staticmethod
    def from_container_inspect(container_inspect: Any) -> "ContainerInspect":
        """Convert the json-loaded output of :command:`podman inspect $ctr` or
        :command:`docker inspect $ctr` (a single entry of the returned list)
        into a :py:class:`ContainerInspect`.

        Port keys are lower-cased, missing binding lists become empty lists
        and host ports are converted to integers.

        """
        state = container_inspect.get("State") or {}
        config = container_inspect.get("Config") or {}
        net_settings = container_inspect.get("NetworkSettings") or {}

        healthcheck = None
        if config.get("Healthcheck"):
            healthcheck = HealthCheck.from_container_inspect(
                config["Healthcheck"]
            )

        entrypoint = config.get("Entrypoint")
        # podman reports the entrypoint as a plain string
        if isinstance(entrypoint, str):
            entrypoint = entrypoint.split()

        return ContainerInspect(
            id=container_inspect.get("Id", ""),
            # docker prefixes the name with a / for reasons…
            name=container_inspect.get("Name", "").lstrip("/"),
            state=ContainerState(
                status=state.get("Status", ""),
                running=bool(state.get("Running", False)),
                # depending on the podman version, this property is called
                # either Health or Healthcheck
                health=ContainerHealth(
                    (
                        state.get("Health") or state.get("Healthcheck") or {}
                    ).get("Status", "")
                ),
            ),
            config=Config(
                image=config.get("Image", ""),
                labels=config.get("Labels") or {},
                env=dict(
                    env.split("=", maxsplit=1)
                    for env in (config.get("Env") or [])
                    if "=" in env
                ),
                entrypoint=entrypoint or [],
                healthcheck=healthcheck,
            ),
            network=ContainerNetworkSettings(
                ports=_ports_from_inspect(net_settings.get("Ports")),
                ip_address=net_settings.get("IPAddress") or None,
            ),
        )
