"""This module contains the container runtime classes abstracting away the
implementation details of container runtimes like :command:`docker` or
:command:`podman`.

"""
import json
import socket
from abc import ABC
from abc import abstractmethod
from functools import cached_property
from os import getenv
from subprocess import check_output
from typing import Any
from typing import List

import testinfra

from pytest_backing_services.bound_ports import HostIp
from pytest_backing_services.bound_ports import IpFamily
from pytest_backing_services.inspect import ContainerInspect
from pytest_backing_services.logging import _logger


LOCALHOST = testinfra.host.get_host("local://")


def get_container_host() -> str:
    """Returns the hostname via which forwarded container ports are reached.

    It defaults to ``localhost`` and can be overridden via the environment
    variable ``CONTAINER_HOST_OVERRIDE``.
    """
    return getenv("CONTAINER_HOST_OVERRIDE") or "localhost"


def lookup_host_ips(host: str) -> List[HostIp]:
    """Resolve ``host`` and return one address per IP family in the order
    reported by the resolver.

    If ``host`` is already an IP address, then only this address is returned.
    """
    family = IpFamily.of_address(host)
    if family is not None:
        return [HostIp(address=host, family=family)]

    host_ips: List[HostIp] = []
    for addr_family, _, _, _, sockaddr in socket.getaddrinfo(
        host, None, type=socket.SOCK_STREAM
    ):
        if addr_family == socket.AF_INET:
            family = IpFamily.IPV4
        elif addr_family == socket.AF_INET6:
            family = IpFamily.IPV6
        else:
            continue

        if family not in (host_ip.family for host_ip in host_ips):
            host_ips.append(HostIp(address=str(sockaddr[0]), family=family))

    _logger.debug("Resolved %s to %s", host, host_ips)
    return host_ips


class OciRuntimeABC(ABC):
    """The abstract base class defining the interface of a container runtime."""

    def __init__(self, runner_binary: str) -> None:
        #: the "main" binary of this runtime, e.g. podman or docker
        self._runner_binary: str = runner_binary

    @property
    def runner_binary(self) -> str:
        """The "main" binary of this runtime, e.g. podman or docker."""
        return self._runner_binary

    @abstractmethod
    def get_raw_inspect(self, container_id: str) -> Any:
        """Returns the json-loaded output of :command:`$runtime inspect
        $container_id`.

        """

    @property
    @abstractmethod
    def host_ips(self) -> List[HostIp]:
        """The addresses of the host on which the forwarded ports of
        containers can be reached, ordered by preference.

        """


class OciRuntimeBase(OciRuntimeABC):
    """Base class of the Container Runtimes."""

    def get_raw_inspect(self, container_id: str) -> Any:
        inspect = json.loads(
            check_output([self.runner_binary, "inspect", container_id])
        )
        if len(inspect) != 1:
            raise RuntimeError(
                f"Got {len(inspect)} results back, "
                f"but expected exactly one container to match {container_id}"
            )

        return inspect[0]

    def inspect_container(self, container_id: str) -> ContainerInspect:
        """Inspect the container with the provided ``container_id`` and return
        the parsed output from the container runtime as an instance of
        :py:class:`~pytest_backing_services.inspect.ContainerInspect`.

        """
        return ContainerInspect.from_container_inspect(
            self.get_raw_inspect(container_id)
        )

    @cached_property
    def host_ips(self) -> List[HostIp]:
        return lookup_host_ips(get_container_host())

    def __str__(self) -> str:
        return self.__class__.__name__


class PodmanRuntime(OciRuntimeBase):
    """The container runtime using :command:`podman` for running containers."""

    def __init__(self) -> None:
        podman_ps = LOCALHOST.run("podman ps")
        if not podman_ps.succeeded:
            raise RuntimeError(f"`podman ps` failed with {podman_ps.stderr}")

        super().__init__(runner_binary="podman")


class DockerRuntime(OciRuntimeBase):
    """The container runtime using :command:`docker` for running
    containers."""

    def __init__(self) -> None:
        docker_ps = LOCALHOST.run("docker ps")
        if not docker_ps.succeeded:
            raise RuntimeError(f"`docker ps` failed with {docker_ps.stderr}")

        super().__init__(runner_binary="docker")


def get_selected_runtime() -> OciRuntimeBase:
    """Returns the container runtime that the user selected.

    It defaults to podman and selects docker if the environment variable
    ``CONTAINER_RUNTIME`` is set to ``docker``.

    If the selected runtime is not available, then a ValueError is raised.
    """
    runtime_choice = getenv("CONTAINER_RUNTIME", "podman").lower()
    if runtime_choice not in ("podman", "docker"):
        raise ValueError(f"Invalid CONTAINER_RUNTIME {runtime_choice}")

    if runtime_choice == "podman" and LOCALHOST.exists("podman"):
        return PodmanRuntime()
    if runtime_choice == "docker" and LOCALHOST.exists("docker"):
        return DockerRuntime()

    raise ValueError(
        "Selected runtime " + runtime_choice + " does not exist on the system"
    )
