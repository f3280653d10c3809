"""Declaration of the containers that back a test and the launcher that starts
them, waits until their ports are bound and removes them again.

"""
import contextlib
import os
import tempfile
from dataclasses import dataclass
from dataclasses import field
from datetime import timedelta
from hashlib import sha3_256
from pathlib import Path
from subprocess import DEVNULL
from subprocess import call
from subprocess import check_output
from types import TracebackType
from typing import Any
from typing import Collection
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple
from typing import Type
from typing import Union
from uuid import uuid4

import _pytest.mark
import pytest
import testinfra
from filelock import FileLock

from pytest_backing_services.bound_ports import BoundPorts
from pytest_backing_services.helpers import get_always_pull_option
from pytest_backing_services.helpers import get_extra_run_args
from pytest_backing_services.inspect import ContainerHealth
from pytest_backing_services.inspect import ContainerInspect
from pytest_backing_services.logging import _logger
from pytest_backing_services.port import PortForwarding
from pytest_backing_services.port import PortWithOptionalBinding
from pytest_backing_services.port import normalize_port
from pytest_backing_services.readiness import DEFAULT_PORT_EXPOSURE_TIMEOUT
from pytest_backing_services.readiness import IntervalRetry
from pytest_backing_services.readiness import wait_until_ports_exposed
from pytest_backing_services.runtime import OciRuntimeBase
from pytest_backing_services.runtime import get_container_host

#: prefix of :py:attr:`Container.url` marking images that only exist in the
#: local image store
LOCAL_IMAGE_PREFIX = "containers-storage:"


@dataclass
class Container:
    """A service that a test talks to over the network, e.g. a database or a
    message broker, packaged as a container image.

    """

    #: the image of the service, prefixed with ``containers-storage:`` if it
    #: is only available locally and must never be pulled
    url: str = ""

    #: ports of the service that are published on the host, either as port
    #: number, as ``$port/$protocol`` string or as
    #: :py:class:`~pytest_backing_services.port.PortForwarding`
    forwarded_ports: List[PortWithOptionalBinding] = field(
        default_factory=list
    )

    #: how long the runtime gets to bind all :py:attr:`forwarded_ports`
    port_exposure_timeout: timedelta = DEFAULT_PORT_EXPOSURE_TIMEOUT

    #: upper bound for the image's ``HEALTHCHECK`` to pass. ``None`` derives
    #: it from the ``HEALTHCHECK`` itself, zero or less skips the wait.
    healthcheck_timeout: Optional[timedelta] = None

    #: environment of the service, e.g. the credentials of a database
    extra_environment_variables: Dict[str, str] = field(default_factory=dict)

    #: flags of :command:`run` placed in front of the image name
    extra_launch_args: List[str] = field(default_factory=list)

    #: replaces the entrypoint of the image
    custom_entry_point: Optional[str] = None

    #: arguments appended after the image name
    extra_entrypoint_args: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.image:
            raise ValueError("A container url must be provided")
        for port in self.forwarded_ports:
            normalize_port(port)

    def __str__(self) -> str:
        return self.image

    def __hash__(self) -> int:
        return hash(
            (self.url, tuple(normalize_port(p) for p in self.forwarded_ports))
        )

    @property
    def image(self) -> str:
        """The image name as passed to the container runtime."""
        if self.local_image:
            return self.url[len(LOCAL_IMAGE_PREFIX) :]
        return self.url

    @property
    def local_image(self) -> bool:
        return self.url.startswith(LOCAL_IMAGE_PREFIX)

    @property
    def port_forward_cli_args(self) -> List[str]:
        """The ``-p`` flags publishing all :py:attr:`forwarded_ports`."""
        args: List[str] = []
        for port in self.forwarded_ports:
            if isinstance(port, PortForwarding):
                args.extend(port.forward_cli_args)
            else:
                args.extend(("-p", normalize_port(port).key))
        return args

    def get_launch_cmd(
        self,
        container_runtime: OciRuntimeBase,
        extra_run_args: Optional[List[str]] = None,
    ) -> List[str]:
        """Returns the :command:`run -d` invocation starting this service
        with all of its ports published.

        ``extra_run_args`` are inserted directly after ``run -d``.
        """
        cmd = [container_runtime.runner_binary, "run", "-d"]
        cmd.extend(extra_run_args or [])
        cmd.extend(self.extra_launch_args)
        for name, value in self.extra_environment_variables.items():
            cmd.extend(("-e", f"{name}={value}"))
        cmd.extend(self.port_forward_cli_args)
        if self.custom_entry_point:
            cmd.extend(("--entrypoint", self.custom_entry_point))
        return cmd + [self.image] + self.extra_entrypoint_args

    def pull_image(self, container_runtime: OciRuntimeBase) -> None:
        """Make the image available to ``container_runtime``.

        Local images are never pulled. Other images are pulled if
        ``PULL_ALWAYS`` is set or if the runtime does not have them yet.
        """
        if self.local_image:
            return

        runtime = container_runtime.runner_binary
        if not get_always_pull_option():
            cached = call(
                [runtime, "image", "inspect", self.image],
                stdout=DEVNULL,
                stderr=DEVNULL,
            )
            if cached == 0:
                _logger.debug("Using the cached image %s", self.image)
                return

        _logger.debug("Pulling %s via %s", self.image, runtime)
        check_output([runtime, "pull", self.image])

    @property
    def pull_lock_filename(self) -> str:
        """Name of the lockfile serializing pulls of :py:attr:`image`, shared
        by all declarations of the same image.

        """
        # sha3 is available on hosts in FIPS mode
        return f"{sha3_256(self.image.encode()).hexdigest()}.lock"


@dataclass(frozen=True)
class ContainerData:
    """Handle of a launched :py:class:`Container` that the ``*container*``
    fixtures pass to the test function.

    """

    #: image the container was launched from
    image_url: str
    #: ID of the started container
    container_id: str
    #: testinfra host connected to the running container
    connection: Any
    #: the declaration of the service
    container: Container
    #: host ports bound to the :py:attr:`Container.forwarded_ports`
    bound_ports: BoundPorts
    #: hostname via which the bound ports are reachable
    host: str

    _container_runtime: OciRuntimeBase

    def get_mapped_port(
        self, port: PortWithOptionalBinding, protocol: str = "tcp"
    ) -> int:
        """Returns the host port bound to the container port ``port``.

        ``port`` can be a port number (with the protocol ``protocol``), a
        ``$port/$protocol`` string or a
        :py:class:`~pytest_backing_services.port.PortForwarding`.
        """
        return self.bound_ports.get_binding(port, protocol)

    def get_first_mapped_port(self) -> int:
        """Host port of the first forwarded port, handy for services with a
        single port.

        """
        return self.bound_ports.get_first_binding()

    @property
    def inspect(self) -> ContainerInspect:
        return self._container_runtime.inspect_container(self.container_id)

    def read_container_logs(self) -> str:
        """Returns the combined stdout and stderr of the container."""
        return check_output(
            [self._container_runtime.runner_binary, "logs", self.container_id]
        ).decode()


def container_to_pytest_param(
    container: Container,
    marks: Optional[
        Union[
            Collection[_pytest.mark.MarkDecorator], _pytest.mark.MarkDecorator
        ]
    ] = None,
) -> _pytest.mark.ParameterSet:
    """Wrap ``container`` into a ``pytest.param`` with the given marks, using
    the image as the id of the parameter.

    """
    return pytest.param(container, marks=marks or [], id=str(container))


def container_and_marks_from_pytest_param(
    ctr_or_param: Union[_pytest.mark.ParameterSet, Container],
) -> Tuple[
    Container,
    Optional[Collection[Union[_pytest.mark.MarkDecorator, _pytest.mark.Mark]]],
]:
    """Inverse of :py:func:`container_to_pytest_param`. A bare
    :py:class:`Container` is returned without marks (``None``).

    """
    if isinstance(ctr_or_param, Container):
        return ctr_or_param, None

    values = ctr_or_param.values
    if values and isinstance(values[0], Container):
        return values[0], ctr_or_param.marks

    raise ValueError(f"Invalid pytest.param values: {values}")


@dataclass
class ContainerLauncher:
    """Context manager launching a :py:class:`Container`. The container is
    removed again when the context is left, also when the launch failed.

    """

    #: the service to launch
    container: Container

    #: runtime used to launch the container
    container_runtime: OciRuntimeBase

    #: flags passed to every :command:`run` invocation
    extra_run_args: List[str] = field(default_factory=list)

    #: optional name of the container
    container_name: str = ""

    _container_id: Optional[str] = None

    _bound_ports: BoundPorts = field(default_factory=BoundPorts)

    _stack: contextlib.ExitStack = field(default_factory=contextlib.ExitStack)

    @staticmethod
    def from_pytestconfig(
        container: Container,
        container_runtime: OciRuntimeBase,
        pytestconfig: pytest.Config,
        container_name: str = "",
    ) -> "ContainerLauncher":
        """Create a launcher that passes ``--extra-run-args`` to
        :command:`run`.

        """
        return ContainerLauncher(
            container=container,
            container_runtime=container_runtime,
            extra_run_args=get_extra_run_args(pytestconfig),
            container_name=container_name,
        )

    @property
    def container_id(self) -> Optional[str]:
        """ID of the container once :command:`run` succeeded."""
        return self._container_id

    def __enter__(self) -> "ContainerLauncher":
        return self

    def launch_container(self) -> None:
        """Start the container, then wait until the runtime has bound all of
        its forwarded ports and until it is healthy.

        """
        lock = FileLock(
            Path(tempfile.gettempdir()) / self.container.pull_lock_filename
        )
        with lock:
            _logger.debug(
                "Holding %s to pull %s", lock.lock_file, self.container
            )
            self.container.pull_image(self.container_runtime)

        cidfile = Path(tempfile.gettempdir()) / f"{uuid4()}.cid"
        run_args = list(self.extra_run_args)
        if self.container_name:
            run_args.extend(("--name", self.container_name))
        run_args.append(f"--cidfile={cidfile}")

        launch_cmd = self.container.get_launch_cmd(
            self.container_runtime, extra_run_args=run_args
        )
        _logger.debug("Launching container via: %s", launch_cmd)
        check_output(launch_cmd)

        self._stack.callback(os.unlink, cidfile)
        self._container_id = cidfile.read_text(encoding="utf-8").strip()
        self._stack.callback(self._remove_container, self._container_id)

        self._wait_for_ports_to_be_exposed(self._container_id)
        self._wait_for_container_to_become_healthy(self._container_id)

    @property
    def container_data(self) -> ContainerData:
        """Handle of the launched container, only available once
        :py:meth:`launch_container` has started it.

        """
        if not self._container_id:
            raise RuntimeError(f"Container {self.container} has not started")
        runtime = self.container_runtime.runner_binary
        return ContainerData(
            image_url=self.container.image,
            container_id=self._container_id,
            connection=testinfra.get_host(f"{runtime}://{self._container_id}"),
            container=self.container,
            bound_ports=self._bound_ports,
            host=get_container_host(),
            _container_runtime=self.container_runtime,
        )

    def _wait_for_ports_to_be_exposed(self, container_id: str) -> None:
        ports = self.container.forwarded_ports
        if not ports:
            return

        result = wait_until_ports_exposed(
            lambda: self.container_runtime.get_raw_inspect(container_id),
            ports,
            container_id,
            timeout=self.container.port_exposure_timeout,
        )
        self._bound_ports = BoundPorts.from_inspect_result(
            self.container_runtime.host_ips, result.mapped_inspect_result
        ).filter(ports)
        _logger.debug(
            "Container %s has the bound ports %s",
            container_id,
            self._bound_ports,
        )

    def _healthcheck_timeout(self, container_id: str) -> Optional[timedelta]:
        if self.container.healthcheck_timeout is not None:
            return self.container.healthcheck_timeout
        healthcheck = self.container_runtime.inspect_container(
            container_id
        ).config.healthcheck
        return None if healthcheck is None else healthcheck.max_wait_time

    def _wait_for_container_to_become_healthy(self, container_id: str) -> None:
        max_wait = self._healthcheck_timeout(container_id)
        if max_wait is None or max_wait <= timedelta(0):
            return
        timeout: timedelta = max_wait

        _logger.debug(
            "Waiting at most %ss for container %s to become healthy",
            timeout.total_seconds(),
            container_id,
        )

        def get_health() -> ContainerHealth:
            state = self.container_runtime.inspect_container(
                container_id
            ).state
            if not state.running:
                raise RuntimeError(
                    f"Container {container_id} is not running, "
                    f"got {state.status}"
                )
            return state.health

        IntervalRetry(max(timedelta(seconds=0.5), timeout / 10)).retry_until(
            get_health,
            lambda health: health
            in (ContainerHealth.NO_HEALTH_CHECK, ContainerHealth.HEALTHY),
            lambda: RuntimeError(
                f"Container {container_id} did not become healthy within "
                f"{timeout.total_seconds()}s"
            ),
            timeout,
        )

    def _remove_container(self, container_id: str) -> None:
        runtime = self.container_runtime.runner_binary
        for action in (["stop"], ["rm", "-f"]):
            cmd = [runtime] + action + [container_id]
            _logger.debug("Removing container via: %s", cmd)
            check_output(cmd)

    def __exit__(
        self,
        __exc_type: Optional[Type[BaseException]],
        __exc_value: Optional[BaseException],
        __traceback: Optional[TracebackType],
    ) -> None:
        try:
            self._stack.close()
        finally:
            self._container_id = None
            self._bound_ports = BoundPorts()
