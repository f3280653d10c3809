"""Fixtures provided by ``pytest_backing_services``.

"""
from subprocess import CalledProcessError
from typing import Callable
from typing import Generator
from typing import Literal

from _pytest.config import Config
from _pytest.fixtures import SubRequest
from pytest import fixture

from pytest_backing_services.container import Container
from pytest_backing_services.container import ContainerData
from pytest_backing_services.container import ContainerLauncher
from pytest_backing_services.container import (
    container_and_marks_from_pytest_param,
)
from pytest_backing_services.logging import _logger
from pytest_backing_services.runtime import OciRuntimeBase
from pytest_backing_services.runtime import get_selected_runtime


@fixture(scope="session")
def container_runtime() -> OciRuntimeBase:
    """The container runtime selected via ``CONTAINER_RUNTIME``, see
    :py:func:`~pytest_backing_services.runtime.get_selected_runtime`.

    """
    return get_selected_runtime()


def report_container(container_data: ContainerData) -> None:
    """Log the bound ports and the output of a container that is about to be
    removed.

    """
    _logger.debug(
        "Container %s (%s) had the bound ports %s",
        container_data.container_id,
        container_data.image_url,
        container_data.bound_ports,
    )
    try:
        logs = container_data.read_container_logs()
    except CalledProcessError as err:
        _logger.debug(
            "Could not read the logs of container %s: %s",
            container_data.container_id,
            err,
        )
        return
    _logger.debug(
        "Logs of container %s:\n%s", container_data.container_id, logs
    )


def _requested_container(request: SubRequest) -> Container:
    param = getattr(request, "param", None)
    if param is None:
        raise RuntimeError(
            f"The fixture {request.fixturename} must be parametrized with a "
            "Container, e.g. via auto_container_parametrize()"
        )
    container, _ = container_and_marks_from_pytest_param(param)
    return container


def _create_container_fixture(
    scope: Literal["session", "function"],
) -> Callable[
    [SubRequest, OciRuntimeBase, Config], Generator[ContainerData, None, None]
]:
    def launched_container(
        request: SubRequest,
        # pylint: disable=redefined-outer-name
        container_runtime: OciRuntimeBase,
        pytestconfig: Config,
    ) -> Generator[ContainerData, None, None]:
        container = _requested_container(request)
        _logger.debug("Launching %s for %s", container, request.node.name)

        with ContainerLauncher.from_pytestconfig(
            container=container,
            container_runtime=container_runtime,
            pytestconfig=pytestconfig,
        ) as launcher:
            try:
                launcher.launch_container()
                yield launcher.container_data
            finally:
                # also report containers whose ports were never exposed
                if launcher.container_id is not None:
                    report_container(launcher.container_data)

    return fixture(scope=scope)(launched_container)


#: Launches each container of the module variable ``CONTAINER_IMAGES`` once
#: per session and yields its
#: :py:class:`~pytest_backing_services.container.ContainerData` after all of
#: its forwarded ports are bound.
auto_container = _create_container_fixture("session")

#: Like :py:data:`auto_container`, but parametrized explicitly with
#: ``indirect=True``.
container = _create_container_fixture("session")

#: Like :py:data:`auto_container`, with a fresh container for every test.
auto_container_per_test = _create_container_fixture("function")

#: Like :py:data:`container`, with a fresh container for every test.
container_per_test = _create_container_fixture("function")
