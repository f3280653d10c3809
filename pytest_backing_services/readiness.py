"""Polling of a freshly launched container until the container runtime reports
host bindings for all of its declared ports.

"""
import enum
import time
from datetime import timedelta
from typing import Any
from typing import Callable
from typing import Iterable
from typing import NamedTuple
from typing import TypeVar

from pytest_backing_services.errors import PortExposureTimeout
from pytest_backing_services.inspect import ContainerInspect
from pytest_backing_services.logging import _logger
from pytest_backing_services.port import PortWithOptionalBinding
from pytest_backing_services.port import normalize_port


#: Time between two consecutive inspections of a container
PORT_POLL_INTERVAL = timedelta(milliseconds=250)

#: Default time to wait for all ports to be exposed
DEFAULT_PORT_EXPOSURE_TIMEOUT = timedelta(seconds=10)

T = TypeVar("T")


@enum.unique
class PollState(enum.Enum):
    """States of :py:meth:`IntervalRetry.retry_until`."""

    #: the predicate has not been fulfilled yet and time is left
    POLLING = enum.auto()
    #: the predicate was fulfilled
    SUCCESS = enum.auto()
    #: the timeout expired before the predicate was fulfilled
    TIMED_OUT = enum.auto()


class IntervalRetry:
    """Calls a function in a fixed interval until its result satisfies a
    predicate or until a timeout expires.

    The clock and the sleep function can be replaced, so that the passage of
    time can be simulated.
    """

    def __init__(
        self,
        interval: timedelta,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        #: state of the last invocation of :py:meth:`retry_until`
        self.state = PollState.POLLING
        #: number of times the function was called in the last invocation
        self.attempts = 0

    def retry_until(
        self,
        func: Callable[[], T],
        predicate: Callable[[T], bool],
        on_timeout: Callable[[], BaseException],
        timeout: timedelta,
    ) -> T:
        """Call ``func`` until ``predicate`` returns ``True`` for its result
        and return that result.

        The first call happens immediately. If ``timeout`` has elapsed after
        an unsuccessful call, then the exception returned by ``on_timeout`` is
        raised. A ``timeout`` of zero therefore results in exactly one call.
        """
        self.state = PollState.POLLING
        self.attempts = 0
        start = self._clock()

        while True:
            result = func()
            self.attempts += 1

            if predicate(result):
                self.state = PollState.SUCCESS
                return result

            if self._clock() - start >= timeout.total_seconds():
                self.state = PollState.TIMED_OUT
                raise on_timeout()

            self._sleep(self.interval.total_seconds())


class InspectResult(NamedTuple):
    """The inspection of a container in which all requested ports were
    exposed.

    """

    #: the json-loaded output of :command:`$runtime inspect $ctr_id`
    inspect_result: Any

    #: :py:attr:`inspect_result` converted into a
    #: :py:class:`~pytest_backing_services.inspect.ContainerInspect`
    mapped_inspect_result: ContainerInspect


def wait_until_ports_exposed(
    inspect_fn: Callable[[], Any],
    ports: Iterable[PortWithOptionalBinding],
    container_id: str,
    timeout: timedelta = DEFAULT_PORT_EXPOSURE_TIMEOUT,
    mapper: Callable[
        [Any], ContainerInspect
    ] = ContainerInspect.from_container_inspect,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> InspectResult:
    """Inspect the container via ``inspect_fn`` every 250ms until all
    ``ports`` are bound to at least one host port in the same inspection.

    Port and protocol must match exactly, i.e. a bound ``8080/tcp`` does not
    satisfy a requested ``8080/udp``.

    Returns:
        The inspection that contained all ports, so that it does not have to
        be repeated.

    Raises:
        PortExposureTimeout: if not all ports were exposed within ``timeout``
        InvalidPortSpec: if one of ``ports`` is invalid
    """
    wanted_keys = [normalize_port(port).key for port in ports]

    def inspect() -> InspectResult:
        inspect_result = inspect_fn()
        return InspectResult(
            inspect_result=inspect_result,
            mapped_inspect_result=mapper(inspect_result),
        )

    def all_ports_exposed(result: InspectResult) -> bool:
        exposed = result.mapped_inspect_result.ports
        return all(len(exposed.get(key) or []) > 0 for key in wanted_keys)

    def on_timeout() -> PortExposureTimeout:
        err = PortExposureTimeout(container_id)
        _logger.error("%s (container id: %s)", err, container_id)
        return err

    _logger.debug(
        "Waiting at most %ss for container %s to expose the ports %s",
        timeout.total_seconds(),
        container_id,
        ", ".join(wanted_keys),
    )
    return IntervalRetry(
        PORT_POLL_INTERVAL, clock=clock, sleep=sleep
    ).retry_until(inspect, all_ports_exposed, on_timeout, timeout)
