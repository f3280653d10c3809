"""Command line options, environment settings and the automatic
parametrization of the ``auto_container*`` fixtures.

"""
import logging
import os
from typing import List

from _pytest.config import Config
from _pytest.config.argparsing import Parser
from _pytest.python import Metafunc

from pytest_backing_services.logging import set_internal_logging_level

#: fixtures that are parametrized with the module variable ``CONTAINER_IMAGES``
AUTO_CONTAINER_FIXTURES = ("auto_container", "auto_container_per_test")

_OPTION_GROUP = "backing-services"


def auto_container_parametrize(metafunc: Metafunc) -> None:
    """Parametrize every ``auto_container*`` fixture requested by a test with
    the containers of its module's ``CONTAINER_IMAGES``.

    Call it from ``pytest_generate_tests`` in your :file:`conftest.py`:

    .. code-block:: python

       from pytest_backing_services import auto_container_parametrize

       def pytest_generate_tests(metafunc):
           auto_container_parametrize(metafunc)

    """
    requested = [
        name
        for name in AUTO_CONTAINER_FIXTURES
        if name in metafunc.fixturenames
    ]
    if not requested:
        return

    containers = getattr(metafunc.module, "CONTAINER_IMAGES", None)
    if containers is None:
        raise ValueError(
            f"{metafunc.function.__name__} requests {', '.join(requested)} "
            f"but {metafunc.module.__name__} defines no CONTAINER_IMAGES"
        )
    for name in requested:
        metafunc.parametrize(name, containers, indirect=True)


def add_extra_run_args_options(parser: Parser) -> None:
    """Register ``--extra-run-args``, see :py:func:`get_extra_run_args`."""
    parser.getgroup(_OPTION_GROUP).addoption(
        "--extra-run-args",
        type=str,
        nargs="*",
        default=[],
        help="additional arguments of every 'podman run' or 'docker run' "
        "launching a backing service, one argument per value",
    )


def add_logging_level_options(parser: Parser) -> None:
    """Register ``--pytest-backing-services-log-level``.

    The level only takes effect once
    :py:func:`set_logging_level_from_cli_args` is called in
    ``pytest_configure``.
    """
    parser.getgroup(_OPTION_GROUP).addoption(
        "--pytest-backing-services-log-level",
        type=str.upper,
        default="INFO",
        choices=sorted(logging._nameToLevel),
        help="level of the internal logger of pytest_backing_services "
        "(case insensitive)",
    )


def set_logging_level_from_cli_args(config: Config) -> None:
    set_internal_logging_level(
        config.getoption("pytest_backing_services_log_level")
    )


def get_extra_run_args(pytestconfig: Config) -> List[str]:
    """Arguments passed via ``--extra-run-args``, empty if the option was not
    registered.

    """
    return pytestconfig.getoption("extra_run_args", default=[]) or []


def get_always_pull_option() -> bool:
    """Whether images are pulled before every launch (the default) or only if
    the runtime does not have them yet. ``PULL_ALWAYS=0`` (or ``false``,
    ``no``) selects the latter.

    """
    return os.getenv("PULL_ALWAYS", "1").strip().lower() not in (
        "0",
        "false",
        "no",
    )
