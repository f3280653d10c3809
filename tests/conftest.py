# pylint: disable=missing-function-docstring,missing-module-docstring
from pathlib import Path
from typing import List

import pytest
from typeguard import install_import_hook
from typeguard import typechecked

from pytest_backing_services import add_extra_run_args_options
from pytest_backing_services import add_logging_level_options
from pytest_backing_services import auto_container_parametrize
from pytest_backing_services import set_logging_level_from_cli_args

from .fakes import CONTAINER_LOGS
from .fakes import CTR_ID
from .fakes import FakeClock


def pytest_runtest_call(item):
    # Decorate every test function [e.g. test_foo()] with typeguard's
    # typechecked() decorator.
    test_func = getattr(item, "obj", None)
    if test_func is not None:
        setattr(item, "obj", typechecked(test_func))


def pytest_generate_tests(metafunc):
    auto_container_parametrize(metafunc)


def pytest_addoption(parser):
    add_extra_run_args_options(parser)
    add_logging_level_options(parser)


def pytest_configure(config):
    set_logging_level_from_cli_args(config)
    install_import_hook("pytest_backing_services")


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def commands(monkeypatch: pytest.MonkeyPatch) -> List[List[str]]:
    """Record all commands that the container module executes instead of
    running them. ``run`` writes :py:data:`CTR_ID` into the cidfile and
    ``logs`` returns :py:data:`CONTAINER_LOGS`.

    """
    cmds: List[List[str]] = []

    def check_output(cmd: List[str]) -> bytes:
        cmds.append(list(cmd))
        if cmd[1] == "run":
            cidfile = next(
                arg for arg in cmd if arg.startswith("--cidfile=")
            ).replace("--cidfile=", "", 1)
            Path(cidfile).write_text(f"{CTR_ID}\n", encoding="utf-8")
        if cmd[1] == "logs":
            return CONTAINER_LOGS.encode()
        return b""

    monkeypatch.setattr(
        "pytest_backing_services.container.check_output", check_output
    )
    return cmds
