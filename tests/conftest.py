"""Shared fixtures for the lspmux tests."""

import logging
from typing import Callable

import pytest

from lspmux.config import BackendSpec
from tests.helpers import ECHO_SERVER, PYTHON


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo logging.basicConfig(force=True) calls made by the CLI."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def echo_spec() -> Callable[..., BackendSpec]:
    """Build a BackendSpec that runs the echo server with extra arguments."""

    def make(name: str, *args: str) -> BackendSpec:
        return BackendSpec(name=name, command=PYTHON, args=(str(ECHO_SERVER), *args))

    return make
