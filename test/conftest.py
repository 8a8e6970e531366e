from __future__ import annotations

import typing

import pytest

from fiberresolve.scheduler import _state

from . import NullHook, StubHook


@pytest.fixture(autouse=True)
def reset_scheduler() -> typing.Generator[None, None, None]:
    # A failing test may leave its scheduler installed for the thread.
    _state.scheduler = None
    yield
    _state.scheduler = None


@pytest.fixture()
def null_hook() -> NullHook:
    return NullHook()


@pytest.fixture()
def stub_hook() -> StubHook:
    return StubHook()
