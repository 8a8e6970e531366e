from __future__ import annotations

import pickle
import socket

import pytest

from fiberresolve import Scheduler
from fiberresolve.exceptions import (
    FiberError,
    FiberResolveError,
    ResolutionError,
    ResolverError,
    ReverseResolutionError,
    SchedulerError,
)


class TestPickle:
    @pytest.mark.parametrize(
        "exception",
        [
            ResolverError(),
            ResolutionError(),
            ResolutionError("custom"),
            ReverseResolutionError(),
            SchedulerError("misuse"),
            FiberError(None, "has not finished"),
        ],
    )
    def test_exceptions(self, exception: Exception) -> None:
        result = pickle.loads(pickle.dumps(exception))
        assert isinstance(result, type(exception))

    def test_message_survives(self) -> None:
        result = pickle.loads(pickle.dumps(ResolutionError()))
        assert str(result) == str(ResolutionError())


class TestFormat:
    def test_fixed_messages(self) -> None:
        assert str(ResolutionError()) == (
            "getaddrinfo: nodename nor servname provided, or not known"
        )
        assert str(ReverseResolutionError()) == (
            "getnameinfo: nodename nor servname provided, or not known"
        )

    def test_explicit_message(self) -> None:
        assert str(ResolutionError("no such host")) == "no such host"

    def test_fiber_error_names_the_fiber(self) -> None:
        fiber = Scheduler().schedule(lambda: None, name="worker")
        err = FiberError(fiber, "has not finished")
        assert err.fiber is fiber
        assert "worker" in str(err)
        assert str(err).endswith("has not finished")


class TestHierarchy:
    def test_resolution_errors_are_os_errors(self) -> None:
        # Callers written against socket.getaddrinfo keep working.
        with pytest.raises(OSError):
            raise ResolutionError()
        assert issubclass(ReverseResolutionError, OSError)
        assert not issubclass(ResolutionError, socket.gaierror)

    def test_scheduler_errors_are_runtime_errors(self) -> None:
        assert issubclass(SchedulerError, RuntimeError)
        assert issubclass(FiberError, SchedulerError)

    @pytest.mark.parametrize(
        "cls",
        [ResolverError, ResolutionError, ReverseResolutionError, SchedulerError, FiberError],
    )
    def test_common_base(self, cls: type[Exception]) -> None:
        assert issubclass(cls, FiberResolveError)
