from __future__ import annotations

import socket
import threading
import typing
from concurrent.futures import ThreadPoolExecutor
from test import V4_LITERAL, in_fiber
from unittest import mock

import pytest

import fiberresolve
from fiberresolve import Capability, Scheduler
from fiberresolve.contrib.threaded import ThreadedResolverHook
from fiberresolve.exceptions import ResolutionError

_ANSWER = [(socket.AF_INET, socket.SOCK_STREAM, 6, "", (V4_LITERAL, 0))]


@pytest.fixture()
def hook() -> typing.Generator[ThreadedResolverHook, None, None]:
    with ThreadedResolverHook(max_workers=2) as hook:
        yield hook


class TestThreadedResolverHook:
    def test_capabilities(self, hook: ThreadedResolverHook) -> None:
        assert hook.capabilities == Capability.RESOLVE_ADDRESS | Capability.RESOLVE_NAME

    def test_getaddrinfo(self, hook: ThreadedResolverHook) -> None:
        with mock.patch("socket.getaddrinfo", return_value=_ANSWER) as system:
            record = in_fiber(hook, fiberresolve.tcp, "example.com", 443)
        system.assert_called_once_with("example.com", None)
        assert record.ip_address == V4_LITERAL
        assert record.port == 443
        assert record.socktype == socket.SOCK_STREAM

    def test_failure_is_not_retried(self, hook: ThreadedResolverHook) -> None:
        def body() -> None:
            with pytest.raises(ResolutionError):
                fiberresolve.getaddrinfo("example.com", 80)

        with mock.patch(
            "socket.getaddrinfo", side_effect=socket.gaierror(socket.EAI_NONAME, "nope")
        ) as system:
            in_fiber(hook, body)
        # Only the worker thread asked, the carrier never fell back.
        assert system.call_count == 1

    def test_timeout(self, hook: ThreadedResolverHook) -> None:
        release = threading.Event()

        def slow(*args: typing.Any) -> list[typing.Any]:
            release.wait(5)
            return _ANSWER

        def body() -> None:
            with pytest.raises(ResolutionError):
                fiberresolve.getaddrinfo("example.com", 80, timeout=0.05)

        try:
            with mock.patch("socket.getaddrinfo", side_effect=slow):
                in_fiber(hook, body)
        finally:
            release.set()

    def test_getnameinfo(self, hook: ThreadedResolverHook) -> None:
        with mock.patch(
            "socket.getnameinfo", return_value=("host.example", "0")
        ) as system:
            result = in_fiber(
                hook, fiberresolve.getnameinfo, ("10.0.0.1", 80), socket.NI_NUMERICSERV
            )
        assert result == ("host.example", "80")
        (sockaddr, flags), _ = system.call_args
        assert sockaddr == ("10.0.0.1", 0)
        assert flags & socket.NI_NAMEREQD

    def test_getnameinfo_no_name(self, hook: ThreadedResolverHook) -> None:
        with mock.patch(
            "socket.getnameinfo", side_effect=socket.gaierror(socket.EAI_NONAME, "nope")
        ):
            result = in_fiber(
                hook, fiberresolve.getnameinfo, ("10.0.0.1", 80), socket.NI_NUMERICSERV
            )
        assert result == ("10.0.0.1", "80")

    def test_lookups_overlap(self, hook: ThreadedResolverHook) -> None:
        started = threading.Barrier(2, timeout=5)

        def both_in_flight(*args: typing.Any) -> list[typing.Any]:
            # Each lookup waits for the other, so they must run concurrently.
            started.wait()
            return _ANSWER

        finished = []

        def lookup(label: str) -> None:
            fiberresolve.getaddrinfo("example.com", 80)
            finished.append(label)

        with mock.patch("socket.getaddrinfo", side_effect=both_in_flight):
            with Scheduler(hook) as scheduler:
                scheduler.schedule(lookup, "A")
                scheduler.schedule(lookup, "B")
                scheduler.schedule(finished.append, "C")

        assert finished[0] == "C"
        assert sorted(finished[1:]) == ["A", "B"]

    def test_shared_executor_is_not_shut_down(self) -> None:
        with ThreadPoolExecutor(1) as executor:
            with ThreadedResolverHook(executor=executor) as hook:
                with mock.patch("socket.getaddrinfo", return_value=_ANSWER):
                    in_fiber(hook, fiberresolve.ip, "example.com")
            assert executor.submit(lambda: 1).result() == 1
